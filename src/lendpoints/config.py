import functools
import os
import tomllib
from pathlib import Path
from typing import Annotated

import tomlkit
from pydantic import (
    BaseModel,
    Field,
    HttpUrl,
    PlainSerializer,
    PositiveInt,
    WebsocketUrl,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from lendpoints.logging import logger

CONFIG_DIR = Path(
    os.environ.get("LENDPOINTS_CONFIG_DIR", Path.home() / ".config" / "lendpoints")
).expanduser()
CONFIG_FILE = CONFIG_DIR / "config.toml"
DB_PATH = CONFIG_DIR / "lendpoints.db"

type RpcEndpoint = HttpUrl | WebsocketUrl | Path


class DatabaseSettings(BaseModel):
    path: Annotated[
        Path,
        PlainSerializer(lambda path: str(path.absolute()), return_type=str),
    ]


class IndexerSettings(BaseModel):
    """
    Defaults for `lendpoints index update`. Options given on the command line take precedence.
    """

    chunk_size: PositiveInt = 10_000
    tick_every: PositiveInt = 1
    to_block: str = "latest:-64"
    verify: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict()

    database: DatabaseSettings
    indexer: IndexerSettings = Field(default_factory=IndexerSettings)
    rpc: dict[int, RpcEndpoint]

    @field_validator("rpc", mode="after")
    def absolute_ipc_paths(
        cls,  # noqa: N805
        endpoints: dict[int, RpcEndpoint],
    ) -> dict[int, RpcEndpoint]:
        """
        Expand IPC socket paths to absolute paths. URLs are kept as given.
        """

        for chain_id, endpoint in endpoints.items():
            if isinstance(endpoint, Path):
                endpoints[chain_id] = endpoint.expanduser().absolute()
        return endpoints


def load_config_from_file(config_path: Path) -> Settings:
    with config_path.open("rb") as config_file:
        return Settings.model_validate(tomllib.load(config_file))


def save_config_to_file(config: Settings, config_path: Path | None = None) -> None:
    document = tomlkit.document()
    document.add(tomlkit.comment("lendpoints configuration"))
    document.update(config.model_dump(mode="json"))
    (config_path or CONFIG_FILE).write_text(tomlkit.dumps(document))


def default_settings() -> Settings:
    return Settings(database=DatabaseSettings(path=DB_PATH), rpc={})


@functools.cache
def get_settings() -> Settings:
    """
    Load the settings. On first use the config directory, a default config file and an empty
    database are created.
    """

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    if CONFIG_FILE.exists():
        return load_config_from_file(CONFIG_FILE)

    settings = default_settings()
    save_config_to_file(settings, CONFIG_FILE)
    logger.info(f"Wrote default settings to {CONFIG_FILE}")

    if not settings.database.path.exists():
        from lendpoints.database.operations import create_new_sqlite_database  # noqa: PLC0415

        create_new_sqlite_database(settings.database.path)

    return settings
