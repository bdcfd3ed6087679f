import click
import tomlkit

import lendpoints.config
from lendpoints.cli import cli
from lendpoints.config import get_settings


@cli.group()
def config() -> None:
    """
    Configuration commands
    """


@config.command("show")
@click.option(
    "--json",
    "output_format",
    flag_value="json",
    help="Print the settings as JSON.",
)
@click.option(
    "--toml",
    "output_format",
    flag_value="toml",
    default=True,
    help="Print the settings as TOML, the format of the config file (default).",
)
def config_show(output_format: str) -> None:
    """
    Print the active settings: database path, indexer defaults and RPC endpoints.
    """

    settings = get_settings()
    if output_format == "json":
        click.echo(settings.model_dump_json(indent=2))
    else:
        click.echo(tomlkit.dumps(settings.model_dump(mode="json")))


@config.command("path")
def config_path() -> None:
    """
    Print the location of the config file.
    """

    click.echo(lendpoints.config.CONFIG_FILE)
