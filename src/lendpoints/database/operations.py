import pathlib
import sqlite3

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import URL, Engine, create_engine, text
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from lendpoints.database.models import Base
from lendpoints.exceptions.database import BackupExists, DatabaseNotFound
from lendpoints.logging import logger

MIGRATIONS_LOCATION = "lendpoints:migrations"


def sqlite_url(db_path: pathlib.Path) -> URL:
    return URL.create(drivername="sqlite", database=str(db_path.absolute()))


def _file_engine(db_path: pathlib.Path, *, must_exist: bool = True) -> Engine:
    if must_exist and not db_path.exists():
        raise DatabaseNotFound(path=db_path)
    return create_engine(sqlite_url(db_path))


def get_alembic_config(db_path: pathlib.Path) -> Config:
    alembic_config = Config()
    alembic_config.set_main_option("script_location", MIGRATIONS_LOCATION)
    alembic_config.set_main_option(
        "sqlalchemy.url", sqlite_url(db_path).render_as_string(hide_password=False)
    )
    return alembic_config


def create_new_sqlite_database(db_path: pathlib.Path) -> None:
    """
    Create an empty ledger database in WAL mode with every table, stamped at the latest migration.
    An existing file at the path is replaced.
    """

    db_path.unlink(missing_ok=True)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = _file_engine(db_path, must_exist=False)
    with engine.connect() as connection:
        journal_mode = connection.execute(text("PRAGMA journal_mode=WAL")).scalar()
        if journal_mode != "wal":
            logger.warning(f"SQLite refused WAL mode for {db_path}, using {journal_mode}")
        connection.execute(text("PRAGMA auto_vacuum=FULL"))

    Base.metadata.create_all(bind=engine)
    with engine.connect() as connection:
        # auto_vacuum only applies to an existing file after a rebuild
        connection.execute(text("VACUUM"))
    engine.dispose()

    command.stamp(get_alembic_config(db_path), "head")
    logger.info(f"Created ledger database at {db_path}")


def backup_sqlite_database(db_path: pathlib.Path) -> pathlib.Path:
    """
    Copy the database to a `.bak` file beside it, after folding the write-ahead log into the main
    file. Raises `BackupExists` instead of overwriting an earlier backup.
    """

    backup_path = db_path.with_suffix(db_path.suffix + ".bak")
    if backup_path.exists():
        raise BackupExists(path=backup_path)

    engine = _file_engine(db_path)
    with engine.connect() as connection:
        connection.execute(text("PRAGMA wal_checkpoint(FULL)"))
    engine.dispose()

    with sqlite3.connect(db_path) as source, sqlite3.connect(backup_path) as target:
        source.backup(target)

    logger.info(f"Backed up ledger database to {backup_path}")
    return backup_path


def compact_sqlite_database(db_path: pathlib.Path) -> None:
    engine = _file_engine(db_path)
    with engine.connect() as connection:
        connection.execute(text("VACUUM"))
    engine.dispose()
    logger.info(f"Compacted ledger database at {db_path}")


def upgrade_existing_sqlite_database(db_path: pathlib.Path) -> None:
    if not db_path.exists():
        raise DatabaseNotFound(path=db_path)
    command.upgrade(get_alembic_config(db_path), "head")
    logger.info(f"Upgraded ledger database at {db_path}")


def get_current_database_version(session: Session | scoped_session[Session]) -> str | None:
    return MigrationContext.configure(connection=session.connection()).get_current_revision()


def get_latest_database_version(db_path: pathlib.Path) -> str | None:
    return ScriptDirectory.from_config(get_alembic_config(db_path)).get_current_head()


def get_scoped_sqlite_session(database_path: pathlib.Path) -> scoped_session[Session]:
    return scoped_session(sessionmaker(bind=create_engine(sqlite_url(database_path))))


def create_in_memory_engine() -> Engine:
    """
    Create an in-memory SQLite engine with all tables. The single connection is shared, so every
    session bound to the engine sees the same database.
    """

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine
