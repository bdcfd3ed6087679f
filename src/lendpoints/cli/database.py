import pathlib

import click

from lendpoints.cli import cli
from lendpoints.config import get_settings
from lendpoints.database import get_db_session
from lendpoints.database.operations import (
    backup_sqlite_database,
    compact_sqlite_database,
    create_new_sqlite_database,
    get_current_database_version,
    get_latest_database_version,
    upgrade_existing_sqlite_database,
)
from lendpoints.exceptions.database import BackupExists, DatabaseNotFound
from lendpoints.version import __version__


def _database_path() -> pathlib.Path:
    return get_settings().database.path


@cli.group()
def database() -> None:
    """
    Ledger database commands
    """


@database.command("backup")
def database_backup() -> None:
    """
    Copy the ledger database to a .bak file beside it.
    """

    db_path = _database_path()
    try:
        backup_path = backup_sqlite_database(db_path)
    except BackupExists as exc:
        if not click.confirm(f"Replace the existing backup at {exc.path}?", default=False):
            raise click.Abort from None
        exc.path.unlink()
        backup_path = backup_sqlite_database(db_path)
    except DatabaseNotFound as exc:
        raise click.ClickException(exc.message or str(exc)) from None

    click.echo(f"Backed up {db_path} to {backup_path}")


@database.command("reset")
def database_reset() -> None:
    """
    Discard all indexed data and create an empty ledger database.
    """

    db_path = _database_path()
    if not click.confirm(
        f"All indexed events, balances and points in {db_path} will be deleted and the schema from "
        f"lendpoints {__version__} recreated. Indexing restarts from the deployment block. Continue?",
        default=False,
    ):
        raise click.Abort

    create_new_sqlite_database(db_path)


@database.command("upgrade")
@click.option(
    "--force",
    is_flag=True,
    help="Skip confirmation prompt",
)
def database_upgrade(*, force: bool) -> None:
    """
    Migrate the ledger database to the latest schema.
    """

    db_path = _database_path()
    current_revision = get_current_database_version(get_db_session())
    latest_revision = get_latest_database_version(db_path)

    if current_revision == latest_revision:
        click.echo(f"The database is already at the latest version ({latest_revision}).")
        return

    if not force and not click.confirm(
        f"Migrate {db_path} from revision {current_revision} to {latest_revision}?",
        default=False,
    ):
        raise click.Abort

    try:
        upgrade_existing_sqlite_database(db_path)
    except DatabaseNotFound as exc:
        raise click.ClickException(exc.message or str(exc)) from None


@database.command("compact")
def database_compact() -> None:
    """
    Reclaim space left by deleted positions.
    """

    try:
        compact_sqlite_database(_database_path())
    except DatabaseNotFound as exc:
        raise click.ClickException(exc.message or str(exc)) from None
