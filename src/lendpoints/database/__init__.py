import functools

from sqlalchemy.orm import Session, scoped_session

from lendpoints.database.operations import (
    get_current_database_version,
    get_latest_database_version,
    get_scoped_sqlite_session,
)
from lendpoints.database.store import EntityStore
from lendpoints.logging import logger
from lendpoints.version import __version__


@functools.cache
def get_db_session() -> scoped_session[Session]:
    """
    Open the configured database, warning if its schema revision is behind the package.
    """

    from lendpoints.config import get_settings  # noqa: PLC0415

    settings = get_settings()
    db_session = get_scoped_sqlite_session(settings.database.path)

    revision = get_current_database_version(db_session)
    head = get_latest_database_version(settings.database.path)
    if revision is not None and revision != head:
        logger.warning(
            f"Ledger database {settings.database.path} is at schema revision {revision}, but "
            f"lendpoints {__version__} expects {head}. Run 'lendpoints database upgrade' before "
            "indexing."
        )

    return db_session


__all__ = (
    "EntityStore",
    "get_db_session",
)
