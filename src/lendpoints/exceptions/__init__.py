from lendpoints.exceptions.base import LendPointsError, LendPointsValueError
from lendpoints.exceptions.fetching import FetchingError, LogFetchingTimeout
from lendpoints.exceptions.indexer import (
    IndexerError,
    InvariantViolation,
    MissingAccount,
    MissingMarket,
    MissingToken,
    PriceUnavailable,
    UnknownEventTopic,
)

from . import database, fetching, indexer

__all__ = (
    "FetchingError",
    "IndexerError",
    "InvariantViolation",
    "LendPointsError",
    "LendPointsValueError",
    "LogFetchingTimeout",
    "MissingAccount",
    "MissingMarket",
    "MissingToken",
    "PriceUnavailable",
    "UnknownEventTopic",
    "database",
    "fetching",
    "indexer",
)
