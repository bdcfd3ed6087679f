from .base import Base
from .points import (
    AccountTable,
    MarketAccountTable,
    MarketSnapshotTable,
    MarketTable,
    ProtocolAccountTable,
    ProtocolTable,
    SnapshotTable,
    TokenTable,
)

__all__ = (
    "AccountTable",
    "Base",
    "MarketAccountTable",
    "MarketSnapshotTable",
    "MarketTable",
    "ProtocolAccountTable",
    "ProtocolTable",
    "SnapshotTable",
    "TokenTable",
)
