from .aliases import BlockNumber, ChainId, Timestamp

__all__ = (
    "BlockNumber",
    "ChainId",
    "Timestamp",
)
