"""
Exceptions raised while applying events and accruing snapshots.

Lookups that miss on an expected path (a transfer for an unlinked token, an event for a reserve
that was never initialized) are logged and skipped by the handlers. The exceptions here mark
conditions that must abort the current invocation instead.
"""

from hexbytes import HexBytes

from lendpoints.exceptions.base import LendPointsError


class IndexerError(LendPointsError):
    """
    Exception raised inside the indexer.
    """


class InvariantViolation(IndexerError):
    """
    Raised when persisted state contradicts itself. The current invocation must not be committed.
    """


class MissingAccount(InvariantViolation):
    def __init__(self, account_id: str, index: int) -> None:
        self.account_id = account_id
        self.index = index
        super().__init__(message=f"Account {account_id} at index {index} was not found.")


class MissingMarket(InvariantViolation):
    def __init__(self, market_id: str) -> None:
        self.market_id = market_id
        super().__init__(message=f"Market {market_id} is registered but was not found.")


class MissingToken(InvariantViolation):
    def __init__(self, market_id: str, token_id: str | None) -> None:
        self.market_id = market_id
        self.token_id = token_id
        super().__init__(message=f"Output token {token_id} for market {market_id} was not found.")


class PriceUnavailable(IndexerError):
    """
    Raised when the price oracle reverts for a market. Pricing is all-or-nothing for a snapshot tick.
    """

    def __init__(self, market_id: str, block_number: int) -> None:
        self.market_id = market_id
        self.block_number = block_number
        super().__init__(
            message=f"Price for market {market_id} is unavailable at block {block_number}."
        )


class UnknownEventTopic(IndexerError):
    def __init__(self, topic: HexBytes) -> None:
        self.topic = topic
        super().__init__(message=f"Unknown event topic: {topic.to_0x_hex()}")
