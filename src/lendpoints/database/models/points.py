from sqlalchemy import JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Address, Base, BigDecimal, BigInteger
from .types import (
    ForeignKeyAccountId,
    ForeignKeyMarketId,
    ForeignKeyProtocolId,
    ForeignKeySnapshotId,
    PrimaryKeyAddress,
    PrimaryKeyCompositeId,
)


class ProtocolTable(Base):
    """
    The singleton record for a protocol deployment, keyed by the address of its addresses provider.

    `cumulative_unique_users` is the count of accounts ever created and doubles as the next free
    index for `ProtocolAccountTable`. It is never decremented.
    """

    __tablename__ = "protocols"

    id: Mapped[PrimaryKeyAddress]
    name: Mapped[str]
    slug: Mapped[str]
    network: Mapped[str]

    total_pool_count: Mapped[int]
    cumulative_unique_users: Mapped[int]
    total_supply_usd: Mapped[BigDecimal]
    total_borrow_usd: Mapped[BigDecimal]
    total_points: Mapped[BigDecimal]

    # Ordered list of market IDs. Reassign the list to record a change, in-place mutations are not
    # tracked.
    market_ids: Mapped[list[str]] = mapped_column(JSON)

    last_update_block: Mapped[int | None]


class TokenTable(Base):
    __tablename__ = "tokens"

    id: Mapped[PrimaryKeyAddress]
    symbol: Mapped[str]
    name: Mapped[str]
    decimals: Mapped[int]
    last_price_block_number: Mapped[int | None]

    # The market that first referenced this token. Not a foreign key because a market's input token
    # is created before the market row itself.
    market_id: Mapped[Address | None]


class MarketTable(Base):
    """
    A lending pool reserve, keyed by the address of its underlying asset.
    """

    __tablename__ = "markets"

    id: Mapped[PrimaryKeyAddress]
    protocol_id: Mapped[ForeignKeyProtocolId]
    name: Mapped[str | None]

    input_token_id: Mapped[Address]
    # Auxiliary tokens are linked by the ReserveInitialized handler
    output_token_id: Mapped[Address | None]
    variable_debt_token_id: Mapped[Address | None]
    stable_debt_token_id: Mapped[Address | None]

    created_timestamp: Mapped[int]
    created_block_number: Mapped[int]

    last_price_usd: Mapped[BigDecimal | None]
    last_price_block_number: Mapped[int | None]


class AccountTable(Base):
    __tablename__ = "accounts"

    id: Mapped[PrimaryKeyAddress]

    # USD valuation from the most recent snapshot visit
    total_supply_usd: Mapped[BigDecimal]
    total_borrow_usd: Mapped[BigDecimal]

    # Lifetime accrual
    total_points: Mapped[BigDecimal]


class ProtocolAccountTable(Base):
    """
    Dense index of accounts per protocol. The ID is `{protocol_id}-{index}`, and every index in
    `[0, protocol.cumulative_unique_users)` maps to exactly one account.
    """

    __tablename__ = "protocol_accounts"

    id: Mapped[PrimaryKeyCompositeId]
    protocol_id: Mapped[ForeignKeyProtocolId]
    account_id: Mapped[ForeignKeyAccountId]
    index: Mapped[int]


# Each index is assigned once per protocol
Index(
    "ix_protocol_accounts_protocol_index",
    ProtocolAccountTable.protocol_id,
    ProtocolAccountTable.index,
    unique=True,
)


class MarketAccountTable(Base):
    """
    Raw token balances for an account in one market. The ID is `{market_id}-{account_id}`.

    Balances are updated with signed deltas and are not clamped, so they may become negative if a
    transfer is applied before the action that funded it.
    """

    __tablename__ = "market_accounts"

    id: Mapped[PrimaryKeyCompositeId]
    market_id: Mapped[ForeignKeyMarketId]
    account_id: Mapped[ForeignKeyAccountId]

    supplied: Mapped[BigInteger]
    borrowed: Mapped[BigInteger]


class SnapshotTable(Base):
    """
    Daily accrual record. The ID is the UTC start-of-day timestamp as a decimal string.

    `account_count` is the resumable cursor into the dense account index.
    """

    __tablename__ = "snapshots"

    id: Mapped[PrimaryKeyCompositeId]
    timestamp: Mapped[int]
    protocol_id: Mapped[ForeignKeyProtocolId]

    account_count: Mapped[int]
    finalized: Mapped[bool]

    total_supply_usd: Mapped[BigDecimal]
    total_borrow_usd: Mapped[BigDecimal]
    points: Mapped[BigDecimal]


class MarketSnapshotTable(Base):
    __tablename__ = "market_snapshots"

    id: Mapped[PrimaryKeyCompositeId]
    market_id: Mapped[ForeignKeyMarketId]
    snapshot_id: Mapped[ForeignKeySnapshotId]

    account_count: Mapped[int]
    total_supply_usd: Mapped[BigDecimal]
    total_borrow_usd: Mapped[BigDecimal]
    price_usd: Mapped[BigDecimal]
