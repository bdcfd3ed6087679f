"""
Daily points accrual.

A snapshot is opened on the first block of each UTC day and swept across the dense account index in
bounded batches, one batch per block. Each batch values every position of the visited accounts in
USD and accrues points. The day is finalized when the cursor reaches the live unique user count, so
accounts created during the sweep are still visited before the day closes.
"""

import decimal
from dataclasses import dataclass
from decimal import Decimal

from lendpoints.checksum_cache import get_checksum_address
from lendpoints.constants import (
    BORROW_POINTS_MULTIPLIER,
    DEFAULT_DECIMALS,
    PRICE_CONTEXT,
    SNAPSHOT_BATCH_SIZE,
    SUPPLY_POINTS_MULTIPLIER,
)
from lendpoints.contracts import ContractReader
from lendpoints.database import EntityStore
from lendpoints.database.models import (
    AccountTable,
    MarketAccountTable,
    MarketSnapshotTable,
    MarketTable,
    ProtocolTable,
    SnapshotTable,
    TokenTable,
)
from lendpoints.deployments import ProtocolData
from lendpoints.exceptions import MissingAccount, MissingMarket, MissingToken, PriceUnavailable
from lendpoints.functions import scale_amount, start_of_day
from lendpoints.indexer.events import BlockInfo
from lendpoints.indexer.ledger import get_account_by_index
from lendpoints.indexer.registry import get_or_create_protocol
from lendpoints.logging import logger


@dataclass(frozen=True, slots=True)
class MarketPrice:
    market_id: str
    price_usd: Decimal
    decimals: int


@dataclass(frozen=True, slots=True)
class SnapshotProgress:
    """
    Summary of one snapshot tick. `start_index` and `end_index` bound the half-open range of account
    indices visited by the tick.
    """

    snapshot_id: str
    start_index: int
    end_index: int
    finalized: bool
    supply_usd: Decimal
    borrow_usd: Decimal
    points: Decimal
    # True if the snapshot was already finalized and the tick did nothing
    skipped: bool = False


def calculate_points(supply_usd: Decimal, borrow_usd: Decimal) -> Decimal:
    return PRICE_CONTEXT.add(
        PRICE_CONTEXT.multiply(supply_usd, SUPPLY_POINTS_MULTIPLIER),
        PRICE_CONTEXT.multiply(borrow_usd, BORROW_POINTS_MULTIPLIER),
    )


def get_market_prices(
    store: EntityStore,
    reader: ContractReader,
    protocol: ProtocolTable,
    block_number: int,
) -> dict[str, MarketPrice]:
    """
    Price every market of the protocol. Any missing record or reverted oracle call raises, so a
    caller either gets a complete price set or none.
    """

    prices: dict[str, MarketPrice] = {}

    for market_id in protocol.market_ids:
        if (market := store.load(MarketTable, market_id)) is None:
            raise MissingMarket(market_id=market_id)

        if market.output_token_id is None or (
            output_token := store.load(TokenTable, market.output_token_id)
        ) is None:
            raise MissingToken(market_id=market_id, token_id=market.output_token_id)

        price = reader.try_get_asset_price(get_checksum_address(output_token.id))
        if price.reverted or price.value is None:
            logger.warning(f"Token price not found in market {market_id}")
            raise PriceUnavailable(market_id=market_id, block_number=block_number)

        prices[market_id] = MarketPrice(
            market_id=market_id,
            price_usd=scale_amount(price.value, DEFAULT_DECIMALS),
            decimals=output_token.decimals,
        )

    return prices


def _get_or_create_snapshot(
    store: EntityStore,
    protocol: ProtocolTable,
    snapshot_id: str,
    day_start: int,
) -> SnapshotTable:
    if (snapshot := store.load(SnapshotTable, snapshot_id)) is None:
        snapshot = SnapshotTable(
            id=snapshot_id,
            timestamp=day_start,
            protocol_id=protocol.id,
            account_count=0,
            finalized=False,
            total_supply_usd=Decimal(0),
            total_borrow_usd=Decimal(0),
            points=Decimal(0),
        )
        store.save(snapshot)
        logger.info(f"Opened snapshot {snapshot_id}")
    return snapshot


def _get_or_create_market_snapshot(
    store: EntityStore,
    snapshot_id: str,
    market_id: str,
) -> MarketSnapshotTable:
    if (
        market_snapshot := store.load(MarketSnapshotTable, f"{snapshot_id}-{market_id}")
    ) is None:
        market_snapshot = MarketSnapshotTable(
            id=f"{snapshot_id}-{market_id}",
            market_id=market_id,
            snapshot_id=snapshot_id,
            account_count=0,
            total_supply_usd=Decimal(0),
            total_borrow_usd=Decimal(0),
            price_usd=Decimal(0),
        )
    return market_snapshot


def accrue_daily_snapshot(
    store: EntityStore,
    reader: ContractReader,
    protocol_data: ProtocolData,
    block: BlockInfo,
    batch_size: int = SNAPSHOT_BATCH_SIZE,
) -> SnapshotProgress:
    """
    Run one snapshot tick for the block.

    Markets are priced before anything is written. A finalized snapshot is left untouched and no
    contract calls are made.
    """

    protocol = get_or_create_protocol(store, protocol_data)

    day_start = start_of_day(block.timestamp)
    snapshot_id = str(day_start)

    if (existing_snapshot := store.load(SnapshotTable, snapshot_id)) is not None and (
        existing_snapshot.finalized
    ):
        return SnapshotProgress(
            snapshot_id=snapshot_id,
            start_index=existing_snapshot.account_count,
            end_index=existing_snapshot.account_count,
            finalized=True,
            supply_usd=Decimal(0),
            borrow_usd=Decimal(0),
            points=Decimal(0),
            skipped=True,
        )

    prices = get_market_prices(
        store=store,
        reader=reader,
        protocol=protocol,
        block_number=block.number,
    )

    snapshot = _get_or_create_snapshot(
        store=store,
        protocol=protocol,
        snapshot_id=snapshot_id,
        day_start=day_start,
    )

    start_index = snapshot.account_count
    end_index = min(start_index + batch_size, protocol.cumulative_unique_users)

    tick_supply_usd = Decimal(0)
    tick_borrow_usd = Decimal(0)
    tick_points = Decimal(0)

    with decimal.localcontext(PRICE_CONTEXT):
        for index in range(start_index, end_index):
            if (protocol_account := get_account_by_index(store, protocol, index)) is None:
                logger.warning(f"Account index {index} not found for protocol {protocol.id}")
                continue

            if (account := store.load(AccountTable, protocol_account.account_id)) is None:
                raise MissingAccount(account_id=protocol_account.account_id, index=index)

            account_supply_usd = Decimal(0)
            account_borrow_usd = Decimal(0)

            for market_account in store.load_related(
                MarketAccountTable, "account_id", account.id
            ):
                # Stale empty positions are not valued
                if market_account.supplied == 0 and market_account.borrowed == 0:
                    store.delete(MarketAccountTable, market_account.id)
                    continue

                if (market_price := prices.get(market_account.market_id)) is None:
                    raise MissingMarket(market_id=market_account.market_id)

                market_snapshot = _get_or_create_market_snapshot(
                    store=store,
                    snapshot_id=snapshot.id,
                    market_id=market_account.market_id,
                )

                if market_account.supplied > 0:
                    supply_usd = scale_amount(
                        market_account.supplied, market_price.decimals, market_price.price_usd
                    )
                    account_supply_usd += supply_usd
                    market_snapshot.total_supply_usd += supply_usd

                if market_account.borrowed > 0:
                    borrow_usd = scale_amount(
                        market_account.borrowed, market_price.decimals, market_price.price_usd
                    )
                    account_borrow_usd += borrow_usd
                    market_snapshot.total_borrow_usd += borrow_usd

                market_snapshot.account_count += 1
                market_snapshot.price_usd = market_price.price_usd
                store.save(market_snapshot)

            account_points = calculate_points(account_supply_usd, account_borrow_usd)

            account.total_supply_usd = account_supply_usd
            account.total_borrow_usd = account_borrow_usd
            account.total_points += account_points
            store.save(account)

            tick_supply_usd += account_supply_usd
            tick_borrow_usd += account_borrow_usd
            tick_points += account_points

        snapshot.account_count = end_index
        snapshot.total_supply_usd += tick_supply_usd
        snapshot.total_borrow_usd += tick_borrow_usd
        snapshot.points += tick_points
        snapshot.finalized = snapshot.account_count == protocol.cumulative_unique_users
        store.save(snapshot)

        protocol.total_supply_usd = snapshot.total_supply_usd
        protocol.total_borrow_usd = snapshot.total_borrow_usd
        protocol.total_points += tick_points
        store.save(protocol)

    for market_price in prices.values():
        market = store.load(MarketTable, market_price.market_id)
        assert market is not None
        market.last_price_usd = market_price.price_usd
        market.last_price_block_number = block.number
        store.save(market)

        if market.output_token_id is not None and (
            output_token := store.load(TokenTable, market.output_token_id)
        ) is not None:
            output_token.last_price_block_number = block.number
            store.save(output_token)

    logger.info(
        f"Snapshot {snapshot.id}: accounts {start_index:,} -> {end_index:,} "
        f"of {protocol.cumulative_unique_users:,}, "
        f"{tick_points} points{' (finalized)' if snapshot.finalized else ''}"
    )

    return SnapshotProgress(
        snapshot_id=snapshot.id,
        start_index=start_index,
        end_index=end_index,
        finalized=snapshot.finalized,
        supply_usd=tick_supply_usd,
        borrow_usd=tick_borrow_usd,
        points=tick_points,
    )
