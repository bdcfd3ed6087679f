"""
Serial block processing.

Events for a block are applied in log order, followed by exactly one snapshot tick for the block.
Nothing here commits: the caller owns the session and decides when a processed range is durable.
"""

import dataclasses
import itertools
import operator
from collections.abc import Iterable

import tqdm
from eth_typing import ChecksumAddress
from web3 import Web3
from web3.types import LogReceipt

from lendpoints.constants import SNAPSHOT_BATCH_SIZE
from lendpoints.contracts import ContractReader, Web3ContractReader
from lendpoints.database import EntityStore
from lendpoints.database.models import MarketAccountTable
from lendpoints.deployments import ProtocolData, ProtocolDeployment
from lendpoints.functions import fetch_logs_retrying
from lendpoints.indexer.events import (
    BlockInfo,
    BorrowEvent,
    DepositEvent,
    Event,
    LendingPoolEvent,
    RepayEvent,
    ReserveInitializedEvent,
    TransferEvent,
    WithdrawEvent,
    decode_event,
)
from lendpoints.indexer.handlers import EventHandlerContext, dispatch_event
from lendpoints.indexer.ledger import PositionDrift, PositionSide, verify_market_accounts
from lendpoints.indexer.registry import get_auxiliary_token_addresses
from lendpoints.indexer.snapshot import SnapshotProgress, accrue_daily_snapshot
from lendpoints.logging import logger
from lendpoints.types.aliases import BlockNumber


@dataclasses.dataclass(frozen=True, slots=True)
class PoolAddresses:
    pool: ChecksumAddress
    pool_configurator: ChecksumAddress


@dataclasses.dataclass(slots=True)
class UpdateResult:
    events_processed: int = 0
    blocks_processed: int = 0
    snapshots: list[SnapshotProgress] = dataclasses.field(default_factory=list)
    drifts: list[PositionDrift] = dataclasses.field(default_factory=list)


def resolve_pool_addresses(
    reader: Web3ContractReader,
    addresses_provider: ChecksumAddress,
) -> PoolAddresses:
    """
    Read the lending pool and pool configurator addresses from the addresses provider.
    """

    return PoolAddresses(
        pool=reader.get_address(addresses_provider, "getLendingPool()"),
        pool_configurator=reader.get_address(addresses_provider, "getLendingPoolConfigurator()"),
    )


def process_block(
    store: EntityStore,
    reader: ContractReader,
    protocol_data: ProtocolData,
    block: BlockInfo,
    events: Iterable[Event],
    *,
    tick: bool = True,
    batch_size: int = SNAPSHOT_BATCH_SIZE,
) -> SnapshotProgress | None:
    """
    Apply the block's events in log order, then run the snapshot tick for the block if `tick` is
    set.
    """

    context = EventHandlerContext(
        store=store,
        reader=reader,
        protocol_data=protocol_data,
        block=block,
    )
    for event in sorted(events, key=operator.attrgetter("log_index")):
        if event.block_number != block.number:
            msg = f"Event from block {event.block_number} cannot be applied to block {block.number}"
            raise ValueError(msg)
        dispatch_event(context, event)

    if not tick:
        return None

    return accrue_daily_snapshot(
        store=store,
        reader=reader,
        protocol_data=protocol_data,
        block=block,
        batch_size=batch_size,
    )


def _get_reserve_initialized_events(
    w3: Web3,
    start_block: BlockNumber,
    end_block: BlockNumber,
    address: ChecksumAddress,
) -> list[LogReceipt]:
    """
    Retrieve all `ReserveInitialized` events for the given range.
    """

    return fetch_logs_retrying(
        w3=w3,
        start_block=start_block,
        end_block=end_block,
        address=[address],
        topic_signature=[
            [LendingPoolEvent.RESERVE_INITIALIZED.value],
        ],
    )


def _get_pool_action_events(
    w3: Web3,
    start_block: BlockNumber,
    end_block: BlockNumber,
    address: ChecksumAddress,
) -> list[LogReceipt]:
    """
    Retrieve all `Deposit`, `Withdraw`, `Borrow`, `Repay`, and `LiquidationCall` events for the
    given range.
    """

    return fetch_logs_retrying(
        w3=w3,
        start_block=start_block,
        end_block=end_block,
        address=[address],
        topic_signature=[
            [
                LendingPoolEvent.DEPOSIT.value,
                LendingPoolEvent.WITHDRAW.value,
                LendingPoolEvent.BORROW.value,
                LendingPoolEvent.REPAY.value,
                LendingPoolEvent.LIQUIDATION_CALL.value,
            ],
        ],
    )


def _get_transfer_events(
    w3: Web3,
    start_block: BlockNumber,
    end_block: BlockNumber,
    token_sides: dict[ChecksumAddress, PositionSide],
) -> list[TransferEvent]:
    """
    Retrieve and decode all `Transfer` events emitted by the given tokens, tagged with the position
    side each token represents.
    """

    if not token_sides:
        return []

    transfer_events: list[TransferEvent] = []
    for log in fetch_logs_retrying(
        w3=w3,
        start_block=start_block,
        end_block=end_block,
        address=list(token_sides),
        topic_signature=[
            [LendingPoolEvent.TRANSFER.value],
        ],
    ):
        event = decode_event(log)
        assert isinstance(event, TransferEvent)
        transfer_events.append(dataclasses.replace(event, side=token_sides[event.address]))
    return transfer_events


def get_tick_blocks(
    start_block: BlockNumber,
    end_block: BlockNumber,
    tick_every: int,
) -> set[BlockNumber]:
    """
    Get the blocks in the inclusive range that receive a snapshot tick. The last block of the range
    always does.
    """

    if tick_every < 1:
        msg = f"Tick interval must be at least 1, got {tick_every}"
        raise ValueError(msg)

    return {*range(start_block, end_block + 1, tick_every), end_block}


def _get_touched_accounts(events: Iterable[Event]) -> set[ChecksumAddress]:
    accounts: set[ChecksumAddress] = set()
    for event in events:
        match event:
            case DepositEvent() | BorrowEvent():
                accounts.add(event.on_behalf_of)
            case WithdrawEvent():
                accounts.add(event.to)
            case RepayEvent():
                accounts.add(event.user)
            case TransferEvent():
                accounts.update((event.from_, event.to))
    return accounts


def update_protocol(
    w3: Web3,
    store: EntityStore,
    deployment: ProtocolDeployment,
    start_block: BlockNumber,
    end_block: BlockNumber,
    *,
    tick_every: int = 1,
    batch_size: int = SNAPSHOT_BATCH_SIZE,
    verify: bool = False,
    no_progress: bool = False,
) -> UpdateResult:
    """
    Fetch and process all protocol events in the inclusive block range.
    """

    protocol_data = deployment.protocol_data
    reader = Web3ContractReader(w3=w3)
    result = UpdateResult()

    pool_addresses = resolve_pool_addresses(
        reader=reader.at_block(end_block),
        addresses_provider=deployment.addresses_provider,
    )

    # Reserves initialized in this range link new tokens, whose transfers must be fetched along with
    # those of previously known tokens
    reserve_initialized_events = [
        decode_event(log)
        for log in _get_reserve_initialized_events(
            w3=w3,
            start_block=start_block,
            end_block=end_block,
            address=pool_addresses.pool_configurator,
        )
    ]

    token_sides: dict[ChecksumAddress, PositionSide] = {}
    for token_address, market in get_auxiliary_token_addresses(store, protocol_data).items():
        token_sides[token_address] = (
            PositionSide.LENDER if token_address == market.output_token_id else PositionSide.BORROWER
        )
    for event in reserve_initialized_events:
        assert isinstance(event, ReserveInitializedEvent)
        token_sides[event.a_token] = PositionSide.LENDER
        token_sides[event.variable_debt_token] = PositionSide.BORROWER

    all_events: list[Event] = [
        *reserve_initialized_events,
        *(
            decode_event(log)
            for log in _get_pool_action_events(
                w3=w3,
                start_block=start_block,
                end_block=end_block,
                address=pool_addresses.pool,
            )
        ),
        *_get_transfer_events(
            w3=w3,
            start_block=start_block,
            end_block=end_block,
            token_sides=token_sides,
        ),
    ]
    all_events.sort(key=operator.attrgetter("block_number", "log_index"))

    events_by_block: dict[BlockNumber, list[Event]] = {
        block_number: list(block_events)
        for block_number, block_events in itertools.groupby(
            all_events, key=operator.attrgetter("block_number")
        )
    }
    tick_blocks = get_tick_blocks(start_block, end_block, tick_every)

    for block_number in tqdm.tqdm(
        sorted(tick_blocks.union(events_by_block)),
        desc="Processing blocks",
        leave=False,
        disable=no_progress,
    ):
        block = BlockInfo(
            number=block_number,
            timestamp=w3.eth.get_block(block_number)["timestamp"],
        )
        block_events = events_by_block.get(block_number, [])

        progress = process_block(
            store=store,
            reader=reader.at_block(block_number),
            protocol_data=protocol_data,
            block=block,
            events=block_events,
            tick=block_number in tick_blocks,
            batch_size=batch_size,
        )

        result.events_processed += len(block_events)
        result.blocks_processed += 1
        if progress is not None and not progress.skipped:
            result.snapshots.append(progress)

    if verify:
        market_accounts: list[MarketAccountTable] = []
        for account_address in sorted(_get_touched_accounts(all_events)):
            market_accounts.extend(
                store.load_related(MarketAccountTable, "account_id", account_address)
            )
        result.drifts = verify_market_accounts(
            store=store,
            reader=reader.at_block(end_block),
            market_accounts=market_accounts,
        )

    logger.info(
        f"Processed {result.events_processed:,} events in {result.blocks_processed:,} blocks "
        f"({start_block:,} -> {end_block:,})"
    )
    return result
