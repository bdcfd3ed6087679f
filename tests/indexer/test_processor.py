from decimal import Decimal

import pytest
from fakes import (
    ADDRESSES_PROVIDER_ADDRESS,
    DAY_START,
    ONE_TOKEN,
    POOL_ADDRESS,
    POOL_CONFIGURATOR_ADDRESS,
    FakeContractReader,
    FakeEth,
    FakeWeb3,
    address,
    make_log,
    topic_address,
)
from hexbytes import HexBytes

from lendpoints.constants import ZERO_ADDRESS
from lendpoints.contracts import Web3ContractReader
from lendpoints.database import EntityStore
from lendpoints.database.models import AccountTable, MarketAccountTable, MarketTable, SnapshotTable
from lendpoints.deployments import ProtocolData, TaikoTakoTako
from lendpoints.exceptions import PriceUnavailable
from lendpoints.functions import encode_function_calldata
from lendpoints.indexer.events import (
    BlockInfo,
    DepositEvent,
    LendingPoolEvent,
    TransferEvent,
    WithdrawEvent,
)
from lendpoints.indexer.ledger import get_account_by_index
from lendpoints.indexer.processor import (
    get_tick_blocks,
    process_block,
    resolve_pool_addresses,
    update_protocol,
)
from lendpoints.indexer.registry import get_or_create_protocol

UNDERLYING = address(0x2000)
A_TOKEN = address(0x2001)
V_TOKEN = address(0x2002)
STABLE_DEBT_TOKEN = address(0x2003)
STRATEGY = address(0x2004)
ALICE = address(0xA11CE)
BOB = address(0xB0B)
REFERRAL_TOPIC = HexBytes(bytes(32))


def _supplied(store: EntityStore, account: str, market: str = UNDERLYING) -> int | None:
    market_account = store.load(MarketAccountTable, f"{market}-{account}")
    return None if market_account is None else market_account.supplied


def _borrowed(store: EntityStore, account: str, market: str = UNDERLYING) -> int | None:
    market_account = store.load(MarketAccountTable, f"{market}-{account}")
    return None if market_account is None else market_account.borrowed


class TestProcessBlock:
    def test_events_applied_in_log_order(
        self,
        store: EntityStore,
        reader: FakeContractReader,
        protocol_data: ProtocolData,
        block: BlockInfo,
        initialize_market,
    ):
        initialize_market(UNDERLYING, A_TOKEN, V_TOKEN)

        withdraw = WithdrawEvent(
            block_number=block.number,
            log_index=9,
            address=POOL_ADDRESS,
            reserve=UNDERLYING,
            user=ALICE,
            to=ALICE,
            amount=ONE_TOKEN,
        )
        deposit = DepositEvent(
            block_number=block.number,
            log_index=2,
            address=POOL_ADDRESS,
            reserve=UNDERLYING,
            user=BOB,
            on_behalf_of=BOB,
            amount=3 * ONE_TOKEN,
        )

        progress = process_block(store, reader, protocol_data, block, [withdraw, deposit])

        protocol = get_or_create_protocol(store, protocol_data)
        first = get_account_by_index(store, protocol, 0)
        second = get_account_by_index(store, protocol, 1)
        assert first is not None
        assert second is not None
        assert (first.account_id, second.account_id) == (BOB, ALICE)

        assert _supplied(store, BOB) == 3 * ONE_TOKEN
        assert _supplied(store, ALICE) == -ONE_TOKEN
        assert progress is not None
        assert progress.finalized is True

        account = store.load(AccountTable, BOB)
        assert account is not None
        assert account.total_supply_usd == Decimal(3)

    def test_without_tick(
        self,
        store: EntityStore,
        reader: FakeContractReader,
        protocol_data: ProtocolData,
        block: BlockInfo,
        initialize_market,
    ):
        initialize_market(UNDERLYING, A_TOKEN, V_TOKEN)
        reader.calls.clear()

        assert process_block(store, reader, protocol_data, block, [], tick=False) is None
        assert store.load(SnapshotTable, str(DAY_START)) is None
        assert reader.calls == []

    def test_event_from_other_block_rejected(
        self,
        store: EntityStore,
        reader: FakeContractReader,
        protocol_data: ProtocolData,
        block: BlockInfo,
    ):
        event = TransferEvent(
            block_number=block.number + 1,
            log_index=0,
            address=A_TOKEN,
            from_=ALICE,
            to=BOB,
            value=1,
        )

        with pytest.raises(ValueError, match="cannot be applied"):
            process_block(store, reader, protocol_data, block, [event])

    def test_batch_size_bounds_tick(
        self,
        store: EntityStore,
        reader: FakeContractReader,
        protocol_data: ProtocolData,
        block: BlockInfo,
        initialize_market,
    ):
        initialize_market(UNDERLYING, A_TOKEN, V_TOKEN)
        deposits = [
            DepositEvent(
                block_number=block.number,
                log_index=i,
                address=POOL_ADDRESS,
                reserve=UNDERLYING,
                user=address(0xA000 + i),
                on_behalf_of=address(0xA000 + i),
                amount=ONE_TOKEN,
            )
            for i in range(5)
        ]

        progress = process_block(store, reader, protocol_data, block, deposits, batch_size=2)

        assert progress is not None
        assert (progress.start_index, progress.end_index) == (0, 2)
        assert progress.finalized is False


@pytest.mark.parametrize(
    ("start", "end", "tick_every", "expected"),
    [
        (1, 5, 1, {1, 2, 3, 4, 5}),
        (1, 5, 2, {1, 3, 5}),
        (1, 6, 4, {1, 5, 6}),
        (10, 10, 100, {10}),
    ],
)
def test_get_tick_blocks(start: int, end: int, tick_every: int, expected: set[int]):
    assert get_tick_blocks(start, end, tick_every) == expected


def test_get_tick_blocks_rejects_zero_interval():
    with pytest.raises(ValueError, match="at least 1"):
        get_tick_blocks(1, 5, 0)


def _register_pool(eth: FakeEth) -> None:
    eth.register_call(ADDRESSES_PROVIDER_ADDRESS, "getLendingPool()", "address", POOL_ADDRESS)
    eth.register_call(
        ADDRESSES_PROVIDER_ADDRESS,
        "getLendingPoolConfigurator()",
        "address",
        POOL_CONFIGURATOR_ADDRESS,
    )
    for token, symbol in ((UNDERLYING, "WETH"), (A_TOKEN, "tWETH"), (V_TOKEN, "variableDebtWETH")):
        eth.register_call(token, "symbol()", "string", symbol)
        eth.register_call(token, "name()", "string", f"{symbol} token")
        eth.register_call(token, "decimals()", "uint8", 18)
    eth.register_call(A_TOKEN, "getAssetPrice()", "uint256", 2 * ONE_TOKEN)


def _transfer_log(token: str, from_: str, to: str, value: int, block_number: int, log_index: int):
    return make_log(
        address=token,
        topics=[LendingPoolEvent.TRANSFER.value, topic_address(from_), topic_address(to)],
        data_types=["uint256"],
        data_values=[value],
        block_number=block_number,
        log_index=log_index,
    )


@pytest.fixture
def fake_w3() -> FakeWeb3:
    # Blocks 1-3 fall on the previous day, block 4 opens a new day
    eth = FakeEth(genesis_timestamp=DAY_START - 8, block_time=2)
    _register_pool(eth)
    eth.logs.extend([
        make_log(
            address=POOL_CONFIGURATOR_ADDRESS,
            topics=[
                LendingPoolEvent.RESERVE_INITIALIZED.value,
                topic_address(UNDERLYING),
                topic_address(A_TOKEN),
            ],
            data_types=["address", "address", "address"],
            data_values=[STABLE_DEBT_TOKEN, V_TOKEN, STRATEGY],
            block_number=1,
            log_index=0,
        ),
        # aToken mint, then the pool's Deposit
        _transfer_log(A_TOKEN, ZERO_ADDRESS, ALICE, 5 * ONE_TOKEN, block_number=2, log_index=0),
        make_log(
            address=POOL_ADDRESS,
            topics=[
                LendingPoolEvent.DEPOSIT.value,
                topic_address(UNDERLYING),
                topic_address(ALICE),
                REFERRAL_TOPIC,
            ],
            data_types=["address", "uint256"],
            data_values=[ALICE, 5 * ONE_TOKEN],
            block_number=2,
            log_index=1,
        ),
        _transfer_log(A_TOKEN, ALICE, BOB, 2 * ONE_TOKEN, block_number=3, log_index=0),
        _transfer_log(V_TOKEN, ZERO_ADDRESS, ALICE, ONE_TOKEN, block_number=5, log_index=0),
        make_log(
            address=POOL_ADDRESS,
            topics=[
                LendingPoolEvent.BORROW.value,
                topic_address(UNDERLYING),
                topic_address(ALICE),
                REFERRAL_TOPIC,
            ],
            data_types=["address", "uint256", "uint256", "uint256"],
            data_values=[ALICE, ONE_TOKEN, 2, 0],
            block_number=5,
            log_index=1,
        ),
    ])
    return FakeWeb3(eth=eth)


def test_resolve_pool_addresses(fake_w3: FakeWeb3):
    reader = Web3ContractReader(w3=fake_w3)  # type: ignore[arg-type]

    pool_addresses = resolve_pool_addresses(reader, ADDRESSES_PROVIDER_ADDRESS)

    assert pool_addresses.pool == POOL_ADDRESS
    assert pool_addresses.pool_configurator == POOL_CONFIGURATOR_ADDRESS


def test_update_protocol(store: EntityStore, fake_w3: FakeWeb3):
    result = update_protocol(
        w3=fake_w3,  # type: ignore[arg-type]
        store=store,
        deployment=TaikoTakoTako,
        start_block=1,
        end_block=5,
        no_progress=True,
    )

    assert result.events_processed == 6
    assert result.blocks_processed == 5

    market = store.load(MarketTable, UNDERLYING)
    assert market is not None
    assert market.output_token_id == A_TOKEN
    assert market.variable_debt_token_id == V_TOKEN
    assert market.stable_debt_token_id == STABLE_DEBT_TOKEN
    assert market.name == "tWETH token"
    assert market.last_price_usd == Decimal(2)
    assert market.last_price_block_number == 4

    assert _supplied(store, ALICE) == 3 * ONE_TOKEN
    assert _borrowed(store, ALICE) == ONE_TOKEN
    assert _supplied(store, BOB) == 2 * ONE_TOKEN

    protocol = get_or_create_protocol(store, TaikoTakoTako.protocol_data)
    assert protocol.cumulative_unique_users == 2
    assert protocol.market_ids == [UNDERLYING]

    # The previous day was finalized with no accounts on block 1, the new day is swept on block 4
    assert [snapshot.snapshot_id for snapshot in result.snapshots] == [
        str(DAY_START - 86_400),
        str(DAY_START),
    ]
    snapshot = store.load(SnapshotTable, str(DAY_START))
    assert snapshot is not None
    assert snapshot.finalized is True
    assert snapshot.account_count == 2
    assert snapshot.total_supply_usd == Decimal(10)

    alice = store.load(AccountTable, ALICE)
    assert alice is not None
    assert alice.total_supply_usd == Decimal(6)
    assert alice.total_points == Decimal(60)
    bob = store.load(AccountTable, BOB)
    assert bob is not None
    assert bob.total_points == Decimal(40)


def test_update_protocol_resumes_with_known_tokens(store: EntityStore, fake_w3: FakeWeb3):
    update_protocol(
        w3=fake_w3,  # type: ignore[arg-type]
        store=store,
        deployment=TaikoTakoTako,
        start_block=1,
        end_block=2,
        no_progress=True,
    )
    assert _supplied(store, ALICE) == 5 * ONE_TOKEN

    # The second range has no ReserveInitialized event, so the transfer is only seen if the aToken
    # is loaded from the store
    result = update_protocol(
        w3=fake_w3,  # type: ignore[arg-type]
        store=store,
        deployment=TaikoTakoTako,
        start_block=3,
        end_block=3,
        no_progress=True,
    )

    assert result.events_processed == 1
    assert _supplied(store, ALICE) == 3 * ONE_TOKEN
    assert _supplied(store, BOB) == 2 * ONE_TOKEN


def test_update_protocol_verify_reports_drift(store: EntityStore, fake_w3: FakeWeb3):
    eth = fake_w3.eth
    eth.register_call(A_TOKEN, "balanceOf(address)", "uint256", 3 * ONE_TOKEN, [ALICE])
    eth.register_call(V_TOKEN, "balanceOf(address)", "uint256", ONE_TOKEN, [ALICE])
    # Accrued interest
    eth.register_call(A_TOKEN, "balanceOf(address)", "uint256", 2 * ONE_TOKEN + 7, [BOB])
    eth.register_call(V_TOKEN, "balanceOf(address)", "uint256", 0, [BOB])

    result = update_protocol(
        w3=fake_w3,  # type: ignore[arg-type]
        store=store,
        deployment=TaikoTakoTako,
        start_block=1,
        end_block=5,
        verify=True,
        no_progress=True,
    )

    assert len(result.drifts) == 1
    (drift,) = result.drifts
    assert drift.market_account_id == f"{UNDERLYING}-{BOB}"
    assert drift.token_address == A_TOKEN
    assert drift.recorded == 2 * ONE_TOKEN
    assert drift.actual == 2 * ONE_TOKEN + 7


def test_update_protocol_missing_price_aborts(store: EntityStore, fake_w3: FakeWeb3):
    del fake_w3.eth.call_results[
        (A_TOKEN, encode_function_calldata("getAssetPrice()", None))
    ]

    with pytest.raises(PriceUnavailable):
        update_protocol(
            w3=fake_w3,  # type: ignore[arg-type]
            store=store,
            deployment=TaikoTakoTako,
            start_block=1,
            end_block=5,
            no_progress=True,
        )
