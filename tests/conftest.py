import logging
from collections.abc import Callable, Generator

import pytest
from eth_typing import ChecksumAddress
from fakes import DAY_START, ONE_TOKEN, POOL_CONFIGURATOR_ADDRESS, FakeContractReader, address
from sqlalchemy import Engine
from sqlalchemy.orm import Session

import lendpoints.config
from lendpoints.config import get_settings
from lendpoints.database import EntityStore, get_db_session
from lendpoints.database.models import MarketTable
from lendpoints.database.operations import create_in_memory_engine
from lendpoints.deployments import ProtocolData, TaikoTakoTako
from lendpoints.indexer.events import BlockInfo, ReserveInitializedEvent
from lendpoints.indexer.handlers import EventHandlerContext, dispatch_event
from lendpoints.logging import logger


@pytest.fixture(scope="session", autouse=True)
def _set_lendpoints_logging():
    """
    Set the logging level to DEBUG for the test run
    """
    logger.setLevel(logging.DEBUG)


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    engine = create_in_memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session: Session) -> EntityStore:
    return EntityStore(session)


@pytest.fixture
def reader() -> FakeContractReader:
    return FakeContractReader()


@pytest.fixture
def protocol_data() -> ProtocolData:
    return TaikoTakoTako.protocol_data


@pytest.fixture
def block() -> BlockInfo:
    return BlockInfo(number=100, timestamp=DAY_START + 3_600)


@pytest.fixture
def context(
    store: EntityStore,
    reader: FakeContractReader,
    protocol_data: ProtocolData,
    block: BlockInfo,
) -> EventHandlerContext:
    return EventHandlerContext(
        store=store,
        reader=reader,
        protocol_data=protocol_data,
        block=block,
    )


@pytest.fixture
def initialize_market(
    context: EventHandlerContext,
    reader: FakeContractReader,
) -> Callable[..., MarketTable]:
    """
    Register token metadata and a price with the fake reader, then apply a ReserveInitialized event
    for the market.
    """

    def _initialize_market(
        underlying: ChecksumAddress,
        a_token: ChecksumAddress,
        variable_debt_token: ChecksumAddress,
        *,
        symbol: str = "WETH",
        decimals: int = 18,
        price: int = ONE_TOKEN,
    ) -> MarketTable:
        reader.symbols[underlying] = symbol
        reader.names[underlying] = f"Wrapped {symbol}"
        reader.decimals[underlying] = decimals
        reader.symbols[a_token] = f"a{symbol}"
        reader.names[a_token] = f"Tako interest bearing {symbol}"
        reader.decimals[a_token] = decimals
        reader.symbols[variable_debt_token] = f"variableDebt{symbol}"
        reader.names[variable_debt_token] = f"Tako variable debt bearing {symbol}"
        reader.decimals[variable_debt_token] = decimals
        reader.prices[a_token] = price

        dispatch_event(
            context,
            ReserveInitializedEvent(
                block_number=context.block.number,
                log_index=0,
                address=POOL_CONFIGURATOR_ADDRESS,
                asset=underlying,
                a_token=a_token,
                stable_debt_token=address(0xDEAD),
                variable_debt_token=variable_debt_token,
                interest_rate_strategy=address(0xBEEF),
            ),
        )
        market = context.store.load(MarketTable, underlying)
        assert market is not None
        return market

    return _initialize_market


@pytest.fixture
def config_dir(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """
    Point the configuration and database at a temporary directory.
    """

    monkeypatch.setattr(lendpoints.config, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(lendpoints.config, "CONFIG_FILE", tmp_path / "config.toml")
    monkeypatch.setattr(lendpoints.config, "DB_PATH", tmp_path / "lendpoints.db")
    get_settings.cache_clear()
    get_db_session.cache_clear()
    yield tmp_path
    get_settings.cache_clear()
    get_db_session.cache_clear()
