import json
import tomllib
from pathlib import Path

import pytest
from click.testing import CliRunner
from fakes import (
    ADDRESSES_PROVIDER_ADDRESS,
    DAY_START,
    ONE_TOKEN,
    POOL_ADDRESS,
    POOL_CONFIGURATOR_ADDRESS,
    FakeWeb3,
    address,
    make_log,
    topic_address,
)

import lendpoints.cli.index as cli_index
from lendpoints import __version__
from lendpoints.cli import cli
from lendpoints.config import get_settings, save_config_to_file
from lendpoints.database import get_db_session
from lendpoints.database.models import MarketAccountTable, ProtocolTable
from lendpoints.deployments import TaikoTakoTako
from lendpoints.indexer.events import LendingPoolEvent

UNDERLYING = address(0x2000)
A_TOKEN = address(0x2001)
V_TOKEN = address(0x2002)
ALICE = address(0xA11CE)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def fake_w3(monkeypatch: pytest.MonkeyPatch) -> FakeWeb3:
    w3 = FakeWeb3()
    w3.eth.register_call(ADDRESSES_PROVIDER_ADDRESS, "getLendingPool()", "address", POOL_ADDRESS)
    w3.eth.register_call(
        ADDRESSES_PROVIDER_ADDRESS,
        "getLendingPoolConfigurator()",
        "address",
        POOL_CONFIGURATOR_ADDRESS,
    )
    for token, symbol in ((UNDERLYING, "WETH"), (A_TOKEN, "tWETH"), (V_TOKEN, "vWETH")):
        w3.eth.register_call(token, "symbol()", "string", symbol)
        w3.eth.register_call(token, "name()", "string", symbol)
        w3.eth.register_call(token, "decimals()", "uint8", 18)
    w3.eth.register_call(A_TOKEN, "getAssetPrice()", "uint256", ONE_TOKEN)
    w3.eth.logs.extend([
        make_log(
            address=POOL_CONFIGURATOR_ADDRESS,
            topics=[
                LendingPoolEvent.RESERVE_INITIALIZED.value,
                topic_address(UNDERLYING),
                topic_address(A_TOKEN),
            ],
            data_types=["address", "address", "address"],
            data_values=[address(0xDEAD), V_TOKEN, address(0xBEEF)],
            block_number=1,
            log_index=0,
        ),
        make_log(
            address=POOL_ADDRESS,
            topics=[
                LendingPoolEvent.DEPOSIT.value,
                topic_address(UNDERLYING),
                topic_address(ALICE),
                topic_address(address(0)),
            ],
            data_types=["address", "uint256"],
            data_values=[ALICE, 4 * ONE_TOKEN],
            block_number=3,
            log_index=0,
        ),
    ])

    monkeypatch.setattr(cli_index, "get_web3_from_config", lambda *, chain_id: w3)  # noqa: ARG005
    return w3


def test_cli_help(runner: CliRunner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("config", "database", "index"):
        assert command in result.output


def test_cli_version(runner: CliRunner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_config_show_json(runner: CliRunner, config_dir: Path):
    result = runner.invoke(cli, ["config", "show", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output)["database"]["path"] == str(config_dir / "lendpoints.db")


def test_cli_config_show_toml(runner: CliRunner, config_dir: Path):  # noqa: ARG001
    result = runner.invoke(cli, ["config", "show"])
    assert result.exit_code == 0
    assert "[database]" in result.output
    assert tomllib.loads(result.output)["rpc"] == {}


def test_cli_config_path(runner: CliRunner, config_dir: Path):
    result = runner.invoke(cli, ["config", "path"])
    assert result.exit_code == 0
    assert result.output.strip() == str(config_dir / "config.toml")


def test_cli_database_reset_declined(runner: CliRunner, config_dir: Path):  # noqa: ARG001
    result = runner.invoke(cli, ["database", "reset"], input="n")
    assert result.exit_code == 1

    result = runner.invoke(cli, ["database", "reset"], input="")
    assert result.exit_code == 1


def test_cli_database_reset(runner: CliRunner, config_dir: Path):
    result = runner.invoke(cli, ["database", "reset"], input="y")
    assert result.exit_code == 0
    assert (config_dir / "lendpoints.db").exists()


def test_cli_database_upgrade_at_head(runner: CliRunner, config_dir: Path):  # noqa: ARG001
    result = runner.invoke(cli, ["database", "upgrade"])
    assert result.exit_code == 0
    assert "already at the latest version" in result.output


def test_cli_database_backup(runner: CliRunner, config_dir: Path):
    result = runner.invoke(cli, ["database", "backup"])
    assert result.exit_code == 0
    assert (config_dir / "lendpoints.db.bak").exists()

    # An existing backup is only replaced after confirmation
    result = runner.invoke(cli, ["database", "backup"], input="n")
    assert result.exit_code == 1
    result = runner.invoke(cli, ["database", "backup"], input="y")
    assert result.exit_code == 0


def test_cli_index_status_not_indexed(runner: CliRunner, config_dir: Path):  # noqa: ARG001
    result = runner.invoke(cli, ["index", "status"])
    assert result.exit_code == 0
    assert "has not been indexed" in result.output


def test_cli_index_unknown_deployment(runner: CliRunner):
    result = runner.invoke(cli, ["index", "update", "--deployment", "aave"])
    assert result.exit_code == 2


def test_cli_index_update_requires_rpc(runner: CliRunner, config_dir: Path):  # noqa: ARG001
    result = runner.invoke(cli, ["index", "update", "--no-progress"])
    assert result.exit_code == 1
    assert isinstance(result.exception, ValueError)


def test_cli_index_update(
    runner: CliRunner,
    config_dir: Path,  # noqa: ARG001
    fake_w3: FakeWeb3,  # noqa: ARG001
):
    result = runner.invoke(
        cli, ["index", "update", "--to-block", "3", "--chunk", "2", "--no-progress"]
    )
    assert result.exit_code == 0, result.output

    session = get_db_session()
    protocol = session.get(ProtocolTable, TaikoTakoTako.protocol_data.protocol_address)
    assert protocol is not None
    assert protocol.last_update_block == 3
    assert protocol.market_ids == [UNDERLYING]
    market_account = session.get(MarketAccountTable, f"{UNDERLYING}-{ALICE}")
    assert market_account is not None
    assert market_account.supplied == 4 * ONE_TOKEN

    result = runner.invoke(cli, ["index", "update", "--to-block", "3", "--no-progress"])
    assert result.exit_code == 0
    assert "has not advanced" in result.output

    result = runner.invoke(cli, ["index", "status"])
    assert result.exit_code == 0
    assert "TAKOTAKO (TAIKO): last update block 3, 1 markets, 1 accounts" in result.output
    assert f"Snapshot {DAY_START}:" in result.output


def test_cli_index_update_uses_config_defaults(
    runner: CliRunner,
    config_dir: Path,  # noqa: ARG001
    fake_w3: FakeWeb3,  # noqa: ARG001
):
    settings = get_settings()
    settings.indexer.to_block = "2"
    settings.indexer.chunk_size = 1
    save_config_to_file(settings)
    get_settings.cache_clear()

    result = runner.invoke(cli, ["index", "update", "--no-progress"])
    assert result.exit_code == 0, result.output

    protocol = get_db_session().get(ProtocolTable, TaikoTakoTako.protocol_data.protocol_address)
    assert protocol is not None
    assert protocol.last_update_block == 2
    assert protocol.market_ids == [UNDERLYING]


def test_cli_index_update_ahead_of_tip(
    runner: CliRunner,
    config_dir: Path,  # noqa: ARG001
    fake_w3: FakeWeb3,  # noqa: ARG001
):
    result = runner.invoke(cli, ["index", "update", "--to-block", "99", "--no-progress"])
    assert result.exit_code == 2
    assert "ahead of the current chain tip" in result.output


def test_cli_index_update_failure_rolls_back(
    runner: CliRunner,
    config_dir: Path,  # noqa: ARG001
    fake_w3: FakeWeb3,
):
    fake_w3.eth.call_results = {
        key: value for key, value in fake_w3.eth.call_results.items() if key[0] != A_TOKEN
    }

    result = runner.invoke(cli, ["index", "update", "--to-block", "3", "--no-progress"])
    assert result.exit_code == 1
    assert "Update failed" in result.output

    # Nothing from the failed first chunk was committed, including the protocol record
    session = get_db_session()
    assert session.get(ProtocolTable, TaikoTakoTako.protocol_data.protocol_address) is None
