import click
import tqdm
from sqlalchemy import select

from lendpoints.cli import cli
from lendpoints.cli.utils import get_web3_from_config, resolve_block_identifier
from lendpoints.config import get_settings
from lendpoints.database import EntityStore, get_db_session
from lendpoints.database.models import ProtocolTable, SnapshotTable
from lendpoints.deployments import DEPLOYMENTS, TaikoTakoTako
from lendpoints.functions import get_number_for_block_identifier
from lendpoints.indexer.processor import update_protocol
from lendpoints.indexer.registry import get_or_create_protocol
from lendpoints.logging import logger


@cli.group()
def index() -> None:
    """
    Protocol indexing commands
    """


@index.command(
    "update",
    help="Process protocol events and accrue daily points up to the given block.",
)
@click.option(
    "--deployment",
    "deployment_slug",
    type=click.Choice(sorted(DEPLOYMENTS)),
    default=TaikoTakoTako.protocol_data.slug,
    show_default=True,
    help="The protocol deployment to update.",
)
@click.option(
    "--chunk",
    "chunk_size",
    type=click.IntRange(min=1),
    help=(
        "The maximum number of blocks to process before committing changes to the database. "
        "Defaults to `indexer.chunk_size` in the config file."
    ),
)
@click.option(
    "--to-block",
    "to_block",
    help=(
        "The last block in the update range. Must be a block number or a valid block identifier: "
        "'earliest', 'finalized', 'safe', 'latest', 'pending'. An identifier can be given with an "
        "optional offset, e.g. 'latest:-64' stops 64 blocks before the chain tip, "
        "'safe:128' stops 128 blocks after the last 'safe' block. Defaults to "
        "`indexer.to_block` in the config file."
    ),
)
@click.option(
    "--tick-every",
    "tick_every",
    type=click.IntRange(min=1),
    help=(
        "Run the daily snapshot tick on every Nth block. The last block of each chunk is always "
        "ticked. Defaults to `indexer.tick_every` in the config file."
    ),
)
@click.option(
    "--verify/--no-verify",
    "verify",
    default=None,
    help=(
        "Compare ledger balances of touched accounts to token balances at the end of each chunk. "
        "Defaults to `indexer.verify` in the config file."
    ),
)
@click.option(
    "--no-progress",
    "no_progress",
    is_flag=True,
    default=False,
    show_default=True,
    help="Disable progress bars.",
)
def index_update(
    *,
    deployment_slug: str,
    chunk_size: int | None,
    to_block: str | None,
    tick_every: int | None,
    verify: bool | None,
    no_progress: bool,
) -> None:
    """
    Update the protocol ledger and daily snapshots.

    Processes events from the block after the last update to the specified block. Changes are
    committed after each chunk, so an interrupted or failed update resumes from the last committed
    chunk.
    """

    defaults = get_settings().indexer
    chunk_size = chunk_size if chunk_size is not None else defaults.chunk_size
    to_block = to_block if to_block is not None else defaults.to_block
    tick_every = tick_every if tick_every is not None else defaults.tick_every
    verify = verify if verify is not None else defaults.verify

    deployment = DEPLOYMENTS[deployment_slug]
    w3 = get_web3_from_config(chain_id=deployment.chain_id)

    session = get_db_session()
    store = EntityStore(session)

    protocol = get_or_create_protocol(store, deployment.protocol_data)
    initial_start_block = working_start_block = (
        deployment.start_block
        if protocol.last_update_block is None
        else protocol.last_update_block + 1
    )

    last_block = resolve_block_identifier(w3, to_block)
    current_block_number = get_number_for_block_identifier(identifier="latest", w3=w3)
    if last_block > current_block_number:
        msg = f"{to_block} is ahead of the current chain tip."
        raise click.BadParameter(msg, param_hint="--to-block")

    if initial_start_block > last_block:
        session.commit()
        click.echo(f"{deployment.protocol_data.name} has not advanced since the last update.")
        return

    block_pbar = tqdm.tqdm(
        total=last_block - initial_start_block + 1,
        bar_format="{desc} {percentage:3.1f}% |{bar}|",
        leave=False,
        disable=no_progress,
    )

    while True:
        working_end_block = min(last_block, working_start_block + chunk_size - 1)

        block_pbar.set_description(
            f"Processing block range {working_start_block:,} -> {working_end_block:,}"
        )
        block_pbar.refresh()

        try:
            update_protocol(
                w3=w3,
                store=store,
                deployment=deployment,
                start_block=working_start_block,
                end_block=working_end_block,
                tick_every=tick_every,
                verify=verify,
                no_progress=no_progress,
            )
        except Exception:
            session.rollback()
            logger.exception(
                f"Processing failed for block range {working_start_block:,} -> "
                f"{working_end_block:,}. Changes since block {working_start_block:,} were "
                "discarded."
            )
            block_pbar.close()
            msg = "Update failed, see the log for details."
            raise click.ClickException(msg) from None

        # The chunk completed, so stamp the update block and commit to the DB
        protocol = get_or_create_protocol(store, deployment.protocol_data)
        protocol.last_update_block = working_end_block
        session.commit()

        block_pbar.n = working_end_block - initial_start_block + 1

        if working_end_block == last_block:
            break
        working_start_block = working_end_block + 1

    block_pbar.close()


@index.command("status")
@click.option(
    "--deployment",
    "deployment_slug",
    type=click.Choice(sorted(DEPLOYMENTS)),
    default=TaikoTakoTako.protocol_data.slug,
    show_default=True,
    help="The protocol deployment to report.",
)
def index_status(*, deployment_slug: str) -> None:
    """
    Show the update progress and the latest daily snapshot.
    """

    deployment = DEPLOYMENTS[deployment_slug]
    session = get_db_session()

    if (protocol := session.get(ProtocolTable, deployment.protocol_data.protocol_address)) is None:
        click.echo(f"{deployment.protocol_data.name} has not been indexed.")
        return

    click.echo(
        f"{protocol.name} ({protocol.network}): "
        f"last update block {protocol.last_update_block}, "
        f"{protocol.total_pool_count} markets, "
        f"{protocol.cumulative_unique_users} accounts, "
        f"supply ${protocol.total_supply_usd:,.2f}, "
        f"borrow ${protocol.total_borrow_usd:,.2f}, "
        f"{protocol.total_points:,.2f} points"
    )

    snapshot = session.scalar(
        select(SnapshotTable)
        .where(SnapshotTable.protocol_id == protocol.id)
        .order_by(SnapshotTable.timestamp.desc())
        .limit(1)
    )
    if snapshot is not None:
        click.echo(
            f"Snapshot {snapshot.id}: "
            f"{snapshot.account_count}/{protocol.cumulative_unique_users} accounts, "
            f"{'finalized' if snapshot.finalized else 'open'}, "
            f"{snapshot.points:,.2f} points"
        )
