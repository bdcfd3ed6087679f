"""
Event handlers that translate a single decoded event into balance ledger mutations.

Handlers are applied one at a time in chain order. A handler that cannot find the market for an
event logs a warning and returns without mutating anything.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from eth_typing import ChecksumAddress

from lendpoints.constants import ZERO_ADDRESS
from lendpoints.contracts import ContractReader
from lendpoints.database import EntityStore
from lendpoints.database.models import MarketTable
from lendpoints.deployments import ProtocolData
from lendpoints.indexer.events import (
    BlockInfo,
    BorrowEvent,
    DepositEvent,
    Event,
    LiquidationCallEvent,
    RepayEvent,
    ReserveInitializedEvent,
    TransferEvent,
    WithdrawEvent,
)
from lendpoints.indexer.ledger import PositionSide, adjust_market_account, get_or_create_account
from lendpoints.indexer.registry import (
    get_market_by_auxiliary_token,
    get_or_create_market,
    get_or_create_protocol,
    get_or_create_token,
)
from lendpoints.logging import logger


@dataclass(frozen=True, slots=True)
class EventHandlerContext:
    """Context object passed to event handlers containing all necessary state."""

    store: EntityStore
    reader: ContractReader
    protocol_data: ProtocolData
    block: BlockInfo


def _process_reserve_initialized_event(
    context: EventHandlerContext,
    event: ReserveInitializedEvent,
) -> None:
    """
    Link the interest-bearing and debt tokens to the market for the underlying asset.
    """

    market = get_or_create_market(
        store=context.store,
        reader=context.reader,
        protocol_data=context.protocol_data,
        underlying_address=event.asset,
    )

    output_token = get_or_create_token(
        store=context.store,
        reader=context.reader,
        token_address=event.a_token,
        market_id=market.id,
    )
    variable_debt_token = get_or_create_token(
        store=context.store,
        reader=context.reader,
        token_address=event.variable_debt_token,
        market_id=market.id,
    )

    market.name = output_token.name
    market.output_token_id = output_token.id
    market.variable_debt_token_id = variable_debt_token.id
    if event.stable_debt_token != ZERO_ADDRESS:
        market.stable_debt_token_id = event.stable_debt_token
    market.created_block_number = context.block.number
    market.created_timestamp = context.block.timestamp
    context.store.save(market)

    logger.info(
        f"Initialized reserve {event.asset} ({output_token.symbol}): "
        f"aToken {output_token.id}, vToken {variable_debt_token.id}"
    )


def _apply_pool_action(
    context: EventHandlerContext,
    *,
    action: str,
    reserve: ChecksumAddress,
    account_address: ChecksumAddress,
    side: PositionSide,
    delta: int,
) -> None:
    """
    Apply a Deposit / Withdraw / Borrow / Repay amount to the account's position in the reserve.
    """

    if (market := context.store.load(MarketTable, reserve)) is None:
        logger.warning(f"[{action}] Market not found on protocol: {reserve}")
        return

    protocol = get_or_create_protocol(context.store, context.protocol_data)
    account = get_or_create_account(
        store=context.store,
        protocol=protocol,
        account_address=account_address,
    )
    adjust_market_account(
        store=context.store,
        market_id=market.id,
        account_id=account.id,
        side=side,
        delta=delta,
    )


def _process_deposit_event(context: EventHandlerContext, event: DepositEvent) -> None:
    _apply_pool_action(
        context,
        action="Deposit",
        reserve=event.reserve,
        account_address=event.on_behalf_of,
        side=PositionSide.LENDER,
        delta=event.amount,
    )


def _process_withdraw_event(context: EventHandlerContext, event: WithdrawEvent) -> None:
    _apply_pool_action(
        context,
        action="Withdraw",
        reserve=event.reserve,
        account_address=event.to,
        side=PositionSide.LENDER,
        delta=-event.amount,
    )


def _process_borrow_event(context: EventHandlerContext, event: BorrowEvent) -> None:
    _apply_pool_action(
        context,
        action="Borrow",
        reserve=event.reserve,
        account_address=event.on_behalf_of,
        side=PositionSide.BORROWER,
        delta=event.amount,
    )


def _process_repay_event(context: EventHandlerContext, event: RepayEvent) -> None:
    _apply_pool_action(
        context,
        action="Repay",
        reserve=event.reserve,
        account_address=event.user,
        side=PositionSide.BORROWER,
        delta=-event.amount,
    )


def _process_liquidation_call_event(
    context: EventHandlerContext,  # noqa: ARG001
    event: LiquidationCallEvent,
) -> None:
    """
    Liquidations do not mutate the ledger. The collateral seizure and debt repayment arrive as
    token transfers and Repay events.
    """

    logger.debug(
        f"Ignored liquidation of {event.user} by {event.liquidator} "
        f"(collateral {event.collateral_asset}, debt {event.debt_asset}) "
        f"at block {event.block_number}"
    )


def _get_transfer_side(market: MarketTable, token_address: ChecksumAddress) -> PositionSide:
    output_token = market.output_token_id
    if output_token is not None and output_token.lower() == token_address.lower():
        return PositionSide.LENDER
    return PositionSide.BORROWER


def _process_transfer_event(context: EventHandlerContext, event: TransferEvent) -> None:
    """
    Move a position between accounts.

    Mints and burns (either endpoint is the zero address) and transfers to or from the token itself
    are emitted alongside a pool action, which is handled by the pool action's own event.
    """

    if ZERO_ADDRESS in (event.from_, event.to) or event.address in (event.from_, event.to):
        return

    if (
        market := get_market_by_auxiliary_token(
            store=context.store,
            protocol_data=context.protocol_data,
            token_address=event.address,
        )
    ) is None:
        logger.warning(f"[Transfer] Market not found for token: {event.address}")
        return

    side = event.side if event.side is not None else _get_transfer_side(market, event.address)

    protocol = get_or_create_protocol(context.store, context.protocol_data)
    to_account = get_or_create_account(
        store=context.store,
        protocol=protocol,
        account_address=event.to,
    )
    from_account = get_or_create_account(
        store=context.store,
        protocol=protocol,
        account_address=event.from_,
    )

    adjust_market_account(
        store=context.store,
        market_id=market.id,
        account_id=from_account.id,
        side=side,
        delta=-event.value,
    )
    adjust_market_account(
        store=context.store,
        market_id=market.id,
        account_id=to_account.id,
        side=side,
        delta=event.value,
    )


EVENT_HANDLERS: dict[type[Any], Callable[[EventHandlerContext, Any], None]] = {
    ReserveInitializedEvent: _process_reserve_initialized_event,
    DepositEvent: _process_deposit_event,
    WithdrawEvent: _process_withdraw_event,
    BorrowEvent: _process_borrow_event,
    RepayEvent: _process_repay_event,
    LiquidationCallEvent: _process_liquidation_call_event,
    TransferEvent: _process_transfer_event,
}


def dispatch_event(context: EventHandlerContext, event: Event) -> None:
    """
    Dispatch event to appropriate handler based on event type.
    """

    if type(event) not in EVENT_HANDLERS:
        msg = f"Unknown event type: {type(event).__name__}"
        raise ValueError(msg)

    handler = EVENT_HANDLERS[type(event)]
    handler(context, event)
