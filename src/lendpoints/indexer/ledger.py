"""
Per-account and per-market balance ledger.

Balances are raw token amounts updated with signed deltas. They are never clamped, so an out-of-order
transfer can drive a balance negative until the action that funded it is applied.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from eth_typing import ChecksumAddress

from lendpoints.checksum_cache import get_checksum_address
from lendpoints.contracts import ContractReader
from lendpoints.database import EntityStore
from lendpoints.database.models import (
    AccountTable,
    MarketAccountTable,
    MarketTable,
    ProtocolAccountTable,
    ProtocolTable,
)
from lendpoints.logging import logger


class PositionSide(Enum):
    """Balance of a `MarketAccountTable` row moved by an event."""

    LENDER = "supplied"
    BORROWER = "borrowed"


def market_account_id(market_id: str, account_id: str) -> str:
    return f"{market_id}-{account_id}"


def protocol_account_id(protocol_id: str, index: int) -> str:
    return f"{protocol_id}-{index}"


def get_or_create_account(
    store: EntityStore,
    protocol: ProtocolTable,
    account_address: ChecksumAddress,
) -> AccountTable:
    """
    Get the existing account or create one. A new account is assigned the next dense index, and the
    protocol's unique user counter is incremented.
    """

    if (account := store.load(AccountTable, account_address)) is None:
        account = AccountTable(
            id=account_address,
            total_supply_usd=Decimal(0),
            total_borrow_usd=Decimal(0),
            total_points=Decimal(0),
        )
        store.save(account)

        index = protocol.cumulative_unique_users
        store.save(
            ProtocolAccountTable(
                id=protocol_account_id(protocol.id, index),
                protocol_id=protocol.id,
                account_id=account.id,
                index=index,
            )
        )
        protocol.cumulative_unique_users += 1
        store.save(protocol)
    return account


def get_account_by_index(
    store: EntityStore,
    protocol: ProtocolTable,
    index: int,
) -> ProtocolAccountTable | None:
    return store.load(ProtocolAccountTable, protocol_account_id(protocol.id, index))


def get_or_create_market_account(
    store: EntityStore,
    market_id: str,
    account_id: str,
) -> MarketAccountTable:
    """
    Get the existing position, or a zeroed one. A new position is not saved by this function.
    """

    if (
        market_account := store.load(MarketAccountTable, market_account_id(market_id, account_id))
    ) is None:
        market_account = MarketAccountTable(
            id=market_account_id(market_id, account_id),
            market_id=market_id,
            account_id=account_id,
            supplied=0,
            borrowed=0,
        )
    return market_account


def adjust_market_account(
    store: EntityStore,
    market_id: str,
    account_id: str,
    side: PositionSide,
    delta: int,
) -> MarketAccountTable:
    """
    Apply a signed delta to one side of a position and save it.
    """

    market_account = get_or_create_market_account(
        store=store,
        market_id=market_id,
        account_id=account_id,
    )
    match side:
        case PositionSide.LENDER:
            market_account.supplied += delta
        case PositionSide.BORROWER:
            market_account.borrowed += delta
    store.save(market_account)

    logger.debug(f"{account_id} {side.value} {delta:+} in market {market_id}")
    return market_account


@dataclass(frozen=True, slots=True)
class PositionDrift:
    market_account_id: str
    token_address: ChecksumAddress
    recorded: int
    actual: int | None


def verify_market_accounts(
    store: EntityStore,
    reader: ContractReader,
    market_accounts: Iterable[MarketAccountTable],
) -> list[PositionDrift]:
    """
    Compare ledger balances to `balanceOf` on the interest-bearing and variable debt tokens.

    On-chain balances include accrued interest, so drift is reported and logged but never raised. A
    reverted balance call is reported with `actual = None`.
    """

    drifts: list[PositionDrift] = []

    for market_account in market_accounts:
        if (market := store.load(MarketTable, market_account.market_id)) is None:
            logger.warning(f"Skipped verification of {market_account.id}: market not found")
            continue

        account_address = get_checksum_address(market_account.account_id)
        for token_id, recorded in (
            (market.output_token_id, market_account.supplied),
            (market.variable_debt_token_id, market_account.borrowed),
        ):
            if token_id is None:
                continue
            token_address = get_checksum_address(token_id)

            balance = reader.try_get_balance_of(token_address, account_address)
            actual = None if balance.reverted else balance.value
            if actual == recorded:
                continue

            drift = PositionDrift(
                market_account_id=market_account.id,
                token_address=token_address,
                recorded=recorded,
                actual=actual,
            )
            drifts.append(drift)
            logger.warning(
                f"{market_account.id}: ledger balance ({recorded}) does not match "
                f"{'reverted call' if actual is None else actual} @ {token_address}"
            )

    return drifts
