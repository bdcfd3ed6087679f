"""
Decoded lending pool and token events.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import eth_abi.abi
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3.types import LogReceipt

from lendpoints.checksum_cache import get_checksum_address
from lendpoints.exceptions import UnknownEventTopic
from lendpoints.functions import event_topic
from lendpoints.indexer.ledger import PositionSide
from lendpoints.types.aliases import BlockNumber, Timestamp


class LendingPoolEvent(Enum):
    RESERVE_INITIALIZED = event_topic("ReserveInitialized(address,address,address,address,address)")
    DEPOSIT = event_topic("Deposit(address,address,address,uint256,uint16)")
    WITHDRAW = event_topic("Withdraw(address,address,address,uint256)")
    BORROW = event_topic("Borrow(address,address,address,uint256,uint256,uint256,uint16)")
    REPAY = event_topic("Repay(address,address,address,uint256)")
    LIQUIDATION_CALL = event_topic(
        "LiquidationCall(address,address,address,uint256,uint256,address,bool)"
    )
    TRANSFER = event_topic("Transfer(address,address,uint256)")


@dataclass(frozen=True, slots=True)
class BlockInfo:
    """Number and timestamp of the block being processed."""

    number: BlockNumber
    timestamp: Timestamp


@dataclass(frozen=True, slots=True)
class ReserveInitializedEvent:
    block_number: int
    log_index: int
    address: ChecksumAddress
    asset: ChecksumAddress
    a_token: ChecksumAddress
    stable_debt_token: ChecksumAddress
    variable_debt_token: ChecksumAddress
    interest_rate_strategy: ChecksumAddress


@dataclass(frozen=True, slots=True)
class DepositEvent:
    block_number: int
    log_index: int
    address: ChecksumAddress
    reserve: ChecksumAddress
    user: ChecksumAddress
    on_behalf_of: ChecksumAddress
    amount: int


@dataclass(frozen=True, slots=True)
class WithdrawEvent:
    block_number: int
    log_index: int
    address: ChecksumAddress
    reserve: ChecksumAddress
    user: ChecksumAddress
    to: ChecksumAddress
    amount: int


@dataclass(frozen=True, slots=True)
class BorrowEvent:
    block_number: int
    log_index: int
    address: ChecksumAddress
    reserve: ChecksumAddress
    user: ChecksumAddress
    on_behalf_of: ChecksumAddress
    amount: int
    borrow_rate_mode: int
    borrow_rate: int


@dataclass(frozen=True, slots=True)
class RepayEvent:
    block_number: int
    log_index: int
    address: ChecksumAddress
    reserve: ChecksumAddress
    user: ChecksumAddress
    repayer: ChecksumAddress
    amount: int


@dataclass(frozen=True, slots=True)
class LiquidationCallEvent:
    block_number: int
    log_index: int
    address: ChecksumAddress
    collateral_asset: ChecksumAddress
    debt_asset: ChecksumAddress
    user: ChecksumAddress
    debt_to_cover: int
    liquidated_collateral_amount: int
    liquidator: ChecksumAddress
    receive_a_token: bool


@dataclass(frozen=True, slots=True)
class TransferEvent:
    """
    An ERC-20 transfer of an interest-bearing or debt token.

    The emitting token's kind is not part of the log. It may be supplied by a caller that subscribed
    to the token, otherwise the handler takes it from the market the token is linked to.
    """

    block_number: int
    log_index: int
    address: ChecksumAddress
    from_: ChecksumAddress
    to: ChecksumAddress
    value: int
    side: PositionSide | None = None


type Event = (
    ReserveInitializedEvent
    | DepositEvent
    | WithdrawEvent
    | BorrowEvent
    | RepayEvent
    | LiquidationCallEvent
    | TransferEvent
)


def _decode_address(input_: bytes) -> ChecksumAddress:
    """
    Get the checksummed address from the given byte stream.
    """

    (address,) = eth_abi.abi.decode(types=["address"], data=input_)
    return get_checksum_address(address)


def _decode_data(event: LogReceipt, types: list[str]) -> tuple:
    return eth_abi.abi.decode(types=types, data=event["data"])


def _decode_reserve_initialized(event: LogReceipt) -> ReserveInitializedEvent:
    # EVENT DEFINITION
    # event ReserveInitialized(
    #     address indexed asset,
    #     address indexed aToken,
    #     address stableDebtToken,
    #     address variableDebtToken,
    #     address interestRateStrategyAddress
    # );

    stable_debt_token, variable_debt_token, interest_rate_strategy = _decode_data(
        event, ["address", "address", "address"]
    )
    return ReserveInitializedEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        asset=_decode_address(event["topics"][1]),
        a_token=_decode_address(event["topics"][2]),
        stable_debt_token=get_checksum_address(stable_debt_token),
        variable_debt_token=get_checksum_address(variable_debt_token),
        interest_rate_strategy=get_checksum_address(interest_rate_strategy),
    )


def _decode_deposit(event: LogReceipt) -> DepositEvent:
    # EVENT DEFINITION
    # event Deposit(
    #     address indexed reserve,
    #     address user,
    #     address indexed onBehalfOf,
    #     uint256 amount,
    #     uint16 indexed referral
    # );

    user, amount = _decode_data(event, ["address", "uint256"])
    return DepositEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        reserve=_decode_address(event["topics"][1]),
        user=get_checksum_address(user),
        on_behalf_of=_decode_address(event["topics"][2]),
        amount=amount,
    )


def _decode_withdraw(event: LogReceipt) -> WithdrawEvent:
    # EVENT DEFINITION
    # event Withdraw(
    #     address indexed reserve,
    #     address indexed user,
    #     address indexed to,
    #     uint256 amount
    # );

    (amount,) = _decode_data(event, ["uint256"])
    return WithdrawEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        reserve=_decode_address(event["topics"][1]),
        user=_decode_address(event["topics"][2]),
        to=_decode_address(event["topics"][3]),
        amount=amount,
    )


def _decode_borrow(event: LogReceipt) -> BorrowEvent:
    # EVENT DEFINITION
    # event Borrow(
    #     address indexed reserve,
    #     address user,
    #     address indexed onBehalfOf,
    #     uint256 amount,
    #     uint256 borrowRateMode,
    #     uint256 borrowRate,
    #     uint16 indexed referral
    # );

    user, amount, borrow_rate_mode, borrow_rate = _decode_data(
        event, ["address", "uint256", "uint256", "uint256"]
    )
    return BorrowEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        reserve=_decode_address(event["topics"][1]),
        user=get_checksum_address(user),
        on_behalf_of=_decode_address(event["topics"][2]),
        amount=amount,
        borrow_rate_mode=borrow_rate_mode,
        borrow_rate=borrow_rate,
    )


def _decode_repay(event: LogReceipt) -> RepayEvent:
    # EVENT DEFINITION
    # event Repay(
    #     address indexed reserve,
    #     address indexed user,
    #     address indexed repayer,
    #     uint256 amount
    # );

    (amount,) = _decode_data(event, ["uint256"])
    return RepayEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        reserve=_decode_address(event["topics"][1]),
        user=_decode_address(event["topics"][2]),
        repayer=_decode_address(event["topics"][3]),
        amount=amount,
    )


def _decode_liquidation_call(event: LogReceipt) -> LiquidationCallEvent:
    # EVENT DEFINITION
    # event LiquidationCall(
    #     address indexed collateralAsset,
    #     address indexed debtAsset,
    #     address indexed user,
    #     uint256 debtToCover,
    #     uint256 liquidatedCollateralAmount,
    #     address liquidator,
    #     bool receiveAToken
    # );

    debt_to_cover, liquidated_collateral_amount, liquidator, receive_a_token = _decode_data(
        event, ["uint256", "uint256", "address", "bool"]
    )
    return LiquidationCallEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        collateral_asset=_decode_address(event["topics"][1]),
        debt_asset=_decode_address(event["topics"][2]),
        user=_decode_address(event["topics"][3]),
        debt_to_cover=debt_to_cover,
        liquidated_collateral_amount=liquidated_collateral_amount,
        liquidator=get_checksum_address(liquidator),
        receive_a_token=receive_a_token,
    )


def _decode_transfer(event: LogReceipt) -> TransferEvent:
    # EVENT DEFINITION
    # event Transfer(
    #     address indexed from,
    #     address indexed to,
    #     uint256 value
    # );

    (value,) = _decode_data(event, ["uint256"])
    return TransferEvent(
        block_number=event["blockNumber"],
        log_index=event["logIndex"],
        address=get_checksum_address(event["address"]),
        from_=_decode_address(event["topics"][1]),
        to=_decode_address(event["topics"][2]),
        value=value,
    )


EVENT_DECODERS: dict[HexBytes, Callable[[LogReceipt], Event]] = {
    LendingPoolEvent.RESERVE_INITIALIZED.value: _decode_reserve_initialized,
    LendingPoolEvent.DEPOSIT.value: _decode_deposit,
    LendingPoolEvent.WITHDRAW.value: _decode_withdraw,
    LendingPoolEvent.BORROW.value: _decode_borrow,
    LendingPoolEvent.REPAY.value: _decode_repay,
    LendingPoolEvent.LIQUIDATION_CALL.value: _decode_liquidation_call,
    LendingPoolEvent.TRANSFER.value: _decode_transfer,
}


def decode_event(event: LogReceipt) -> Event:
    """
    Decode a raw log by its topic.
    """

    topic = HexBytes(event["topics"][0])
    if topic not in EVENT_DECODERS:
        raise UnknownEventTopic(topic=topic)

    return EVENT_DECODERS[topic](event)
