from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import eth_abi.abi
from eth_typing import ChecksumAddress
from eth_utils.crypto import keccak
from hexbytes import HexBytes
from requests.exceptions import RequestException
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from web3 import Web3
from web3._utils.threads import Timeout
from web3.exceptions import Web3Exception
from web3.types import BlockIdentifier, FilterParams, LogReceipt, TxParams

from lendpoints.constants import BLOCK_TAGS, PRICE_CONTEXT, SECONDS_PER_DAY
from lendpoints.exceptions import LendPointsValueError
from lendpoints.exceptions.fetching import LogFetchingTimeout
from lendpoints.logging import logger
from lendpoints.types.aliases import BlockNumber, Timestamp

INITIAL_LOG_SPAN = 100
MAX_LOG_SPAN = 5_000


def function_selector(function_prototype: str) -> bytes:
    return keccak(text=function_prototype)[:4]


def extract_argument_types_from_function_prototype(function_prototype: str) -> list[str]:
    """
    Get the argument types of a flat prototype, e.g. ['address', 'uint256'] for
    'transfer(address,uint256)'.
    """

    _, _, arguments = function_prototype.partition("(")
    arguments = arguments.rstrip(")")
    return arguments.split(",") if arguments else []


def encode_function_calldata(
    function_prototype: str, function_arguments: Sequence[Any] | None
) -> bytes:
    """
    Build the calldata for a call to the given prototype: the 4-byte selector followed by the
    ABI-encoded arguments.
    """

    return function_selector(function_prototype) + eth_abi.abi.encode(
        types=extract_argument_types_from_function_prototype(function_prototype),
        args=function_arguments or (),
    )


def event_topic(event_prototype: str) -> HexBytes:
    """
    Get the topic0 hash for an event prototype, e.g. 'Transfer(address,address,uint256)'.
    """

    return HexBytes(keccak(text=event_prototype))


def scale_amount(amount: int, decimals: int, price: Decimal = Decimal(1)) -> Decimal:
    """
    Convert a raw token amount to whole units, optionally valued at `price` per unit.
    """

    return PRICE_CONTEXT.multiply(Decimal(amount).scaleb(-decimals, context=PRICE_CONTEXT), price)


def start_of_day(timestamp: Timestamp) -> Timestamp:
    """
    Round a UNIX timestamp down to 00:00 UTC of the same day.
    """

    return timestamp - timestamp % SECONDS_PER_DAY


@dataclass(slots=True)
class _LogSpan:
    """
    Number of blocks requested per `eth_getLogs` call. Cut by a quarter after a failed request and
    grown by 1% after a successful one.
    """

    blocks: int
    ceiling: int

    def shrink(self) -> None:
        self.blocks = max(1, self.blocks * 3 // 4)

    def grow(self) -> None:
        self.blocks = min(self.ceiling, self.blocks + max(1, self.blocks // 100))


def fetch_logs_retrying(
    w3: Web3,
    start_block: BlockNumber,
    end_block: BlockNumber,
    max_retries: int = 10,
    max_blocks_per_request: int | None = None,
    address: list[ChecksumAddress] | None = None,
    topic_signature: Sequence[Sequence[HexBytes] | HexBytes] | None = None,
) -> list[LogReceipt]:
    """
    Fetch all logs for the addresses and topic signature in the inclusive block range.

    The range is requested in chunks of at most `max_blocks_per_request` blocks (5,000 if not
    specified). A failing chunk is retried with exponential backoff and a smaller span. After
    `max_retries` failed attempts on one chunk, `LogFetchingTimeout` is raised.

    See `https://ethereum.org/developers/docs/apis/json-rpc/#eth_getlogs` for the format of topic
    signatures.
    """

    if end_block < start_block:
        msg = "End block cannot be earlier than start block."
        raise ValueError(msg)

    span = _LogSpan(
        blocks=INITIAL_LOG_SPAN,
        ceiling=max_blocks_per_request if max_blocks_per_request is not None else MAX_LOG_SPAN,
    )

    def fetch_chunk(from_block: BlockNumber) -> tuple[BlockNumber, list[LogReceipt]]:
        to_block = min(end_block, from_block + span.blocks - 1)
        logger.debug(f"Fetching logs for blocks {from_block:,} -> {to_block:,}")
        chunk_logs = w3.eth.get_logs(
            FilterParams(
                address=address or [],
                fromBlock=from_block,
                toBlock=to_block,
                topics=topic_signature or [],
            )
        )
        return to_block, list(chunk_logs)

    def reduce_span(retry_state: RetryCallState) -> None:
        span.shrink()
        logger.debug(
            f"Log request failed on attempt {retry_state.attempt_number}, "
            f"retrying with {span.blocks} blocks"
        )

    retrier = Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential_jitter(),
        retry=retry_if_exception_type((Timeout, Web3Exception, RequestException)),
        before_sleep=reduce_span,
    )

    event_logs: list[LogReceipt] = []
    from_block = start_block
    while from_block <= end_block:
        try:
            to_block, chunk_logs = retrier(fetch_chunk, from_block)
        except RetryError:
            raise LogFetchingTimeout(max_retries=max_retries, from_block=from_block) from None

        event_logs.extend(chunk_logs)
        span.grow()
        from_block = to_block + 1

    return event_logs


def get_number_for_block_identifier(identifier: BlockIdentifier | None, w3: Web3) -> BlockNumber:
    """
    Resolve a block number, tag, hex string or big-endian bytes to a block number. `None` resolves to
    the chain tip.
    """

    match identifier:
        case None:
            return w3.eth.get_block_number()
        case bool():
            pass
        case int():
            return identifier
        case bytes():
            return int.from_bytes(identifier, byteorder="big")
        case str() if identifier in BLOCK_TAGS:
            if (block_number := w3.eth.get_block(identifier).get("number")) is None:
                raise LendPointsValueError(message=f"Block {identifier!r} has no number")
            return block_number
        case str():
            try:
                return int(identifier, 16)
            except ValueError:
                pass

    raise LendPointsValueError(message=f"Invalid block identifier {identifier!r}")


def raw_call(
    w3: Web3,
    address: ChecksumAddress,
    calldata: bytes,
    return_types: list[str],
    block_identifier: BlockIdentifier | None = None,
) -> tuple[Any, ...]:
    """
    Perform an `eth_call` and decode the response with the given return types.
    """

    result = w3.eth.call(
        transaction=TxParams(to=address, data=calldata),
        block_identifier=block_identifier,
    )
    return eth_abi.abi.decode(types=return_types, data=result)
