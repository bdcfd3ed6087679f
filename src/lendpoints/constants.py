__all__ = (
    "BLOCK_TAGS",
    "BORROW_POINTS_MULTIPLIER",
    "DEFAULT_DECIMALS",
    "INVALID_TOKEN_DECIMALS",
    "NULL_ETH_VALUE",
    "PRICE_CONTEXT",
    "SECONDS_PER_DAY",
    "SNAPSHOT_BATCH_SIZE",
    "SUPPLY_POINTS_MULTIPLIER",
    "UNKNOWN_TOKEN_VALUE",
    "ZERO_ADDRESS",
)

import decimal
from decimal import Decimal

from eth_typing import ChecksumAddress

from lendpoints.checksum_cache import get_checksum_address

ZERO_ADDRESS: ChecksumAddress = get_checksum_address("0x0000000000000000000000000000000000000000")

# Oracle prices are reported with 18 decimal places
DEFAULT_DECIMALS = 18

INVALID_TOKEN_DECIMALS = 0
UNKNOWN_TOKEN_VALUE = "unknown"

# Some non-standard ERC-20 contracts return bytes32(1) from `symbol()` / `name()` instead of a
# string. The value is non-null but does not hold any text.
NULL_ETH_VALUE = bytes(31) + b"\x01"

SECONDS_PER_DAY = 86_400

# Maximum number of accounts visited by a single snapshot tick
SNAPSHOT_BATCH_SIZE = 20_000

# Points policy: each USD of supplied value accrues 10 points per day, each USD of borrowed value
# accrues 50 points per day
SUPPLY_POINTS_MULTIPLIER = Decimal(10)
BORROW_POINTS_MULTIPLIER = Decimal(50)

# uint256 values have up to 78 digits, so the default 28 digit context would round raw balances
PRICE_CONTEXT = decimal.Context(prec=96)

# Named block identifiers accepted by `eth_getBlockByNumber`
BLOCK_TAGS = frozenset({"latest", "earliest", "pending", "safe", "finalized"})
