from .events import BlockInfo, decode_event
from .handlers import EventHandlerContext, dispatch_event
from .ledger import PositionSide, get_or_create_account, verify_market_accounts
from .processor import process_block, update_protocol
from .registry import get_or_create_market, get_or_create_protocol, get_or_create_token
from .snapshot import SnapshotProgress, accrue_daily_snapshot

__all__ = (
    "BlockInfo",
    "EventHandlerContext",
    "PositionSide",
    "SnapshotProgress",
    "accrue_daily_snapshot",
    "decode_event",
    "dispatch_event",
    "get_or_create_account",
    "get_or_create_market",
    "get_or_create_protocol",
    "get_or_create_token",
    "process_block",
    "update_protocol",
    "verify_market_accounts",
)
