from . import config, contracts, database, deployments, exceptions, indexer
from .contracts import CallResult, ContractReader, Web3ContractReader
from .database import EntityStore
from .deployments import DEPLOYMENTS, ProtocolData, ProtocolDeployment, TaikoTakoTako
from .indexer import accrue_daily_snapshot, decode_event, process_block, update_protocol
from .logging import logger
from .version import __version__

__all__ = (
    "DEPLOYMENTS",
    "CallResult",
    "ContractReader",
    "EntityStore",
    "ProtocolData",
    "ProtocolDeployment",
    "TaikoTakoTako",
    "Web3ContractReader",
    "__version__",
    "accrue_daily_snapshot",
    "config",
    "contracts",
    "database",
    "decode_event",
    "deployments",
    "exceptions",
    "indexer",
    "logger",
    "process_block",
    "update_protocol",
)
