from .reader import CallResult, ContractReader, Web3ContractReader

__all__ = (
    "CallResult",
    "ContractReader",
    "Web3ContractReader",
)
