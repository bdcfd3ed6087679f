"""
Read-only contract calls used by the indexer.

Every call returns a `CallResult` instead of raising, so callers decide whether a revert is a
cosmetic default (token metadata) or fatal (prices feeding the snapshot sweep).
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Protocol

from eth_abi.exceptions import DecodingError
from eth_typing import ChecksumAddress
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.types import BlockIdentifier

from lendpoints.checksum_cache import get_checksum_address
from lendpoints.functions import encode_function_calldata, raw_call
from lendpoints.logging import logger


@dataclass(frozen=True, slots=True)
class CallResult[T]:
    value: T | None = None
    reverted: bool = False

    @classmethod
    def ok(cls, value: T) -> "CallResult[T]":
        return cls(value=value)

    @classmethod
    def revert(cls) -> "CallResult[T]":
        return cls(reverted=True)


class ContractReader(Protocol):
    def try_get_symbol(self, token: ChecksumAddress) -> CallResult[str]: ...
    def try_get_symbol_bytes32(self, token: ChecksumAddress) -> CallResult[bytes]: ...
    def try_get_name(self, token: ChecksumAddress) -> CallResult[str]: ...
    def try_get_name_bytes32(self, token: ChecksumAddress) -> CallResult[bytes]: ...
    def try_get_decimals(self, token: ChecksumAddress) -> CallResult[int]: ...
    def try_get_balance_of(
        self, token: ChecksumAddress, account: ChecksumAddress
    ) -> CallResult[int]: ...
    def try_get_asset_price(self, oracle: ChecksumAddress) -> CallResult[int]: ...


@dataclass(frozen=True, slots=True)
class Web3ContractReader:
    """
    A `ContractReader` backed by `eth_call`, optionally pinned to a block.
    """

    w3: Web3
    block_identifier: BlockIdentifier | None = None

    def at_block(self, block_number: int) -> "Web3ContractReader":
        return dataclasses.replace(self, block_identifier=block_number)

    def _try_call(
        self,
        address: ChecksumAddress,
        function_prototype: str,
        return_type: str,
        function_arguments: list[Any] | None = None,
    ) -> CallResult[Any]:
        try:
            (result,) = raw_call(
                w3=self.w3,
                address=address,
                calldata=encode_function_calldata(
                    function_prototype=function_prototype,
                    function_arguments=function_arguments,
                ),
                return_types=[return_type],
                block_identifier=self.block_identifier,
            )
        except (Web3Exception, DecodingError) as exc:
            logger.debug(f"Call to {function_prototype} at {address} reverted: {exc}")
            return CallResult.revert()
        return CallResult.ok(result)

    def try_get_symbol(self, token: ChecksumAddress) -> CallResult[str]:
        return self._try_call(token, "symbol()", "string")

    def try_get_symbol_bytes32(self, token: ChecksumAddress) -> CallResult[bytes]:
        return self._try_call(token, "symbol()", "bytes32")

    def try_get_name(self, token: ChecksumAddress) -> CallResult[str]:
        return self._try_call(token, "name()", "string")

    def try_get_name_bytes32(self, token: ChecksumAddress) -> CallResult[bytes]:
        return self._try_call(token, "name()", "bytes32")

    def try_get_decimals(self, token: ChecksumAddress) -> CallResult[int]:
        return self._try_call(token, "decimals()", "uint8")

    def try_get_balance_of(self, token: ChecksumAddress, account: ChecksumAddress) -> CallResult[int]:
        return self._try_call(token, "balanceOf(address)", "uint256", [account])

    def try_get_asset_price(self, oracle: ChecksumAddress) -> CallResult[int]:
        return self._try_call(oracle, "getAssetPrice()", "uint256")

    def get_address(self, contract: ChecksumAddress, function_prototype: str) -> ChecksumAddress:
        """
        Read an address-returning getter. Reverts propagate, since callers need the address.
        """

        (address,) = raw_call(
            w3=self.w3,
            address=contract,
            calldata=encode_function_calldata(
                function_prototype=function_prototype,
                function_arguments=None,
            ),
            return_types=["address"],
            block_identifier=self.block_identifier,
        )
        return get_checksum_address(address)
