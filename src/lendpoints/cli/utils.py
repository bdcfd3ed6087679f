from pathlib import Path
from typing import cast

from pydantic import HttpUrl, WebsocketUrl
from web3 import HTTPProvider, IPCProvider, LegacyWebSocketProvider, Web3
from web3.providers.base import BaseProvider
from web3.types import BlockIdentifier

import lendpoints.config
from lendpoints.config import RpcEndpoint, get_settings
from lendpoints.constants import BLOCK_TAGS
from lendpoints.functions import get_number_for_block_identifier
from lendpoints.types.aliases import BlockNumber, ChainId


def _provider_for(endpoint: RpcEndpoint) -> BaseProvider:
    match endpoint:
        case HttpUrl():
            return HTTPProvider(str(endpoint))
        case WebsocketUrl():
            return LegacyWebSocketProvider(str(endpoint))
        case Path():
            return IPCProvider(str(endpoint))

    msg = f"Unsupported RPC endpoint {endpoint!r}"
    raise ValueError(msg)


def get_web3_from_config(*, chain_id: ChainId, optimize: bool = True) -> Web3:
    """
    Connect to the endpoint configured for the chain and confirm that it serves that chain.
    """

    if (endpoint := get_settings().rpc.get(chain_id)) is None:
        msg = (
            f"No RPC endpoint for chain {chain_id} in {lendpoints.config.CONFIG_FILE}. Add one "
            f"under [rpc], e.g. {chain_id} = \"https://...\""
        )
        raise ValueError(msg)

    w3 = Web3(_provider_for(endpoint))
    if (served_chain_id := w3.eth.chain_id) != chain_id:
        msg = f"Endpoint {endpoint} serves chain {served_chain_id}, expected chain {chain_id}."
        raise ValueError(msg)

    if optimize:
        # Responses are read as plain dicts, so the formatting middleware is not needed
        w3.middleware_onion.clear()

    return w3


def resolve_block_identifier(w3: Web3, identifier: str) -> BlockNumber:
    """
    Resolve a block number, or a block tag with an optional offset, e.g. 'latest:-64' is 64 blocks
    before the chain tip and 'safe:128' is 128 blocks after the last 'safe' block.
    """

    if identifier.isdigit():
        return int(identifier)

    if ":" in identifier:
        block_tag, offset = identifier.split(":", 1)
        block_offset = int(offset.strip())
    else:
        block_tag = identifier
        block_offset = 0

    if block_tag not in BLOCK_TAGS:
        msg = f"Invalid block tag: {block_tag}"
        raise ValueError(msg)

    return (
        get_number_for_block_identifier(identifier=cast("BlockIdentifier", block_tag), w3=w3)
        + block_offset
    )
