"""
Protocol, market and token records.

Markets are keyed by their underlying asset. The interest-bearing (output) token and the debt tokens
are linked when the reserve is initialized, and `get_market_by_auxiliary_token` resolves a market
from any of them.
"""

from decimal import Decimal

from eth_typing import ChecksumAddress

from lendpoints.constants import INVALID_TOKEN_DECIMALS, NULL_ETH_VALUE, UNKNOWN_TOKEN_VALUE
from lendpoints.contracts import CallResult, ContractReader
from lendpoints.database import EntityStore
from lendpoints.database.models import MarketTable, ProtocolTable, TokenTable
from lendpoints.deployments import ProtocolData
from lendpoints.logging import logger


def _decode_bytes32_text(result: CallResult[bytes]) -> str | None:
    """
    Decode a bytes32 `symbol()` / `name()` result, returning None for reverts, the non-null marker,
    and values without any text.
    """

    if result.reverted or result.value is None:
        return None
    if result.value == NULL_ETH_VALUE:
        return None

    text = result.value.rstrip(b"\x00").decode("utf-8", errors="replace")
    return text or None


def fetch_token_symbol(reader: ContractReader, token_address: ChecksumAddress) -> str:
    if not (symbol := reader.try_get_symbol(token_address)).reverted and symbol.value is not None:
        return symbol.value

    # non-standard ERC20 implementation
    if (symbol_text := _decode_bytes32_text(reader.try_get_symbol_bytes32(token_address))) is None:
        return UNKNOWN_TOKEN_VALUE
    return symbol_text


def fetch_token_name(reader: ContractReader, token_address: ChecksumAddress) -> str:
    if not (name := reader.try_get_name(token_address)).reverted and name.value is not None:
        return name.value

    # non-standard ERC20 implementation
    if (name_text := _decode_bytes32_text(reader.try_get_name_bytes32(token_address))) is None:
        return UNKNOWN_TOKEN_VALUE
    return name_text


def fetch_token_decimals(reader: ContractReader, token_address: ChecksumAddress) -> int:
    if (decimals := reader.try_get_decimals(token_address)).reverted or decimals.value is None:
        return INVALID_TOKEN_DECIMALS
    return decimals.value


def get_or_create_token(
    store: EntityStore,
    reader: ContractReader,
    token_address: ChecksumAddress,
    market_id: str,
) -> TokenTable:
    """
    Get the existing token or create one with metadata read from the contract.
    """

    if (token := store.load(TokenTable, token_address)) is None:
        token = TokenTable(
            id=token_address,
            symbol=fetch_token_symbol(reader, token_address),
            name=fetch_token_name(reader, token_address),
            decimals=fetch_token_decimals(reader, token_address),
            market_id=market_id,
        )
        store.save(token)
    return token


def get_or_create_protocol(store: EntityStore, protocol_data: ProtocolData) -> ProtocolTable:
    if (protocol := store.load(ProtocolTable, protocol_data.protocol_address)) is None:
        protocol = ProtocolTable(
            id=protocol_data.protocol_address,
            name=protocol_data.name,
            slug=protocol_data.slug,
            network=protocol_data.network,
            total_pool_count=0,
            cumulative_unique_users=0,
            total_supply_usd=Decimal(0),
            total_borrow_usd=Decimal(0),
            total_points=Decimal(0),
            market_ids=[],
        )
        store.save(protocol)
        logger.info(f"Created protocol {protocol_data.name} ({protocol_data.protocol_address})")
    return protocol


def get_or_create_market(
    store: EntityStore,
    reader: ContractReader,
    protocol_data: ProtocolData,
    underlying_address: ChecksumAddress,
) -> MarketTable:
    """
    Get the existing market for the underlying asset, or create one and register it with the
    protocol. Auxiliary tokens and the creation block are set by the ReserveInitialized handler.
    """

    if (market := store.load(MarketTable, underlying_address)) is None:
        logger.info(f"Creating new market {underlying_address}")

        protocol = get_or_create_protocol(store, protocol_data)
        protocol.total_pool_count += 1
        protocol.market_ids = [*protocol.market_ids, underlying_address]
        store.save(protocol)

        input_token = get_or_create_token(
            store=store,
            reader=reader,
            token_address=underlying_address,
            market_id=underlying_address,
        )
        market = MarketTable(
            id=underlying_address,
            protocol_id=protocol.id,
            input_token_id=input_token.id,
            created_timestamp=0,
            created_block_number=0,
        )
        store.save(market)
    return market


def get_protocol_markets(store: EntityStore, protocol: ProtocolTable) -> list[MarketTable | None]:
    """
    Load the protocol's markets in registration order. Missing markets are returned as None.
    """

    return [store.load(MarketTable, market_id) for market_id in protocol.market_ids]


def get_market_by_auxiliary_token(
    store: EntityStore,
    protocol_data: ProtocolData,
    token_address: str,
) -> MarketTable | None:
    """
    Find the market whose output, variable debt, or stable debt token is `token_address`.
    """

    protocol = get_or_create_protocol(store, protocol_data)
    token_address = token_address.lower()

    for market in get_protocol_markets(store, protocol):
        if market is None:
            continue
        for auxiliary_token in (
            market.output_token_id,
            market.variable_debt_token_id,
            market.stable_debt_token_id,
        ):
            if auxiliary_token is not None and auxiliary_token.lower() == token_address:
                return market

    return None


def get_auxiliary_token_addresses(
    store: EntityStore,
    protocol_data: ProtocolData,
) -> dict[ChecksumAddress, MarketTable]:
    """
    Get the interest-bearing and variable debt tokens for all linked markets. These emit the
    Transfer events that move positions between accounts.
    """

    if (protocol := store.load(ProtocolTable, protocol_data.protocol_address)) is None:
        return {}

    tokens: dict[ChecksumAddress, MarketTable] = {}
    for market in get_protocol_markets(store, protocol):
        if market is None:
            continue
        for token_address in (market.output_token_id, market.variable_debt_token_id):
            if token_address is not None:
                tokens[ChecksumAddress(token_address)] = market
    return tokens
