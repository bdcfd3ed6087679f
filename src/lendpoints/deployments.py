from dataclasses import dataclass

from eth_typing import ChecksumAddress

from lendpoints.checksum_cache import get_checksum_address
from lendpoints.types.aliases import ChainId


@dataclass(slots=True, frozen=True)
class ProtocolData:
    """
    Identity of a protocol deployment. Passed explicitly to every handler instead of being read from
    a global, so that several deployments (or test scenarios) can share one store.
    """

    protocol_address: ChecksumAddress
    name: str
    slug: str
    network: str


@dataclass(slots=True, frozen=True)
class ProtocolDeployment:
    protocol_data: ProtocolData
    chain_id: ChainId
    # First block to scan when the protocol has never been updated
    start_block: int

    @property
    def addresses_provider(self) -> ChecksumAddress:
        return self.protocol_data.protocol_address


TaikoTakoTako = ProtocolDeployment(
    protocol_data=ProtocolData(
        protocol_address=get_checksum_address("0x225BD906D398B1748d7DeF4a35A96f6E5eFD1420"),
        name="TAKOTAKO",
        slug="takotako",
        network="TAIKO",
    ),
    chain_id=167000,
    start_block=0,
)

DEPLOYMENTS: dict[str, ProtocolDeployment] = {
    deployment.protocol_data.slug: deployment for deployment in (TaikoTakoTako,)
}
