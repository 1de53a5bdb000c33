"""
Network Registry

Static description of the EVM networks the sweeper knows about.

Each network carries:
- Chain id used when signing transfers
- Fee model (legacy gas price or dual max-fee / priority-fee)
- Whether block headers need proof-of-authority extra-data handling
- Environment key holding its RPC endpoint

Author: HD Sweeper
Version: 1.0.0
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from .sweep_decision import TRANSFER_GAS


class FeeModel(Enum):
    LEGACY = "legacy"
    DUAL = "dual"


class Network(Enum):
    MAINNET = "mainnet"
    SEPOLIA = "sepolia"
    HOLESKY = "holesky"
    POLYGON = "polygon"
    BSC = "bsc"

    @property
    def rpc_env_key(self) -> str:
        return f"{self.value}_rpc"

    @property
    def chain_id(self) -> int:
        return NETWORK_SPECS[self].chain_id

    @property
    def fee_model(self) -> FeeModel:
        return NETWORK_SPECS[self].fee_model

    @classmethod
    def from_name(cls, name: str) -> 'Network':
        """Resolve a network from its name or one of its aliases"""
        key = name.strip().lower()
        for network, aliases in NETWORK_ALIASES.items():
            if key == network.value or key in aliases:
                return network
        raise ValueError(f"Unknown network: {name!r}")


@dataclass(frozen=True)
class NetworkSpec:
    """Static chain parameters"""
    chain_id: int
    fee_model: FeeModel
    currency_symbol: str
    poa: bool = False


NETWORK_SPECS: Dict[Network, NetworkSpec] = {
    Network.MAINNET: NetworkSpec(chain_id=1, fee_model=FeeModel.DUAL, currency_symbol="ETH"),
    Network.SEPOLIA: NetworkSpec(chain_id=11155111, fee_model=FeeModel.DUAL, currency_symbol="ETH"),
    Network.HOLESKY: NetworkSpec(chain_id=17000, fee_model=FeeModel.DUAL, currency_symbol="ETH"),
    Network.POLYGON: NetworkSpec(chain_id=137, fee_model=FeeModel.DUAL, currency_symbol="POL", poa=True),
    Network.BSC: NetworkSpec(chain_id=56, fee_model=FeeModel.LEGACY, currency_symbol="BNB", poa=True),
}

# Names operators tend to use in .env files
NETWORK_ALIASES: Dict[Network, List[str]] = {
    Network.MAINNET: ['ethereum', 'eth', 'homestead'],
    Network.SEPOLIA: ['eth_sepolia'],
    Network.HOLESKY: ['eth_holesky'],
    Network.POLYGON: ['matic', 'polygon pos'],
    Network.BSC: ['bnb', 'bep20', 'bnb smart chain'],
}


@dataclass(frozen=True)
class NetworkConfig:
    """A network resolved against configuration: endpoint plus fee tuning"""
    network: Network
    rpc_url: str
    fee_buffer_percent: int = 2
    sample_blocks: int = 3
    min_fee_per_gas: int = 1
    dust_threshold_wei: int = 0
    transfer_gas: int = TRANSFER_GAS

    @property
    def chain_id(self) -> int:
        return self.network.chain_id

    @property
    def fee_model(self) -> FeeModel:
        return self.network.fee_model

    @property
    def poa(self) -> bool:
        return NETWORK_SPECS[self.network].poa

    def __repr__(self):
        return (f"NetworkConfig({self.network.value}: chain_id={self.chain_id}, "
                f"fee_model={self.fee_model.value}, buffer={self.fee_buffer_percent}%)")


def all_networks() -> List[Network]:
    """Networks in registry order (the order wallets are derived and scanned)"""
    return list(Network)
