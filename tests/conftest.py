import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from hd_sweeper.chain_client import ChainStatus
from hd_sweeper.network_registry import Network, NetworkConfig
from hd_sweeper.wallet_set import DerivedAccount, derivation_path

DESTINATION = "0x000000000000000000000000000000000000dEaD"

ADDRESSES = [
    "0x1111111111111111111111111111111111111111",
    "0x2222222222222222222222222222222222222222",
    "0x3333333333333333333333333333333333333333",
]


class FakeChainClient:
    """In-memory stand-in for ChainClient"""

    def __init__(
        self,
        network: Network,
        balances: Optional[Dict[str, int]] = None,
        blocks: Optional[Dict[int, dict]] = None,
        priority_fee: int = 1,
    ):
        self.config = NetworkConfig(network=network, rpc_url=f"http://{network.value}.invalid")
        self.network = network
        self.balances = balances or {}
        self.blocks = blocks or {}
        self.priority_fee = priority_fee
        self.head = max(self.blocks) if self.blocks else 0
        self.sent: List[dict] = []
        self.fail_for: set = set()
        self.balance_gate: Optional[asyncio.Event] = None
        self.ready_gate: Optional[asyncio.Event] = None
        self.block_requests: List = []
        self.closed = False

    async def wait_ready(self) -> ChainStatus:
        if self.ready_gate is not None:
            await self.ready_gate.wait()
        return ChainStatus(self.network.value, True, self.config.chain_id, self.head, datetime.now(timezone.utc))

    async def get_balance(self, address: str) -> int:
        if self.balance_gate is not None:
            await self.balance_gate.wait()
        return self.balances.get(address, 0)

    async def get_block_number(self) -> int:
        return self.head

    async def get_block(self, identifier='latest') -> dict:
        self.block_requests.append(identifier)
        if identifier == 'latest':
            identifier = self.head
        return self.blocks[identifier]

    async def get_max_priority_fee(self) -> int:
        return self.priority_fee

    async def send_transfer(self, account, to, value, fee_estimate, gas) -> str:
        if account in self.fail_for:
            raise ValueError("nonce too low")
        self.sent.append({'account': account, 'to': to, 'value': value, 'fee': fee_estimate, 'gas': gas})
        return f"0x{len(self.sent):064x}"

    async def close(self):
        self.closed = True


def make_block(number: int, gas_prices: List[int]) -> dict:
    return {'number': number, 'transactions': [{'gasPrice': price} for price in gas_prices]}


def make_accounts(client: FakeChainClient, addresses: List[str] = ADDRESSES) -> List[DerivedAccount]:
    return [
        DerivedAccount(
            network=client.network,
            index=index,
            path=derivation_path(index),
            address=address,
            account=f"signer-{index}",
            client=client,
        )
        for index, address in enumerate(addresses)
    ]


@pytest.fixture
def bsc_client():
    return FakeChainClient(Network.BSC)


@pytest.fixture
def mainnet_client():
    return FakeChainClient(Network.MAINNET)
