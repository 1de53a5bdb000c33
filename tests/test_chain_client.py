import asyncio

import pytest
from eth_account import Account

from hd_sweeper.chain_client import ChainClient
from hd_sweeper.fee_fetcher import FeeEstimate
from hd_sweeper.network_registry import Network, NetworkConfig

from conftest import DESTINATION

PRIVATE_KEY = "0x" + "11" * 32


class FakeEth:
    def __init__(self, chain_id=56, block_number=100, nonce=7, delay=0.0):
        self._chain_id = chain_id
        self._block_number = block_number
        self._nonce = nonce
        self.delay = delay
        self.raw_sent = []

    @property
    async def chain_id(self):
        return self._chain_id

    @property
    async def block_number(self):
        await asyncio.sleep(self.delay)
        return self._block_number

    async def get_balance(self, address):
        await asyncio.sleep(self.delay)
        return 5 * 10**18

    async def get_transaction_count(self, address, block_identifier):
        assert block_identifier == 'pending'
        return self._nonce

    async def send_raw_transaction(self, raw):
        self.raw_sent.append(raw)
        return bytes.fromhex("ab" * 32)


class FakeWeb3:
    def __init__(self, eth):
        self.eth = eth
        self.provider = object()


def client_for(network, eth, timeout=30.0):
    config = NetworkConfig(network=network, rpc_url="http://localhost:8545")
    return ChainClient(config, timeout=timeout, w3=FakeWeb3(eth))


def test_legacy_transfer_uses_gas_price():
    client = client_for(Network.BSC, FakeEth())
    estimate = FeeEstimate(network=Network.BSC, gas_price=5 * 10**9)

    tx = client.build_transfer("0x" + "22" * 20, DESTINATION.lower(), 1000, 3, estimate, 21000)

    assert tx['to'] == DESTINATION
    assert tx['gasPrice'] == 5 * 10**9
    assert tx['chainId'] == 56
    assert (tx['value'], tx['nonce'], tx['gas']) == (1000, 3, 21000)
    assert 'maxFeePerGas' not in tx


def test_dual_transfer_uses_fee_pair():
    client = client_for(Network.MAINNET, FakeEth(chain_id=1))
    estimate = FeeEstimate(network=Network.MAINNET, max_fee_per_gas=30, max_priority_fee_per_gas=2)

    tx = client.build_transfer("0x" + "22" * 20, DESTINATION, 1000, 0, estimate, 21000)

    assert tx['type'] == 2
    assert (tx['maxFeePerGas'], tx['maxPriorityFeePerGas']) == (30, 2)
    assert tx['chainId'] == 1
    assert 'gasPrice' not in tx


@pytest.mark.asyncio
async def test_send_transfer_signs_with_pending_nonce():
    eth = FakeEth(nonce=7)
    client = client_for(Network.BSC, eth)
    account = Account.from_key(PRIVATE_KEY)
    estimate = FeeEstimate(network=Network.BSC, gas_price=10**9)

    tx_hash = await client.send_transfer(account, DESTINATION, 12345, estimate, 21000)

    assert tx_hash == "0x" + "ab" * 32
    assert len(eth.raw_sent) == 1
    expected = account.sign_transaction(
        client.build_transfer(account.address, DESTINATION, 12345, 7, estimate, 21000)
    )
    assert eth.raw_sent[0] == expected.raw_transaction


@pytest.mark.asyncio
async def test_wait_ready_reports_chain_mismatch():
    status = await client_for(Network.BSC, FakeEth(chain_id=1)).wait_ready()
    assert not status.is_ready
    assert "56" in status.error_message


@pytest.mark.asyncio
async def test_wait_ready_ok():
    status = await client_for(Network.BSC, FakeEth(chain_id=56, block_number=42)).wait_ready()
    assert status.is_ready
    assert status.block_number == 42


@pytest.mark.asyncio
async def test_slow_endpoint_times_out():
    client = client_for(Network.BSC, FakeEth(delay=1.0), timeout=0.05)
    with pytest.raises(asyncio.TimeoutError):
        await client.get_balance(DESTINATION)

    status = await client.wait_ready()
    assert not status.is_ready
