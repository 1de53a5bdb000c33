"""
Gas Fee Estimator

Estimates a safe gas price per network from recent on-chain activity and
keeps the latest estimate per network in a shared cache.

Heuristic:
1. Sample the latest block and the blocks just before it
2. Average the gas price of every transaction paying a positive gas price
3. Add a fixed percentage buffer (integer arithmetic, truncating)
4. Dual-fee networks: the buffered average is the max fee, the node's
   priority fee suggestion (capped at the max fee) is the tip

Failures never overwrite a cached estimate; sweeps for a network without
an estimate are skipped by the sweeper.

Author: HD Sweeper
Version: 1.0.0
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger
from web3 import Web3

from .chain_client import ChainClient
from .network_registry import FeeModel, Network, NetworkConfig


@dataclass(frozen=True)
class FeeEstimate:
    """
    Fee parameters for one network

    Legacy networks set gas_price; dual-fee networks set max_fee_per_gas and
    max_priority_fee_per_gas.
    """
    network: Network
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    raw_average: int = 0
    block_number: Optional[int] = None
    sample_size: int = 0
    created_at: float = field(default_factory=time.monotonic, compare=False)

    @property
    def fee_model(self) -> FeeModel:
        return FeeModel.LEGACY if self.gas_price is not None else FeeModel.DUAL

    @property
    def fee_per_gas(self) -> int:
        """Unit price used to cost a transfer"""
        if self.gas_price is not None:
            return self.gas_price
        return self.max_fee_per_gas or 0

    def age(self) -> float:
        return time.monotonic() - self.created_at

    def __repr__(self):
        gwei = Web3.from_wei(self.fee_per_gas, 'gwei')
        return f"FeeEstimate({self.network.value}: {gwei} gwei, {self.fee_model.value})"


class FeeCache:
    """
    Latest fee estimate per network

    Each put replaces the whole estimate for a network, so a reader sees
    either the previous or the new estimate.
    """

    def __init__(self):
        self._estimates: Dict[Network, FeeEstimate] = {}

    def get(self, network: Network, max_age: Optional[float] = None) -> Optional[FeeEstimate]:
        """Return the estimate, or None if absent or older than max_age seconds"""
        estimate = self._estimates.get(network)
        if estimate is None:
            return None
        if max_age is not None and estimate.age() > max_age:
            logger.debug(f"Fee estimate for {network.value} is stale ({estimate.age():.0f}s)")
            return None
        return estimate

    def put(self, network: Network, estimate: FeeEstimate):
        self._estimates[network] = estimate

    def clear(self, network: Optional[Network] = None):
        """Drop one network's estimate, or every estimate"""
        if network is None:
            self._estimates.clear()
        else:
            self._estimates.pop(network, None)

    def snapshot(self) -> Dict[Network, FeeEstimate]:
        return dict(self._estimates)

    def __contains__(self, network: Network) -> bool:
        return network in self._estimates


def average_gas_price(transactions: Iterable) -> Tuple[int, int]:
    """
    Average gas price over transactions paying a positive gas price

    Returns:
        (average, qualifying transaction count); (0, 0) when none qualify
    """
    prices = [int(tx.get('gasPrice') or 0) for tx in transactions]
    prices = [price for price in prices if price > 0]
    return sum(prices) // max(1, len(prices)), len(prices)


def apply_buffer(average: int, buffer_percent: int) -> int:
    return average * (100 + buffer_percent) // 100


class FeeEstimator:
    """
    Per-network gas price estimator

    Features:
    - Recent-block average with safety buffer
    - Legacy and dual fee models
    - Writes into a shared FeeCache on success only
    """

    def __init__(
        self,
        clients: Mapping[Network, ChainClient],
        cache: FeeCache,
        configs: Optional[Mapping[Network, NetworkConfig]] = None,
    ):
        """
        Initialize fee estimator

        Args:
            clients: Chain client per network
            cache: Shared cache the estimates are written to
            configs: Network tuning, defaults to each client's config
        """
        self.clients = dict(clients)
        self.cache = cache
        self.configs = dict(configs) if configs else {n: c.config for n, c in self.clients.items()}

        logger.info(f"💰 Fee estimator initialized for {len(self.clients)} networks")

    async def _sample_blocks(self, client: ChainClient, count: int) -> Tuple[int, List]:
        latest = await client.get_block('latest')
        head = int(latest['number'])
        blocks = [latest]
        for offset in range(1, count):
            if head - offset < 0:
                break
            blocks.append(await client.get_block(head - offset))

        transactions: List = []
        for block in blocks:
            transactions.extend(block.get('transactions') or [])
        return head, transactions

    async def estimate(self, network: Network) -> FeeEstimate:
        """
        Compute a fresh estimate for a network

        Raises:
            Any RPC or parsing error; refresh() is the non-raising wrapper
        """
        client = self.clients[network]
        config = self.configs[network]

        head, transactions = await self._sample_blocks(client, config.sample_blocks)
        average, count = average_gas_price(transactions)
        buffered = apply_buffer(average, config.fee_buffer_percent)

        if count == 0:
            logger.warning(f"No priced transactions in last {config.sample_blocks} blocks on {network.value}, estimate is 0")

        if config.fee_model == FeeModel.DUAL:
            suggested_tip = await client.get_max_priority_fee()
            estimate = FeeEstimate(
                network=network,
                max_fee_per_gas=buffered,
                max_priority_fee_per_gas=min(suggested_tip, buffered),
                raw_average=average,
                block_number=head,
                sample_size=count,
            )
        else:
            estimate = FeeEstimate(
                network=network,
                gas_price=buffered,
                raw_average=average,
                block_number=head,
                sample_size=count,
            )

        logger.info(
            f"💰 Gas price estimate for {network.value}: "
            f"{Web3.from_wei(estimate.fee_per_gas, 'gwei')} gwei "
            f"({count} txs, block {head})"
        )
        return estimate

    async def refresh(self, network: Network) -> Optional[FeeEstimate]:
        """
        Estimate and store; on failure keep the previous estimate

        Returns:
            The new estimate, or None when estimation failed
        """
        try:
            estimate = await self.estimate(network)
        except Exception as e:
            logger.warning(f"✗ Failed gas estimation for {network.value}: {e}")
            return None

        self.cache.put(network, estimate)
        return estimate
