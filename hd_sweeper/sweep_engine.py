"""
Sweep Engine

Drives repeated sweep passes for every configured network:
1. Timer-triggered pass per network (every sweep interval)
2. Block-triggered pass for the primary network
3. Fee refresh per network on an offset timer and on primary blocks
4. Account-scoped failure isolation inside a pass
5. Network-scoped isolation: each network bootstraps and runs its passes
   in its own tasks
6. Overlapping passes of one network are skipped

Author: HD Sweeper
Version: 1.0.0
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Set

from loguru import logger
from web3 import Web3

from .chain_client import ChainClient
from .fee_fetcher import FeeCache, FeeEstimator
from .network_registry import Network, NetworkConfig
from .sweep_config import effective_fee_max_age
from .sweep_decision import decide
from .wallet_set import DerivedAccount


@dataclass
class SweepResult:
    """Outcome for one account in one pass"""
    network: str
    index: int
    address: str
    balance: Optional[int] = None
    amount: Optional[int] = None
    tx_hash: Optional[str] = None
    error_message: Optional[str] = None
    skipped: bool = False
    completed_at: Optional[datetime] = None

    @property
    def swept(self) -> bool:
        return self.tx_hash is not None

    @property
    def failed(self) -> bool:
        return self.error_message is not None

    def to_dict(self) -> Dict:
        data = asdict(self)
        if self.completed_at:
            data['completed_at'] = self.completed_at.isoformat()
        return data


class NetworkSweeper:
    """
    Sweep pass over one network's accounts

    States: idle -> scanning -> idle. A trigger arriving while scanning is
    dropped.
    """

    def __init__(
        self,
        config: NetworkConfig,
        accounts: List[DerivedAccount],
        fee_cache: FeeCache,
        destination: str,
        fee_max_age: Optional[float] = None,
    ):
        self.config = config
        self.network = config.network
        self.accounts = sorted(accounts, key=lambda account: account.index)
        self.fee_cache = fee_cache
        self.destination = destination
        self.fee_max_age = fee_max_age
        self._lock = asyncio.Lock()
        self.passes_completed = 0

    @property
    def is_scanning(self) -> bool:
        return self._lock.locked()

    async def sweep_pass(self) -> List[SweepResult]:
        """
        Scan every account once, in derivation order

        Returns:
            One SweepResult per scanned account; empty when the pass was
            skipped (already running, or no fee estimate)
        """
        name = self.network.value
        if self._lock.locked():
            logger.debug(f"⏭ Sweep pass for {name} still running, skipping trigger")
            return []

        async with self._lock:
            fee_estimate = self.fee_cache.get(self.network, max_age=self.fee_max_age)
            if fee_estimate is None:
                logger.info(f"⏭ No fee estimate for {name} yet, skipping pass")
                return []

            results = []
            for account in self.accounts:
                results.append(await self._sweep_account(account, fee_estimate))

            self.passes_completed += 1
            swept = sum(1 for r in results if r.swept)
            failed = sum(1 for r in results if r.failed)
            if swept or failed:
                logger.info(f"Sweep pass for {name} done: {swept} swept, {failed} failed")
            return results

    async def _sweep_account(self, account: DerivedAccount, fee_estimate) -> SweepResult:
        result = SweepResult(network=self.network.value, index=account.index, address=account.address)
        logger.debug(f"Scanning {account.label}: {account.address}")

        try:
            result.balance = await account.client.get_balance(account.address)
            attempt = decide(
                result.balance,
                fee_estimate,
                transfer_gas=self.config.transfer_gas,
                min_fee_per_gas=self.config.min_fee_per_gas,
                dust_threshold=self.config.dust_threshold_wei,
            )
            if attempt is None:
                result.skipped = True
                return result

            logger.info(f"Worth transacting on {account.label} as {account.address}")
            logger.info(f"  Balance: {attempt.balance} wei")
            logger.info(f"  Transfer cost: {attempt.transfer_cost} wei")

            result.amount = attempt.amount
            result.tx_hash = await account.client.send_transfer(
                account.account,
                self.destination,
                attempt.amount,
                fee_estimate,
                self.config.transfer_gas,
            )
            logger.info(
                f"✓ Swept {Web3.from_wei(attempt.amount, 'ether')} from {account.label} "
                f"to {self.destination}: {result.tx_hash}"
            )

        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.error_message = str(e) or type(e).__name__
            logger.error(f"✗ Error sweeping {account.label} ({account.address}): {result.error_message}")

        finally:
            result.completed_at = datetime.now(timezone.utc)

        return result


class SweepSupervisor:
    """
    Owns every timer, watcher and in-flight pass

    Features:
    - Independent sweep and fee timers per network
    - Block watcher for the primary network
    - Explicit stop() and shutdown() path
    """

    def __init__(
        self,
        clients: Mapping[Network, ChainClient],
        wallets: Mapping[Network, List[DerivedAccount]],
        destination: str,
        sweep_interval: float = 30.0,
        primary_network: Optional[Network] = None,
        fee_refresh_interval: Optional[float] = None,
        fee_max_age: Optional[float] = None,
        block_poll_interval: float = 4.0,
        block_refresh_skip: int = 4,
        fee_cache: Optional[FeeCache] = None,
    ):
        """
        Initialize sweep supervisor

        Args:
            clients: Chain client per network, in scan order
            wallets: Derived accounts per network
            destination: Address every sweep is sent to
            sweep_interval: Seconds between timer-triggered passes
            primary_network: Network also swept on each new block
            fee_refresh_interval: Seconds between fee refreshes (default 1.06x sweep interval)
            fee_max_age: Estimates older than this are treated as missing
                (stretched to at least two fee refresh periods)
            block_poll_interval: Seconds between head block polls
            block_refresh_skip: Block numbers divisible by this skip the fee refresh
            fee_cache: Shared cache (created if omitted)
        """
        self.clients = dict(clients)
        self.destination = destination
        self.sweep_interval = sweep_interval
        self.primary_network = primary_network if primary_network in self.clients else None
        self.fee_refresh_interval = fee_refresh_interval or sweep_interval * 1.06
        self.block_poll_interval = block_poll_interval
        self.block_refresh_skip = block_refresh_skip
        self.fee_max_age = effective_fee_max_age(fee_max_age, self.fee_refresh_interval)

        self.fee_cache = fee_cache if fee_cache is not None else FeeCache()
        self.fee_estimator = FeeEstimator(self.clients, self.fee_cache)
        self.sweepers: Dict[Network, NetworkSweeper] = {
            network: NetworkSweeper(
                client.config,
                list(wallets.get(network, [])),
                self.fee_cache,
                destination,
                fee_max_age=self.fee_max_age,
            )
            for network, client in self.clients.items()
        }

        self._stop_event = asyncio.Event()
        self._loops: List[asyncio.Task] = []
        self._passes: Set[asyncio.Task] = set()
        self._last_block: Optional[int] = None

        logger.info("Sweep supervisor initialized")
        logger.info(f"  Networks: {[n.value for n in self.clients]}")
        logger.info(f"  Sweep interval: {sweep_interval:.1f}s")
        logger.info(f"  Fee refresh interval: {self.fee_refresh_interval:.1f}s")
        if self.fee_max_age is not None:
            logger.info(f"  Fee max age: {self.fee_max_age:.1f}s")
        logger.info(f"  Primary network: {self.primary_network.value if self.primary_network else 'none'}")

    @classmethod
    def from_config(cls, config, clients: Mapping[Network, ChainClient], wallets) -> 'SweepSupervisor':
        return cls(
            clients,
            wallets,
            config.destination,
            sweep_interval=config.sweep_interval,
            primary_network=config.primary_network,
            fee_refresh_interval=config.fee_refresh_interval,
            fee_max_age=config.fee_max_age,
            block_poll_interval=config.block_poll_interval,
            block_refresh_skip=config.block_refresh_skip,
        )

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def trigger_sweep(self, network: Network) -> asyncio.Task:
        """Start a pass for one network as its own task"""
        task = asyncio.create_task(self.sweepers[network].sweep_pass(), name=f"sweep-{network.value}")
        self._passes.add(task)
        task.add_done_callback(self._pass_done)
        return task

    def _pass_done(self, task: asyncio.Task):
        self._passes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"✗ Sweep pass {task.get_name()} crashed: {error}")

    async def refresh_fees(self):
        """Refresh every network's estimate concurrently"""
        await asyncio.gather(*(self.fee_estimator.refresh(network) for network in self.clients))

    async def sweep_all(self) -> Dict[Network, List]:
        """One pass on every network concurrently"""
        networks = list(self.clients)
        results = await asyncio.gather(
            *(self.trigger_sweep(network) for network in networks),
            return_exceptions=True,
        )
        return {
            network: result if isinstance(result, list) else []
            for network, result in zip(networks, results)
        }

    async def wait_ready(self):
        """Check every endpoint concurrently; unready networks stay scheduled"""
        statuses = await asyncio.gather(*(client.wait_ready() for client in self.clients.values()))
        ready = sum(1 for status in statuses if status.is_ready)
        logger.info(f"{ready}/{len(statuses)} endpoints ready")
        return statuses

    async def handle_block(self, network: Network, block_number: int):
        """New head on the primary network: refresh fee and sweep"""
        if network not in self.fee_cache:
            return
        if self.block_refresh_skip <= 0 or block_number % self.block_refresh_skip != 0:
            await self.fee_estimator.refresh(network)
        self.trigger_sweep(network)

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped; returns False once stop() was called"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def _sweep_timer(self, network: Network):
        while await self._sleep(self.sweep_interval):
            self.trigger_sweep(network)

    async def _fee_timer(self, network: Network):
        while await self._sleep(self.fee_refresh_interval):
            await self.fee_estimator.refresh(network)

    async def _block_watcher(self, network: Network):
        client = self.clients[network]
        logger.info(f"Watching new blocks on {network.value}")
        while await self._sleep(self.block_poll_interval):
            try:
                block_number = await client.get_block_number()
            except Exception as e:
                logger.warning(f"Block poll failed on {network.value}: {e}")
                continue

            if self._last_block is not None and block_number <= self._last_block:
                continue
            self._last_block = block_number

            try:
                await self.handle_block(network, block_number)
            except Exception as e:
                logger.error(f"✗ Error handling block {block_number} on {network.value}: {e}")

    async def _run_network(self, network: Network):
        """Readiness check and first estimate for one network, then its timers"""
        await self.clients[network].wait_ready()
        await self.fee_estimator.refresh(network)
        await asyncio.gather(self._sweep_timer(network), self._fee_timer(network))

    async def start(self):
        """Start one bootstrap-then-timers task per network, plus the block watcher"""
        for network in self.clients:
            self._loops.append(asyncio.create_task(self._run_network(network), name=f"network-{network.value}"))
        if self.primary_network is not None:
            self._loops.append(asyncio.create_task(
                self._block_watcher(self.primary_network),
                name=f"block-watcher-{self.primary_network.value}",
            ))

        logger.info(f"✓ Sweeper running ({len(self._loops)} loops)")

    async def run(self):
        """Start and block until stop() is called, then shut down"""
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    def stop(self):
        if not self._stop_event.is_set():
            logger.info("Stop requested")
            self._stop_event.set()

    async def shutdown(self):
        """Cancel loops and in-flight passes, close every client"""
        self._stop_event.set()

        tasks = [task for task in self._loops + list(self._passes) if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()

        for network, client in self.clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.debug(f"Error closing {network.value}: {e}")

        logger.info("✓ Sweeper stopped")


async def graceful_shutdown(supervisor: SweepSupervisor, timeout: float = 15.0):
    """
    Stop the supervisor, giving in-flight work `timeout` seconds

    Example:
        supervisor = SweepSupervisor(...)
        try:
            await supervisor.start()
            ...
        finally:
            await graceful_shutdown(supervisor)
    """
    try:
        logger.info("Starting graceful shutdown...")
        await asyncio.wait_for(supervisor.shutdown(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Shutdown timeout after {timeout}s, forcing cleanup")
        current = asyncio.current_task()
        for task in asyncio.all_tasks():
            if task is not current and not task.done():
                task.cancel()
