"""
Sweeper entry point

    hd-sweeper [--once] [--env-file PATH] [--log-level LEVEL]

Runs until SIGINT/SIGTERM. Configuration and derivation errors exit with
status 2.

Author: HD Sweeper
Version: 1.0.0
"""

import argparse
import asyncio
import os
import signal
import sys
from typing import Dict, List, Optional

from loguru import logger

from .chain_client import ChainClient
from .network_registry import Network
from .sweep_config import ConfigurationError, SweeperConfig, load_config
from .sweep_engine import SweepSupervisor, graceful_shutdown
from .wallet_set import DerivationError, derive_wallets

EXIT_OK = 0
EXIT_STARTUP_ERROR = 2

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO"):
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def build_clients(config: SweeperConfig) -> Dict[Network, ChainClient]:
    return {
        network: ChainClient(network_config, timeout=config.rpc_timeout)
        for network, network_config in config.networks.items()
    }


def build_supervisor(config: SweeperConfig) -> SweepSupervisor:
    """Connect clients and derive wallets; raises DerivationError on a bad seed"""
    clients = build_clients(config)
    wallets = derive_wallets(config.mnemonic, clients, config.wallet_depth)
    return SweepSupervisor.from_config(config, clients, wallets)


async def run_once(supervisor: SweepSupervisor):
    """Single fee refresh and sweep pass on every network"""
    try:
        await supervisor.wait_ready()
        await supervisor.refresh_fees()
        for estimate in supervisor.fee_cache.snapshot().values():
            logger.info(f"  {estimate!r}")

        results = await supervisor.sweep_all()
        for network, network_results in results.items():
            swept = [r for r in network_results if r.swept]
            logger.info(f"{network.value}: {len(network_results)} scanned, {len(swept)} swept")
            for result in network_results:
                logger.debug(f"  {result.to_dict()}")
    finally:
        await graceful_shutdown(supervisor)


async def run_forever(supervisor: SweepSupervisor):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, supervisor.stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass
    await supervisor.run()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sweep HD wallet balances to one destination")
    parser.add_argument("--once", action="store_true", help="Run one sweep pass per network and exit")
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: search for .env)")
    parser.add_argument("--config", default=None, help="YAML tuning file (default: $sweep_config)")
    parser.add_argument("--log-level", default=None, help="Log level (default: $sweep_log_level or INFO)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = load_config(env_file=args.env_file, config_path=args.config)
        if args.log_level is None:
            setup_logging(os.environ.get('sweep_log_level', 'INFO'))
        supervisor = build_supervisor(config)
    except (ConfigurationError, DerivationError) as e:
        logger.error(f"✗ Startup failed: {e}")
        return EXIT_STARTUP_ERROR

    if args.once:
        asyncio.run(run_once(supervisor))
    else:
        asyncio.run(run_forever(supervisor))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
