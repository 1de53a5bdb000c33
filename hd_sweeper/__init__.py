"""
HD Wallet Sweeper

Forwards native balances of HD-derived wallets on several EVM networks to a
single destination, once the balance clears the cost of the transfer.

Components:
- network_registry: Supported networks, chain ids and fee models
- sweep_config: Environment / YAML configuration with missing-key checks
- chain_client: Async RPC connection per network (web3)
- wallet_set: Deterministic account derivation from one seed phrase
- fee_fetcher: Recent-block gas price estimation and shared fee cache
- sweep_decision: Worth-sweeping rule and transfer amount
- sweep_engine: Per-network sweep passes, timers and block trigger

Failure scopes:
1. Configuration / derivation - fatal at startup
2. Fee estimation - previous estimate kept, network skipped until one exists
3. Transfer submission - one account, the pass continues

Author: HD Sweeper
Version: 1.0.0
"""

from .network_registry import (
    FeeModel,
    Network,
    NetworkConfig,
)
from .sweep_config import (
    ConfigurationError,
    SweeperConfig,
    SweeperError,
    load_config,
)
from .chain_client import (
    ChainClient,
    ChainStatus,
)
from .wallet_set import (
    DerivationError,
    DerivedAccount,
    derive_wallets,
)
from .fee_fetcher import (
    FeeCache,
    FeeEstimate,
    FeeEstimator,
)
from .sweep_decision import (
    TRANSFER_GAS,
    SweepAttempt,
    decide,
)
from .sweep_engine import (
    NetworkSweeper,
    SweepResult,
    SweepSupervisor,
    graceful_shutdown,
)

__all__ = [
    # Networks
    'FeeModel',
    'Network',
    'NetworkConfig',

    # Configuration
    'ConfigurationError',
    'SweeperConfig',
    'SweeperError',
    'load_config',

    # Chain access
    'ChainClient',
    'ChainStatus',

    # Wallets
    'DerivationError',
    'DerivedAccount',
    'derive_wallets',

    # Fees
    'FeeCache',
    'FeeEstimate',
    'FeeEstimator',

    # Decision
    'TRANSFER_GAS',
    'SweepAttempt',
    'decide',

    # Engine
    'NetworkSweeper',
    'SweepResult',
    'SweepSupervisor',
    'graceful_shutdown',
]

__version__ = '1.0.0'
