"""
Sweeper Configuration

Builds the runtime configuration from environment keys (optionally loaded
from a .env file) and an optional YAML file of per-network tuning.

Environment keys:
- destination: address every sweep is sent to
- sweep_mnemonic: BIP-39 seed phrase of the swept wallets
- <network>_rpc: RPC endpoint for every enabled network
- sweep_depth: accounts derived per network (default 3)
- sweep_frequency: sweep interval in milliseconds (default 30000)
- sweep_networks: comma-separated list of enabled networks (default all)
- sweep_primary_network: network also swept on every new block (default mainnet)
- sweep_config: YAML overrides file (default sweeper_config.yaml)

Author: HD Sweeper
Version: 1.0.0
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from web3 import Web3

from .network_registry import Network, NetworkConfig, all_networks


class SweeperError(Exception):
    """Base class for sweeper errors"""


class ConfigurationError(SweeperError):
    """Missing or malformed configuration; the process cannot start"""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


# Keys whose absence aborts startup (plus one <network>_rpc per enabled network)
REQUIRED_KEYS = ['destination', 'sweep_mnemonic']

DEFAULT_WALLET_DEPTH = 3
DEFAULT_SWEEP_FREQUENCY_MS = 30 * 1000
DEFAULT_CONFIG_FILE = "sweeper_config.yaml"

# Per-network tuning keys accepted in the YAML file
NETWORK_TUNING_KEYS = (
    'fee_buffer_percent',
    'sample_blocks',
    'min_fee_per_gas',
    'dust_threshold_wei',
    'transfer_gas',
)


@dataclass
class SweeperConfig:
    """Everything the supervisor needs to run"""
    destination: str
    mnemonic: str = field(repr=False)
    networks: Dict[Network, NetworkConfig]
    wallet_depth: int = DEFAULT_WALLET_DEPTH
    sweep_interval: float = DEFAULT_SWEEP_FREQUENCY_MS / 1000
    primary_network: Optional[Network] = Network.MAINNET
    fee_refresh_factor: float = 1.06
    fee_max_age_seconds: Optional[float] = 300.0
    block_poll_interval: float = 4.0
    block_refresh_skip: int = 4
    rpc_timeout: float = 30.0

    @property
    def fee_refresh_interval(self) -> float:
        return self.sweep_interval * self.fee_refresh_factor

    @property
    def fee_max_age(self) -> Optional[float]:
        """Effective estimate max age, never shorter than two refresh periods"""
        return effective_fee_max_age(self.fee_max_age_seconds, self.fee_refresh_interval)


def effective_fee_max_age(max_age: Optional[float], refresh_interval: float) -> Optional[float]:
    """
    Stretch a configured max age to cover the refresh cadence

    An estimate is at most one refresh period old when the timer is healthy,
    so a shorter max age would mark every estimate stale and skip every pass.
    """
    if max_age is None:
        return None
    return max(max_age, 2 * refresh_interval)


def missing_keys(env: Mapping[str, str], networks: List[Network]) -> List[str]:
    """Return the required keys that are absent or blank, in a stable order"""
    required = REQUIRED_KEYS + [network.rpc_env_key for network in networks]
    return [key for key in required if not (env.get(key) or '').strip()]


def _parse_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = (env.get(key) or '').strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _parse_networks(env: Mapping[str, str]) -> List[Network]:
    raw = (env.get('sweep_networks') or '').strip()
    if not raw:
        return all_networks()

    networks: List[Network] = []
    for name in raw.split(','):
        if not name.strip():
            continue
        try:
            network = Network.from_name(name)
        except ValueError as e:
            raise ConfigurationError(str(e))
        if network not in networks:
            networks.append(network)

    if not networks:
        raise ConfigurationError("sweep_networks does not name any network")
    return networks


def _load_yaml_overrides(config_path: Path) -> Dict:
    """
    Load optional YAML tuning

    A missing file means defaults; an unreadable one is logged and ignored.
    """
    if not config_path.exists():
        logger.debug(f"No sweeper config at {config_path}, using defaults")
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring {config_path}: top level must be a mapping")
            return {}
        logger.info(f"Loaded sweeper overrides from {config_path}")
        return data
    except Exception as e:
        logger.warning(f"Failed to load sweeper config {config_path}: {e}, using defaults")
        return {}


def _network_tuning(overrides: Dict, network: Network) -> Dict[str, int]:
    """Merge `defaults` and `networks.<name>` sections for one network"""
    tuning: Dict[str, int] = {}
    sections = [overrides.get('defaults') or {}, (overrides.get('networks') or {}).get(network.value) or {}]
    for section in sections:
        for key, value in section.items():
            if key not in NETWORK_TUNING_KEYS:
                logger.warning(f"Unknown tuning key {key!r} for {network.value}, ignored")
                continue
            try:
                tuning[key] = int(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"{network.value}.{key} must be an integer, got {value!r}")
            if tuning[key] < 0:
                raise ConfigurationError(f"{network.value}.{key} must not be negative")
    if tuning.get('sample_blocks') == 0:
        raise ConfigurationError(f"{network.value}.sample_blocks must be at least 1")
    return tuning


def _validate_rpc_url(key: str, url: str) -> str:
    url = url.strip()
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ConfigurationError(f"{key} must be an http(s) URL")
    return url


def load_config(
    env: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = None,
    config_path: Optional[str] = None,
) -> SweeperConfig:
    """
    Build the sweeper configuration

    Args:
        env: Key/value source, defaults to os.environ (after loading .env)
        env_file: Optional .env path to load into os.environ first
        config_path: YAML overrides path, defaults to $sweep_config

    Returns:
        SweeperConfig

    Raises:
        ConfigurationError: required keys missing or values malformed
    """
    if env is None:
        load_dotenv(env_file)
        env = os.environ

    networks = _parse_networks(env)
    missing = missing_keys(env, networks)
    if missing:
        raise ConfigurationError(
            "Missing required environment variables. "
            f"Make your own .env file and include: {', '.join(missing)}",
            missing=missing,
        )

    destination = env['destination'].strip()
    if not Web3.is_address(destination):
        raise ConfigurationError(f"destination is not a valid address: {destination!r}")

    primary_name = (env.get('sweep_primary_network') or Network.MAINNET.value).strip()
    primary: Optional[Network] = None
    if primary_name.lower() not in ('', 'none'):
        try:
            primary = Network.from_name(primary_name)
        except ValueError as e:
            raise ConfigurationError(str(e))
        if primary not in networks:
            logger.warning(f"Primary network {primary.value} is not enabled, block trigger disabled")
            primary = None

    overrides = _load_yaml_overrides(Path(config_path or env.get('sweep_config') or DEFAULT_CONFIG_FILE))

    network_configs: Dict[Network, NetworkConfig] = {}
    for network in networks:
        rpc_url = _validate_rpc_url(network.rpc_env_key, env[network.rpc_env_key])
        network_configs[network] = replace(
            NetworkConfig(network=network, rpc_url=rpc_url),
            **_network_tuning(overrides, network),
        )

    config = SweeperConfig(
        destination=Web3.to_checksum_address(destination),
        mnemonic=env['sweep_mnemonic'].strip(),
        networks=network_configs,
        wallet_depth=_parse_int(env, 'sweep_depth', DEFAULT_WALLET_DEPTH),
        sweep_interval=_parse_int(env, 'sweep_frequency', DEFAULT_SWEEP_FREQUENCY_MS) / 1000,
        primary_network=primary,
    )

    for key in ('fee_refresh_factor', 'fee_max_age_seconds', 'block_poll_interval', 'rpc_timeout'):
        if key in overrides:
            value = overrides[key]
            if value is None and key == 'fee_max_age_seconds':
                config.fee_max_age_seconds = None
                continue
            try:
                setattr(config, key, float(value))
            except (TypeError, ValueError):
                raise ConfigurationError(f"{key} must be a number, got {value!r}")
    if 'block_refresh_skip' in overrides:
        try:
            config.block_refresh_skip = int(overrides['block_refresh_skip'])
        except (TypeError, ValueError):
            raise ConfigurationError("block_refresh_skip must be an integer")

    logger.info(f"Sweeper configured for {len(network_configs)} networks")
    logger.info(f"  Destination: {config.destination}")
    logger.info(f"  Wallet depth: {config.wallet_depth}")
    logger.info(f"  Sweep interval: {config.sweep_interval:.1f}s")
    logger.info(f"  Primary network: {primary.value if primary else 'none'}")
    for network_config in network_configs.values():
        logger.debug(f"  {network_config!r}")

    return config
