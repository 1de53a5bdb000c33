"""
Wallet Set

Derives the pool of swept accounts from one BIP-39 seed phrase.

Every enabled network gets the same `depth` accounts on the standard
Ethereum path m/44'/60'/0'/0/{index}, each bound to that network's client.

Author: HD Sweeper
Version: 1.0.0
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from mnemonic import Mnemonic

from .chain_client import ChainClient
from .network_registry import Network
from .sweep_config import SweeperError

# HD derivation is opt-in in eth-account
Account.enable_unaudited_hdwallet_features()

MNEMONIC_CHECKER = Mnemonic("english")

DERIVATION_PATH_TEMPLATE = "m/44'/60'/0'/0/{index}"


class DerivationError(SweeperError):
    """Seed phrase absent or malformed; the process cannot start"""


@dataclass(frozen=True)
class DerivedAccount:
    """One swept account on one network"""
    network: Network
    index: int
    path: str
    address: str
    account: LocalAccount = field(repr=False, compare=False)
    client: ChainClient = field(repr=False, compare=False)

    @property
    def label(self) -> str:
        return f"{self.network.value}-{self.index}"


def derivation_path(index: int) -> str:
    return DERIVATION_PATH_TEMPLATE.format(index=index)


def validate_seed_phrase(seed_phrase: str) -> str:
    """Normalize whitespace and check the BIP-39 checksum"""
    if not seed_phrase or not seed_phrase.strip():
        raise DerivationError("Seed phrase is empty")
    normalized = " ".join(seed_phrase.split())
    if not MNEMONIC_CHECKER.check(normalized):
        raise DerivationError("Seed phrase failed BIP-39 validation")
    return normalized


def derive_account(seed_phrase: str, index: int) -> LocalAccount:
    """Signing account at m/44'/60'/0'/0/{index}"""
    return Account.from_mnemonic(seed_phrase, account_path=derivation_path(index))


def derive_wallets(
    seed_phrase: str,
    clients: Mapping[Network, ChainClient],
    depth: int,
) -> Dict[Network, List[DerivedAccount]]:
    """
    Derive the wallet pool

    Args:
        seed_phrase: BIP-39 mnemonic
        clients: Ordered mapping of network to its chain client
        depth: Accounts per network

    Returns:
        Network -> accounts ordered by derivation index

    Raises:
        DerivationError: bad seed phrase or depth
    """
    if depth <= 0:
        raise DerivationError(f"Wallet depth must be positive, got {depth}")

    phrase = validate_seed_phrase(seed_phrase)

    try:
        # Same path gives the same key on every network, derive once
        keys = [derive_account(phrase, index) for index in range(depth)]
    except Exception as e:
        raise DerivationError(f"Key derivation failed: {e}") from e

    wallets: Dict[Network, List[DerivedAccount]] = {}
    for network, client in clients.items():
        wallets[network] = [
            DerivedAccount(
                network=network,
                index=index,
                path=derivation_path(index),
                address=key.address,
                account=key,
                client=client,
            )
            for index, key in enumerate(keys)
        ]
        logger.info(f"Derived {depth} wallets for {network.value}")

    for index, key in enumerate(keys):
        logger.info(f"  [{index}] {derivation_path(index)} -> {key.address}")

    return wallets
