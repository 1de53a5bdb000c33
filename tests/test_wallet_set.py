import pytest

from hd_sweeper.network_registry import Network
from hd_sweeper.wallet_set import DerivationError, derive_account, derive_wallets, validate_seed_phrase

from conftest import FakeChainClient

# Well-known development mnemonic
SEED = "test test test test test test test test test test test junk"
EXPECTED = [
    "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
]


@pytest.fixture
def clients():
    return {
        Network.MAINNET: FakeChainClient(Network.MAINNET),
        Network.BSC: FakeChainClient(Network.BSC),
    }


def test_derives_known_addresses(clients):
    wallets = derive_wallets(SEED, clients, 3)

    assert list(wallets) == [Network.MAINNET, Network.BSC]
    for network, accounts in wallets.items():
        assert [a.address for a in accounts] == EXPECTED
        assert [a.index for a in accounts] == [0, 1, 2]
        assert [a.path for a in accounts] == ["m/44'/60'/0'/0/0", "m/44'/60'/0'/0/1", "m/44'/60'/0'/0/2"]
        assert all(a.network == network for a in accounts)
        assert all(a.client is clients[network] for a in accounts)


def test_derivation_is_deterministic():
    assert derive_account(SEED, 4).address == derive_account(SEED, 4).address
    assert derive_account(SEED, 4).key == derive_account(SEED, 4).key


def test_signing_account_matches_address(clients):
    account = derive_wallets(SEED, clients, 1)[Network.BSC][0]
    assert account.account.address == account.address
    assert account.label == "bsc-0"


def test_whitespace_in_seed_is_normalized(clients):
    wallets = derive_wallets(f"  {SEED.replace(' ', '   ')}\n", clients, 1)
    assert wallets[Network.MAINNET][0].address == EXPECTED[0]


@pytest.mark.parametrize("seed", ["", "   ", None])
def test_missing_seed_is_fatal(clients, seed):
    with pytest.raises(DerivationError):
        derive_wallets(seed, clients, 3)


def test_bad_checksum_is_fatal(clients):
    with pytest.raises(DerivationError):
        # valid words, wrong checksum word (should be "about")
        derive_wallets(" ".join(["abandon"] * 12), clients, 3)


def test_non_positive_depth_is_fatal(clients):
    with pytest.raises(DerivationError):
        derive_wallets(SEED, clients, 0)


def test_validate_seed_phrase_returns_normalized_phrase():
    assert validate_seed_phrase(SEED + "  ") == SEED
