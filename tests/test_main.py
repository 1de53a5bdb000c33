import pytest

from hd_sweeper import main as main_module
from hd_sweeper.main import EXIT_STARTUP_ERROR, build_supervisor, main
from hd_sweeper.network_registry import Network
from hd_sweeper.sweep_config import load_config

SEED = "test test test test test test test test test test test junk"

ENV_KEYS = [
    'destination', 'sweep_mnemonic', 'sweep_networks', 'sweep_depth', 'sweep_frequency',
    'sweep_primary_network', 'sweep_config', 'sweep_log_level',
] + [network.rpc_env_key for network in Network]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # setenv first so keys loaded from .env files are removed on teardown
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_missing_configuration_exits_with_startup_error(clean_env, tmp_path):
    assert main(["--env-file", str(tmp_path / "missing.env")]) == EXIT_STARTUP_ERROR


def test_bad_seed_exits_with_startup_error(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "destination=0x000000000000000000000000000000000000dEaD\n"
        "sweep_mnemonic=not a real seed phrase\n"
        "sweep_networks=sepolia\n"
        "sepolia_rpc=http://localhost:8545\n"
    )
    assert main(["--env-file", str(env_file)]) == EXIT_STARTUP_ERROR


def test_once_runs_a_single_pass(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "destination=0x000000000000000000000000000000000000dEaD\n"
        f"sweep_mnemonic={SEED}\n"
        "sweep_networks=sepolia\n"
        "sepolia_rpc=http://localhost:8545\n"
    )
    calls = []

    async def fake_run_once(supervisor):
        calls.append(supervisor)

    clean_env.setattr(main_module, "run_once", fake_run_once)
    assert main(["--once", "--env-file", str(env_file)]) == 0
    assert list(calls[0].sweepers) == [Network.SEPOLIA]


def test_build_supervisor_wires_wallets(tmp_path):
    config = load_config({
        'destination': "0x000000000000000000000000000000000000dEaD",
        'sweep_mnemonic': SEED,
        'sweep_networks': "sepolia,bsc",
        'sweep_depth': "2",
        'sepolia_rpc': "http://localhost:8545",
        'bsc_rpc': "http://localhost:8546",
    }, config_path=str(tmp_path / "absent.yaml"))

    supervisor = build_supervisor(config)

    assert list(supervisor.sweepers) == [Network.SEPOLIA, Network.BSC]
    accounts = supervisor.sweepers[Network.BSC].accounts
    assert [a.address for a in accounts] == [
        "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
        "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    ]
    assert accounts[0].client is supervisor.clients[Network.BSC]
    assert supervisor.primary_network is None
