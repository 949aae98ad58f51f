"""Unit tests for configuration and request types."""

import dataclasses

import pytest

from onchaintestkit.constants import DEFAULT_CHAIN_ID, DEFAULT_PORT_RANGE
from onchaintestkit.types import ContractArtifact, NodeConfig, SetupConfig


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "E2E_TEST_FORK_URL",
        "E2E_TEST_FORK_BLOCK_NUMBER",
        "E2E_TEST_SEED_PHRASE",
        "E2E_TEST_CHAIN_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestNodeConfig:
    def test_defaults(self):
        config = NodeConfig()

        assert config.chain_id == DEFAULT_CHAIN_ID
        assert config.port is None
        assert config.port_range == DEFAULT_PORT_RANGE
        assert config.fork_url is None

    def test_is_immutable(self):
        config = NodeConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.chain_id = 1

    def test_rejects_inverted_port_range(self):
        with pytest.raises(ValueError):
            NodeConfig(port_range=(30000, 10000))

    def test_rejects_out_of_range_port(self):
        with pytest.raises(ValueError):
            NodeConfig(port=70000)

    def test_with_overrides_returns_copy(self):
        config = NodeConfig(chain_id=1)
        changed = config.with_overrides(chain_id=2, block_time=3)

        assert config.chain_id == 1
        assert changed.chain_id == 2
        assert changed.block_time == 3


class TestNodeConfigFromEnv:
    def test_reads_environment(self, clean_env):
        clean_env.setenv("E2E_TEST_FORK_URL", "https://sepolia.base.org")
        clean_env.setenv("E2E_TEST_FORK_BLOCK_NUMBER", "123")
        clean_env.setenv("E2E_TEST_SEED_PHRASE", "test test test")
        clean_env.setenv("E2E_TEST_CHAIN_ID", "1337")

        config = NodeConfig.from_env()

        assert config.fork_url == "https://sepolia.base.org"
        assert config.fork_block_number == 123
        assert config.mnemonic == "test test test"
        assert config.chain_id == 1337

    def test_fork_block_zero_means_latest(self, clean_env):
        clean_env.setenv("E2E_TEST_FORK_BLOCK_NUMBER", "0")

        assert NodeConfig.from_env().fork_block_number is None

    def test_overrides_win_over_environment(self, clean_env):
        clean_env.setenv("E2E_TEST_CHAIN_ID", "1337")

        assert NodeConfig.from_env(chain_id=5).chain_id == 5

    def test_empty_environment_gives_defaults(self, clean_env):
        assert NodeConfig.from_env() == NodeConfig()


class TestContractArtifact:
    def test_constructor_abi(self):
        constructor = {"type": "constructor", "inputs": []}
        artifact = ContractArtifact(
            name="X",
            abi=[{"type": "function", "name": "f"}, constructor],
            bytecode="0x00",
        )
        assert artifact.constructor_abi() == constructor

    def test_constructor_abi_absent(self):
        artifact = ContractArtifact(name="X", abi=[], bytecode="0x00")
        assert artifact.constructor_abi() is None


class TestSetupConfig:
    def test_lists_are_independent(self):
        first = SetupConfig()
        second = SetupConfig()
        first.deployments.append("x")

        assert second.deployments == []
