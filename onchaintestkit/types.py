"""Data types and dataclasses for onchaintestkit."""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .constants import (
    DEFAULT_CHAIN_ID,
    DEFAULT_HOST,
    DEFAULT_PORT_RANGE,
    ENV_CHAIN_ID,
    ENV_FORK_BLOCK_NUMBER,
    ENV_FORK_URL,
    ENV_SEED_PHRASE,
)


class NodeState(Enum):
    """Lifecycle states of a LocalNodeManager."""

    STOPPED = 'stopped'
    STARTING = 'starting'
    READY = 'ready'
    STOPPING = 'stopping'
    CRASHED = 'crashed'


@dataclass(frozen=True)
class NodeConfig:
    """
    Configuration for a local Anvil node

    Supplied once to LocalNodeManager and never mutated. Optional fields left
    as None are not passed to the node binary.
    """

    # Chain identity
    chain_id: Optional[int] = DEFAULT_CHAIN_ID
    mnemonic: Optional[str] = None

    # Port selection: explicit port is tried first, then random ports from the range
    port: Optional[int] = None
    port_range: Tuple[int, int] = DEFAULT_PORT_RANGE
    host: str = DEFAULT_HOST

    # Fork settings
    fork_url: Optional[str] = None
    fork_block_number: Optional[int] = None
    fork_retry_backoff: Optional[int] = None  # milliseconds

    # Accounts
    default_balance: Optional[int] = None  # ether per dev account
    total_accounts: Optional[int] = None

    # Block production
    block_time: Optional[int] = None  # seconds, None = mine on every transaction
    block_gas_limit: Optional[int] = None
    no_mining: bool = False
    hardfork: Optional[str] = None

    def __post_init__(self):
        low, high = self.port_range
        if not (0 < low <= high <= 65535):
            raise ValueError(f"Invalid port range: {self.port_range}")
        if self.port is not None and not (0 < self.port <= 65535):
            raise ValueError(f"Invalid port: {self.port}")

    @classmethod
    def from_env(cls, **overrides: Any) -> 'NodeConfig':
        """
        Build a config from E2E_TEST_* environment variables

        Args:
            **overrides: Field values that take precedence over the environment

        Returns:
            NodeConfig instance
        """
        values: Dict[str, Any] = {}

        fork_url = os.getenv(ENV_FORK_URL)
        if fork_url:
            values['fork_url'] = fork_url

        fork_block = os.getenv(ENV_FORK_BLOCK_NUMBER)
        # "0" means latest block, same as unset
        if fork_block and int(fork_block) > 0:
            values['fork_block_number'] = int(fork_block)

        mnemonic = os.getenv(ENV_SEED_PHRASE)
        if mnemonic:
            values['mnemonic'] = mnemonic

        chain_id = os.getenv(ENV_CHAIN_ID)
        if chain_id:
            values['chain_id'] = int(chain_id)

        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes: Any) -> 'NodeConfig':
        """Return a copy of this config with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ContractArtifact:
    """Compiled contract metadata loaded from a forge build output."""

    name: str
    abi: List[Dict[str, Any]]
    bytecode: str  # 0x-prefixed creation bytecode

    def constructor_abi(self) -> Optional[Dict[str, Any]]:
        """Return the constructor entry of the ABI, if any."""
        for item in self.abi:
            if item.get('type') == 'constructor':
                return item
        return None


@dataclass
class ContractDeployment:
    """A request to deploy a contract through the deterministic proxy."""

    name: str  # Artifact name, e.g. "SimpleToken"
    salt: str  # 32-byte hex salt
    deployer: str  # Account sending the deployment transaction
    args: Sequence[Any] = field(default_factory=list)


@dataclass
class ContractCall:
    """A state-changing call on a previously deployed contract."""

    target: str
    function_name: str
    account: str
    args: Sequence[Any] = field(default_factory=list)
    value: Optional[int] = None  # wei


@dataclass
class SetupConfig:
    """
    A batch of deployments followed by calls

    All deployments run before any call; each list runs in input order.
    """

    deployments: List[ContractDeployment] = field(default_factory=list)
    calls: List[ContractCall] = field(default_factory=list)
