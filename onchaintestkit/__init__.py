"""
onchaintestkit: local Anvil nodes and deterministic contract deployment for end-to-end tests
"""

from importlib.metadata import PackageNotFoundError, version

from .constants import DEFAULT_DEV_ADDRESS, DEFAULT_DEV_PRIVATE_KEY, PROXY_ADDRESS
from .contracts import (
    ArtifactLoader,
    ProxyDeployer,
    SmartContractManager,
    build_init_code,
    compute_create2_address,
)
from .exceptions import (
    AbiNotFoundError,
    ArtifactNotFoundError,
    InvalidArtifactError,
    InvalidSnapshotError,
    ManagerNotInitializedError,
    NodeAlreadyRunningError,
    NodeNotStartedError,
    NodeStartupError,
    OnchainTestKitError,
    PortAllocationError,
    ProxyDeploymentError,
    RpcError,
    SetupValidationError,
    TransactionFailedError,
)
from .node import LocalNodeManager, RpcClient, SnapshotId, allocate_port, is_port_available
from .types import (
    ContractArtifact,
    ContractCall,
    ContractDeployment,
    NodeConfig,
    NodeState,
    SetupConfig,
)

try:
    __version__ = version("onchaintestkit")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "LocalNodeManager",
    "RpcClient",
    "SnapshotId",
    "allocate_port",
    "is_port_available",
    "ArtifactLoader",
    "ProxyDeployer",
    "SmartContractManager",
    "build_init_code",
    "compute_create2_address",
    "NodeConfig",
    "NodeState",
    "ContractArtifact",
    "ContractDeployment",
    "ContractCall",
    "SetupConfig",
    "DEFAULT_DEV_ADDRESS",
    "DEFAULT_DEV_PRIVATE_KEY",
    "PROXY_ADDRESS",
    "OnchainTestKitError",
    "PortAllocationError",
    "NodeStartupError",
    "NodeAlreadyRunningError",
    "NodeNotStartedError",
    "InvalidSnapshotError",
    "ArtifactNotFoundError",
    "InvalidArtifactError",
    "AbiNotFoundError",
    "SetupValidationError",
    "ManagerNotInitializedError",
    "RpcError",
    "TransactionFailedError",
    "ProxyDeploymentError",
]
