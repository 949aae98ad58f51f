"""Custom exception classes for onchaintestkit."""

from typing import Any, Optional


class OnchainTestKitError(Exception):
    """Base exception for onchaintestkit errors."""

    pass


class PortAllocationError(OnchainTestKitError, OSError):
    """Raised when no free TCP port could be found."""

    pass


class NodeStartupError(OnchainTestKitError, RuntimeError):
    """Raised when the node process could not be brought to Ready."""

    pass


class NodeAlreadyRunningError(OnchainTestKitError, RuntimeError):
    """Raised when start() is called on a node that is starting or ready."""

    pass


class NodeNotStartedError(OnchainTestKitError, RuntimeError):
    """Raised when an RPC operation is attempted without a ready node."""

    def __init__(self, message: str = "Node not started"):
        super().__init__(message)


class InvalidSnapshotError(OnchainTestKitError, ValueError):
    """Raised when reverting to a snapshot this node run did not issue."""

    pass


class ArtifactNotFoundError(OnchainTestKitError, FileNotFoundError):
    """Raised when a compiled contract artifact is missing."""

    pass


class InvalidArtifactError(OnchainTestKitError, ValueError):
    """Raised when an artifact file lacks abi or bytecode."""

    pass


class AbiNotFoundError(OnchainTestKitError, LookupError):
    """Raised when calling an address with no registered ABI."""

    pass


class SetupValidationError(OnchainTestKitError, ValueError):
    """Raised when a setup config is missing required fields."""

    pass


class ManagerNotInitializedError(OnchainTestKitError, RuntimeError):
    """Raised when the contract manager is used before initialize()."""

    pass


class RpcError(OnchainTestKitError, RuntimeError):
    """Raised when the node answers a JSON-RPC request with an error object."""

    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        self.code: Optional[int] = None
        message = error
        if isinstance(error, dict):
            self.code = error.get('code')
            message = error.get('message', error)
        super().__init__(f"RPC {method} failed: {message}")


class TransactionFailedError(OnchainTestKitError, RuntimeError):
    """Raised when a mined transaction has status 0."""

    def __init__(self, tx_hash: str, message: str):
        self.tx_hash = tx_hash
        super().__init__(message)


class ProxyDeploymentError(OnchainTestKitError, RuntimeError):
    """Raised when the deterministic deployment proxy cannot be deployed."""

    pass
