"""
Contracts module

Artifact loading, CREATE2 address prediction, proxy deployment and the
contract manager
"""

from .artifacts import ArtifactLoader, get_artifact_path
from .create2 import build_init_code, compute_create2_address, encode_constructor_args, normalize_salt
from .manager import SmartContractManager
from .proxy import ProxyDeployer

__all__ = [
    'ArtifactLoader',
    'get_artifact_path',
    'build_init_code',
    'compute_create2_address',
    'encode_constructor_args',
    'normalize_salt',
    'SmartContractManager',
    'ProxyDeployer',
]
