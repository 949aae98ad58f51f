"""
Node module

Ephemeral Anvil nodes for parallel test workers
"""

from .manager import LocalNodeManager, SnapshotId, find_anvil
from .ports import allocate_port, is_port_available
from .rpc import RpcClient, to_quantity

__all__ = [
    'LocalNodeManager',
    'SnapshotId',
    'find_anvil',
    'allocate_port',
    'is_port_available',
    'RpcClient',
    'to_quantity',
]
