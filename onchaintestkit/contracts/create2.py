"""
CREATE2 address prediction

address = keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]
"""

from typing import Any, Sequence, Union

from eth_abi import encode
from eth_utils import decode_hex, keccak, to_canonical_address, to_checksum_address
from eth_utils.abi import collapse_if_tuple

from ..types import ContractArtifact

BytesLike = Union[str, bytes]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return decode_hex(value)


def normalize_salt(salt: BytesLike) -> bytes:
    """
    Validate a CREATE2 salt

    Args:
        salt: 32 bytes, or a hex string of 32 bytes

    Returns:
        The salt as bytes

    Raises:
        ValueError: If the salt is not exactly 32 bytes
    """
    salt_bytes = _to_bytes(salt)
    if len(salt_bytes) != 32:
        raise ValueError(f"Salt must be 32 bytes, got {len(salt_bytes)}")
    return salt_bytes


def encode_constructor_args(artifact: ContractArtifact, args: Sequence[Any]) -> bytes:
    """ABI-encode constructor arguments according to the artifact's constructor inputs."""
    constructor = artifact.constructor_abi()
    inputs = constructor.get('inputs', []) if constructor else []
    if len(inputs) != len(args):
        raise ValueError(
            f"{artifact.name} constructor takes {len(inputs)} arguments, got {len(args)}"
        )
    if not inputs:
        return b''
    types = [collapse_if_tuple(item) for item in inputs]
    return encode(types, list(args))


def build_init_code(artifact: ContractArtifact, args: Sequence[Any] = ()) -> bytes:
    """Creation bytecode followed by the encoded constructor arguments."""
    return _to_bytes(artifact.bytecode) + encode_constructor_args(artifact, args)


def compute_create2_address(deployer: str, salt: BytesLike, init_code: BytesLike) -> str:
    """
    Compute the address a CREATE2 deployment will land at

    Depends only on the three inputs, never on chain state.

    Args:
        deployer: Address executing CREATE2 (the proxy)
        salt: 32-byte salt
        init_code: Creation bytecode including constructor arguments

    Returns:
        Checksummed address
    """
    digest = keccak(
        b'\xff'
        + to_canonical_address(deployer)
        + normalize_salt(salt)
        + keccak(_to_bytes(init_code))
    )
    return to_checksum_address(digest[12:])
