"""Loading compiled contract artifacts from forge build output."""

import json
import os
from pathlib import Path
from typing import Dict, Optional, Union

from eth_utils import add_0x_prefix

from ..constants import ENV_PROJECT_ROOT
from ..exceptions import ArtifactNotFoundError, InvalidArtifactError
from ..types import ContractArtifact


def get_artifact_path(project_root: Union[Path, str], contract_name: str) -> Path:
    """
    Get the forge artifact path for a contract

    Args:
        project_root: Foundry project root
        contract_name: Contract name, e.g. "SimpleToken"

    Returns:
        Path to <root>/out/<Name>.sol/<Name>.json
    """
    return Path(project_root) / "out" / f"{contract_name}.sol" / f"{contract_name}.json"


class ArtifactLoader:
    """
    Reads ABI and bytecode from a forge `out/` directory

    Artifacts are cached after the first load; the build output is not
    watched for changes.
    """

    def __init__(self, project_root: Union[Path, str]):
        self.project_root = Path(project_root)
        self._cache: Dict[str, ContractArtifact] = {}

    @classmethod
    def from_env(cls) -> 'ArtifactLoader':
        """
        Create a loader rooted at $E2E_CONTRACT_PROJECT_ROOT

        Raises:
            ValueError: If the variable is not set
        """
        project_root = os.environ.get(ENV_PROJECT_ROOT)
        if not project_root:
            raise ValueError(
                f"Contract project root required: set ${ENV_PROJECT_ROOT}"
            )
        return cls(project_root)

    def artifact_path(self, contract_name: str) -> Path:
        return get_artifact_path(self.project_root, contract_name)

    def has_artifact(self, contract_name: str) -> bool:
        return contract_name in self._cache or self.artifact_path(contract_name).exists()

    def load(self, contract_name: str) -> ContractArtifact:
        """
        Load a contract artifact

        Args:
            contract_name: Contract name

        Returns:
            ContractArtifact with ABI and 0x-prefixed creation bytecode

        Raises:
            ArtifactNotFoundError: If the artifact file does not exist
            InvalidArtifactError: If the file lacks abi or bytecode.object
        """
        cached: Optional[ContractArtifact] = self._cache.get(contract_name)
        if cached is not None:
            return cached

        artifact_path = self.artifact_path(contract_name)
        if not artifact_path.exists():
            raise ArtifactNotFoundError(
                f"Artifact not found: {artifact_path}. "
                "Make sure to compile contracts with 'forge build'."
            )

        try:
            with open(artifact_path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidArtifactError(f"Artifact {artifact_path} is not valid JSON: {e}") from e

        abi = data.get("abi")
        bytecode = data.get("bytecode")
        # forge nests creation code under bytecode.object; older tools use a flat string
        if isinstance(bytecode, dict):
            bytecode = bytecode.get("object")

        if not isinstance(abi, list):
            raise InvalidArtifactError(f"Artifact {artifact_path} has no 'abi' list")
        if not bytecode or bytecode == "0x":
            raise InvalidArtifactError(
                f"Artifact {artifact_path} has no creation bytecode "
                "(abstract contract or interface?)"
            )

        artifact = ContractArtifact(
            name=contract_name,
            abi=abi,
            bytecode=add_0x_prefix(bytecode),
        )
        self._cache[contract_name] = artifact
        return artifact
