#!/usr/bin/env python3
"""
onchaintestkit Setup Checker

Verifies that the anvil binary and the compiled contract artifacts are
available before a test run.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, Union

from .constants import ANVIL_SEARCH_PATHS, ENV_ANVIL_PATH, ENV_PROJECT_ROOT
from .node import find_anvil


def check_directory_exists(dirpath: Path, description: str) -> bool:
    """Check if a directory exists"""
    if dirpath.exists() and dirpath.is_dir():
        print(f"✅ {description}: {dirpath}")
        return True
    else:
        print(f"❌ {description}: {dirpath} NOT FOUND")
        return False


def check_anvil(anvil_path: Optional[str] = None) -> bool:
    """Check that an anvil binary runs and print its version"""
    anvil_cmd = anvil_path or os.getenv(ENV_ANVIL_PATH)
    if anvil_cmd:
        search_paths = (anvil_cmd,)
    else:
        search_paths = ANVIL_SEARCH_PATHS

    found = find_anvil(search_paths)
    if found is None:
        print("❌ anvil NOT FOUND")
        print("   Install Foundry:")
        print("     curl -L https://foundry.paradigm.xyz | bash")
        print("     foundryup")
        print(f"   or set ${ENV_ANVIL_PATH}")
        return False

    result = subprocess.run([found, '--version'], capture_output=True, text=True, timeout=5)
    anvil_version = result.stdout.strip().splitlines()[0] if result.stdout.strip() else 'unknown version'
    print(f"✅ anvil: {found} ({anvil_version})")
    return True


def check_artifacts(project_root: Union[Path, str, None] = None) -> bool:
    """Check that the project has a forge out/ directory with artifacts"""
    root = project_root or os.getenv(ENV_PROJECT_ROOT)
    if not root:
        print(f"❌ Contract project root not set (pass --project-root or set ${ENV_PROJECT_ROOT})")
        return False

    root = Path(root)
    if not check_directory_exists(root, "Contract project"):
        return False

    out_dir = root / "out"
    if not check_directory_exists(out_dir, "Build output"):
        print("   Run 'forge build' in the contract project")
        return False

    artifact_files = sorted(out_dir.glob("*.sol/*.json"))
    print(f"  Artifacts: {len(artifact_files)}")
    if not artifact_files:
        print("❌ No artifacts found in build output")
        return False
    return True


def check_setup(
    project_root: Union[Path, str, None] = None,
    anvil_path: Optional[str] = None,
) -> bool:
    """
    Run all setup checks and print a report

    Args:
        project_root: Foundry project to check (defaults to $E2E_CONTRACT_PROJECT_ROOT)
        anvil_path: Anvil binary to check (defaults to $ANVIL_PATH, then a search)

    Returns:
        True if every check passed
    """
    print("=" * 80)
    print("🔍 onchaintestkit Setup Checker")
    print("=" * 80)
    print()

    all_checks_passed = True

    print("🔧 Chain Binary:")
    all_checks_passed &= check_anvil(anvil_path)
    print()

    print("📦 Contract Artifacts:")
    all_checks_passed &= check_artifacts(project_root)
    print()

    print("=" * 80)
    if all_checks_passed:
        print("✅ ALL CHECKS PASSED - Ready to run tests!")
    else:
        print("❌ SOME CHECKS FAILED - Please review errors above")
    print("=" * 80)

    return all_checks_passed


def main() -> int:
    return 0 if check_setup() else 1


if __name__ == "__main__":
    sys.exit(main())
