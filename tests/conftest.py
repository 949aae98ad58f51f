"""Shared pytest fixtures for onchaintestkit tests."""

import os
import stat
from pathlib import Path

import pytest

from onchaintestkit.contracts import ArtifactLoader
from onchaintestkit.node import find_anvil


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def contracts_root(fixtures_dir: Path) -> Path:
    """Foundry-style project root holding the compiled fixture artifacts."""
    return fixtures_dir


@pytest.fixture
def artifact_loader(contracts_root: Path) -> ArtifactLoader:
    return ArtifactLoader(contracts_root)


def _write_script(path: Path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def fake_anvil(tmp_path: Path) -> str:
    """
    Stand-in node binary: prints the readiness line and idles until killed

    Arguments arrive as `--port <port> --host <host> ...`.
    """
    return _write_script(
        tmp_path / "fake-anvil",
        'if [ "$1" = "--version" ]; then echo "anvil 0.0.0 (fake)"; exit 0; fi\n'
        'echo "Listening on $4:$2"\n'
        "exec sleep 300\n",
    )


@pytest.fixture
def failing_anvil(tmp_path: Path) -> str:
    """Stand-in node binary that exits with an error before becoming ready."""
    return _write_script(
        tmp_path / "failing-anvil",
        'echo "error: unexpected argument" >&2\n'
        "exit 2\n",
    )


@pytest.fixture
def silent_anvil(tmp_path: Path) -> str:
    """Stand-in node binary that never prints the readiness line."""
    return _write_script(tmp_path / "silent-anvil", "exec sleep 300\n")


@pytest.fixture
def crashing_anvil(tmp_path: Path) -> str:
    """Stand-in node binary that becomes ready, then dies."""
    return _write_script(
        tmp_path / "crashing-anvil",
        'echo "Listening on $4:$2"\n'
        "sleep 1\n"
        "exit 3\n",
    )


@pytest.fixture
def exiting_anvil(tmp_path: Path) -> str:
    """Stand-in node binary that exits shortly after printing the readiness line."""
    return _write_script(
        tmp_path / "exiting-anvil",
        'echo "Listening on $4:$2"\n'
        "sleep 0.5\n"
        "exit 3\n",
    )


@pytest.fixture(scope="session")
def anvil_path() -> str:
    """Path to a real anvil binary; skips the test if none is installed."""
    configured = os.getenv("ANVIL_PATH")
    found = find_anvil((configured,)) if configured else find_anvil()
    if found is None:
        pytest.skip("anvil not installed")
    return found


@pytest.fixture
def make_salt():
    """Build a 32-byte hex salt from an integer."""
    def _make_salt(n: int) -> str:
        return "0x" + format(n, "064x")
    return _make_salt


@pytest.fixture
def initial_supply() -> int:
    """Constructor argument the SimpleToken fixture is deployed with."""
    return 1000 * 10**18


@pytest.fixture
def simple_token_address() -> str:
    """CREATE2 address of SimpleToken(initial_supply) with salt 0x...01 via the proxy."""
    return "0xF8f337606D9a9EF6D2291b0212EF36f35C172b6a"


@pytest.fixture
def fixed_supply() -> int:
    """Amount the FixedSupplyToken fixture mints to tx.origin on deployment."""
    return 100_000 * 10**18


@pytest.fixture
def fixed_supply_token_address() -> str:
    """CREATE2 address of FixedSupplyToken (no constructor args) with salt 0x...01 via the proxy."""
    return "0xEFf1a6EB1F88F53bA3bcaC1720c27b94C51C4F99"
