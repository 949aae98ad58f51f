"""Unit tests for port probing and allocation."""

import random
import socket

import pytest

from onchaintestkit.exceptions import PortAllocationError
from onchaintestkit.node.ports import allocate_port, is_port_available


@pytest.fixture
def occupied_port():
    """A loopback port held by a listening socket for the duration of the test."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    s.listen(1)
    yield s.getsockname()[1]
    s.close()


class TestIsPortAvailable:
    def test_occupied_port_is_not_available(self, occupied_port: int):
        assert is_port_available(occupied_port) is False

    def test_released_port_is_available(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        assert is_port_available(port) is True


class TestAllocatePort:
    def test_returns_requested_port_when_free(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]

        assert allocate_port(port) == port

    def test_falls_back_to_range_when_requested_port_taken(self, occupied_port: int, caplog):
        port = allocate_port(occupied_port, port_range=(20000, 29999), rng=random.Random(7))

        assert port != occupied_port
        assert 20000 <= port <= 29999
        assert f"Port {occupied_port} is already in use" in caplog.text

    def test_raises_after_max_attempts(self, occupied_port: int):
        with pytest.raises(PortAllocationError) as exc_info:
            allocate_port(port_range=(occupied_port, occupied_port), max_attempts=3)

        message = str(exc_info.value)
        assert f"{occupied_port}-{occupied_port}" in message
        assert "after 3 attempts" in message

    def test_exhaustion_is_an_os_error(self, occupied_port: int):
        with pytest.raises(OSError):
            allocate_port(occupied_port, port_range=(occupied_port, occupied_port), max_attempts=1)

    def test_two_allocations_can_both_bind(self):
        first = allocate_port()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", first))
            s.listen(1)
            second = allocate_port()
            assert second != first
            assert is_port_available(second)
