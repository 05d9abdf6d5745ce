"""Shared pytest fixtures and hooks for http-oneshot.

Integration tests talk to tests/integration/mock_server.py, started once per
session as a uvicorn subprocess on a port reserved ahead of time.
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Generator

import pytest

from http_oneshot.timeouts import DEFAULT_CONTROLLER

PROJECT_ROOT = Path(__file__).parent.parent
SERVER_HOST = "127.0.0.1"
SERVER_MODULE = "tests.integration.mock_server"
STARTUP_TIMEOUT = 10.0


class PortReservation:
    """An ephemeral port held by a bound socket until the server claims it.

    Holding the socket keeps other processes from grabbing the port between
    choosing it and starting the server.
    """

    def __init__(self, host: str = SERVER_HOST) -> None:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((host, 0))
        self.port: int = self._sock.getsockname()[1]

    def release(self) -> int:
        """Close the holding socket (idempotent) and return the port."""
        if self._sock.fileno() != -1:
            self._sock.close()
        return self.port


def wait_until_listening(host: str, port: int, timeout: float = STARTUP_TIMEOUT) -> bool:
    """Poll until host:port accepts a TCP connection."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.05)
    return False


class MockServer:
    """The mock API server running in a child process."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self._process: subprocess.Popen | None = None
        self.host = SERVER_HOST
        self.port = reservation.port
        self.base_url = f"http://{self.host}:{self.port}"

    def start(self) -> None:
        """Launch the server and block until it accepts connections.

        Raises:
            RuntimeError: If the server is not listening within STARTUP_TIMEOUT.
        """
        port = self._reservation.release()
        self._process = subprocess.Popen(
            [sys.executable, "-m", SERVER_MODULE, "--host", self.host, "--port", str(port)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )
        if wait_until_listening(self.host, port):
            return

        self._process.terminate()
        _, stderr = self._process.communicate(timeout=5)
        self._process = None
        raise RuntimeError(
            f"Mock server did not start on port {port}: "
            f"{stderr.decode(errors='replace') or '(no stderr)'}"
        )

    def stop(self) -> None:
        """Terminate the server, killing it if it ignores SIGTERM."""
        if self._process is None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait(timeout=5)
        self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """One mock server for the whole session."""
    with MockServer(PortReservation()) as server:
        yield server


@pytest.fixture(autouse=True)
def reset_default_timeouts() -> Generator[None, None, None]:
    """Undo changes a test made through set_connect_timeout()."""
    yield
    DEFAULT_CONTROLLER.reset()


# =============================================================================
# Hooks
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests under tests/integration as integration, the rest as unit."""
    for item in items:
        if "integration" in Path(item.fspath).parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
