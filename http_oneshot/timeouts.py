"""Timeout Controller - Shared connect-timeout configuration.

A TimeoutController is handed to (or created by) an Executor and read once at
the start of every execution, so a new value applies to executions that
start after the setter returns and never to one already in flight.

The module-level functions operate on DEFAULT_CONTROLLER, which backs the
module-level execute()/do() helpers in http_oneshot.executor.
"""

from __future__ import annotations

from threading import Lock

DEFAULT_CONNECT_TIMEOUT = 1.0


class TimeoutController:
    """Holds the connect timeout and the default post-connect timeout.

    Values are seconds. No validation is applied: 0 leaves the connect phase
    unbounded and a negative value fails every execution with a connect
    timeout before any connection is attempted.
    """

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        default_request_timeout: float | None = None,
    ) -> None:
        self._lock = Lock()
        self._connect_timeout = connect_timeout
        self._default_request_timeout = default_request_timeout

    def set_connect_timeout(self, seconds: float) -> None:
        with self._lock:
            self._connect_timeout = seconds

    def get_connect_timeout(self) -> float:
        with self._lock:
            return self._connect_timeout

    def set_default_request_timeout(self, seconds: float | None) -> None:
        """Set the post-connect bound used when a RequestSpec has no timeout."""
        with self._lock:
            self._default_request_timeout = seconds

    def get_default_request_timeout(self) -> float | None:
        with self._lock:
            return self._default_request_timeout

    def reset(self) -> None:
        """Restore the defaults (1.0s connect, no post-connect bound)."""
        with self._lock:
            self._connect_timeout = DEFAULT_CONNECT_TIMEOUT
            self._default_request_timeout = None


DEFAULT_CONTROLLER = TimeoutController()


def set_connect_timeout(seconds: float) -> None:
    """Replace the process-wide connect timeout."""
    DEFAULT_CONTROLLER.set_connect_timeout(seconds)


def get_connect_timeout() -> float:
    """Current process-wide connect timeout in seconds."""
    return DEFAULT_CONTROLLER.get_connect_timeout()
