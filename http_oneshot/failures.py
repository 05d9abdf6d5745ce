"""Failure classification for request executions.

Every failed execution surfaces as a RequestError whose kind names the phase
that failed. The two timeout predicates are mutually exclusive: a failure is
a connect-phase timeout, a request-phase timeout, or neither.
"""

from __future__ import annotations

from enum import Enum

import httpx


class FailureKind(str, Enum):
    """Why an execution produced no response."""

    INVALID_URI = "invalid_uri"  # Target could not be resolved from the URI
    ENCODING_FAILED = "encoding_failed"  # Body or headers could not be encoded
    CONNECT_TIMEOUT = "connect_timeout"  # Connect bound elapsed before connecting
    REQUEST_TIMEOUT = "request_timeout"  # Post-connect bound elapsed
    CONNECTION_FAILED = "connection_failed"  # Refused, unreachable, DNS failure
    TRANSFER_FAILED = "transfer_failed"  # I/O failure after connecting


class OneshotError(Exception):
    """Base class for http-oneshot errors."""


class RequestError(OneshotError):
    """Raised when an execution fails. Branch on the predicates or kind, not the message."""

    def __init__(self, kind: FailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    def is_connect_timeout(self) -> bool:
        return self.kind is FailureKind.CONNECT_TIMEOUT

    def is_request_timeout(self) -> bool:
        return self.kind is FailureKind.REQUEST_TIMEOUT

    def __repr__(self) -> str:
        return f"RequestError(kind={self.kind.value!r}, message={str(self)!r})"


def classify_transport_error(exc: httpx.HTTPError) -> FailureKind:
    """Map an httpx exception to a FailureKind.

    Order matters: httpx.ConnectTimeout is a TimeoutException, and
    UnsupportedProtocol is a TransportError.
    """
    if isinstance(exc, (httpx.ConnectTimeout, httpx.PoolTimeout)):
        # Waiting for a pool slot happens before the connection exists
        return FailureKind.CONNECT_TIMEOUT
    if isinstance(exc, (httpx.ReadTimeout, httpx.WriteTimeout)):
        return FailureKind.REQUEST_TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        return FailureKind.CONNECTION_FAILED
    if isinstance(exc, httpx.UnsupportedProtocol):
        return FailureKind.INVALID_URI
    return FailureKind.TRANSFER_FAILED
