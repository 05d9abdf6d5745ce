"""Executor - Sends one request and returns a normalized response.

An execution has two independently bounded phases:

1. Connect: TCP connect and TLS handshake, together bounded by the
   TimeoutController's connect timeout, measured from the start of the
   execution. Each step gets the remaining budget as its socket timeout.
   Name resolution runs inside the TCP connect call and cannot be
   interrupted, so a stalled resolver can outlast the bound.
2. Exchange: send, wait for response headers, read the full body, bounded by
   the request timeout. The deadline is armed when the connection completes,
   which httpcore reports through the ``trace`` request extension.

Which bound elapsed decides the FailureKind, so a single failure is never
both a connect timeout and a request timeout.
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any

import httpx

from http_oneshot.body_encoder import EncodedBody, encode_body
from http_oneshot.failures import FailureKind, RequestError, classify_transport_error
from http_oneshot.models import RequestSpec, ResponseResult
from http_oneshot.timeouts import DEFAULT_CONTROLLER, TimeoutController

logger = logging.getLogger(__name__)

# httpcore trace events that mark an established connection. TLS completion
# follows TCP completion and re-arms the deadline.
_CONNECTED_EVENTS = frozenset({
    "connection.connect_tcp.complete",
    "connection.connect_unix_socket.complete",
    "connection.start_tls.complete",
})

# httpcore trace events that start a step of the connect phase. Each step
# shares what is left of one connect budget.
_CONNECT_STEP_EVENTS = frozenset({
    "connection.connect_tcp.started",
    "connection.connect_unix_socket.started",
    "connection.start_tls.started",
})

# Floor for the per-phase timeout handed to the transport. A zero socket
# timeout would put the socket in non-blocking mode instead of expiring.
_MIN_PHASE_TIMEOUT = 0.001

_FAILURE_LABELS = {
    FailureKind.INVALID_URI: "invalid URI",
    FailureKind.ENCODING_FAILED: "encoding error",
    FailureKind.CONNECT_TIMEOUT: "connect timeout",
    FailureKind.REQUEST_TIMEOUT: "request timeout",
    FailureKind.CONNECTION_FAILED: "connection error",
    FailureKind.TRANSFER_FAILED: "transfer error",
}


class _PhaseDeadlines:
    """Deadlines for the connect phase and the post-connect exchange.

    Installed as the httpcore trace callback. The connect clock starts when
    the execution starts; each TCP connect or TLS handshake receives the
    connect budget that remains. A connect event arms the exchange deadline,
    and every later send/receive phase start rewrites the request's
    read/write timeouts to the exchange budget that remains.
    """

    def __init__(
        self,
        timeouts: dict[str, float | None],
        budget: float | None,
        connect_budget: float | None = None,
        started_at: float | None = None,
    ) -> None:
        self._timeouts = timeouts
        self._budget = budget
        self._connect_budget = connect_budget
        self._started_at = time.monotonic() if started_at is None else started_at
        self._armed_at: float | None = None

    def arm(self) -> None:
        """Arm at the current instant unless a connect event already did."""
        if self._armed_at is None:
            self._armed_at = time.monotonic()

    def remaining(self) -> float | None:
        if self._budget is None or self._armed_at is None:
            return None
        return self._armed_at + self._budget - time.monotonic()

    def connect_remaining(self) -> float | None:
        if self._connect_budget is None:
            return None
        return self._started_at + self._connect_budget - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def trace(self, event_name: str, info: dict[str, Any]) -> None:
        if event_name in _CONNECT_STEP_EVENTS:
            # info is the kwargs dict the backend call receives next
            remaining = self.connect_remaining()
            if remaining is not None and "timeout" in info:
                info["timeout"] = max(remaining, _MIN_PHASE_TIMEOUT)
            return

        if event_name in _CONNECTED_EVENTS:
            self._armed_at = time.monotonic()
            return

        if event_name.startswith(("http11.", "http2.")) and event_name.endswith(".started"):
            # Connection reused or opened without a connect event
            self.arm()
            remaining = self.remaining()
            if remaining is not None:
                phase_timeout = max(remaining, _MIN_PHASE_TIMEOUT)
                self._timeouts["read"] = phase_timeout
                self._timeouts["write"] = phase_timeout


def _resolve_target(uri: str) -> httpx.URL:
    """Parse an absolute http(s) URL.

    Raises:
        RequestError: INVALID_URI if the URI cannot be used as a request target.
    """
    try:
        url = httpx.URL(uri)
    except (httpx.InvalidURL, TypeError) as e:
        raise RequestError(FailureKind.INVALID_URI, f"invalid URI {uri!r}: {e}") from e

    if url.scheme not in ("http", "https"):
        raise RequestError(
            FailureKind.INVALID_URI,
            f"invalid URI {uri!r}: expected an absolute http or https URL",
        )
    if not url.host:
        raise RequestError(FailureKind.INVALID_URI, f"invalid URI {uri!r}: missing host")
    return url


def normalize_response(
    response: httpx.Response,
    content: bytes,
    elapsed_ms: float,
) -> ResponseResult:
    """Package a received response and its buffered body as a ResponseResult.

    Headers keep wire order and original name case. The body is decoded with
    the Content-Type charset, falling back to UTF-8.
    """
    header_encoding = response.headers.encoding
    headers = [
        (key.decode(header_encoding), value.decode(header_encoding))
        for key, value in response.headers.raw
    ]

    charset = response.charset_encoding or "utf-8"
    try:
        body = content.decode(charset, errors="replace")
    except LookupError:
        # Unknown charset name in Content-Type
        body = content.decode("utf-8", errors="replace")

    return ResponseResult(
        status_code=response.status_code,
        headers=headers,
        body=body,
        elapsed_ms=elapsed_ms,
        http_version=response.http_version,
    )


class Executor:
    """Executes RequestSpecs and returns ResponseResults.

    Each execution opens its own connection (keep-alive is disabled) and is
    attempted once. The TimeoutController is shared: setting its connect
    timeout affects every execution that starts afterwards.

    Usage:
        with Executor() as executor:
            result = executor.execute(RequestSpec(uri="http://example.com/"))

    Or with the two-outcome form:
        result, error = executor.do(spec)
        if error is not None and error.is_connect_timeout():
            ...
    """

    def __init__(
        self,
        timeouts: TimeoutController | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            timeouts: Shared timeout configuration. Defaults to the process-wide
                      controller behind set_connect_timeout().
            headers: Headers sent with every request; request headers win.
            transport: httpx transport override (tests use httpx.MockTransport).
        """
        self._timeouts = timeouts if timeouts is not None else DEFAULT_CONTROLLER
        self._client = httpx.Client(**self._build_client_kwargs(headers, transport))

    def __enter__(self) -> "Executor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    @property
    def timeouts(self) -> TimeoutController:
        return self._timeouts

    def _build_client_kwargs(
        self,
        headers: dict[str, str] | None,
        transport: httpx.BaseTransport | None,
    ) -> dict[str, Any]:
        """Build kwargs for httpx.Client.

        Timeouts are set per request, so the client default is unbounded.
        """
        kwargs: dict[str, Any] = {
            "headers": headers or {},
            "timeout": None,
            "limits": httpx.Limits(max_keepalive_connections=0),
        }
        if transport is not None:
            kwargs["transport"] = transport
        return kwargs

    def do(self, spec: RequestSpec) -> tuple[ResponseResult | None, RequestError | None]:
        """Execute a request, returning exactly one of (result, error)."""
        try:
            return self.execute(spec), None
        except RequestError as e:
            return None, e

    def execute(self, spec: RequestSpec) -> ResponseResult:
        """Execute a request.

        Args:
            spec: The request to execute.

        Returns:
            ResponseResult for any HTTP status, including 4xx and 5xx.

        Raises:
            RequestError: If no response was received; see FailureKind.
        """
        # The connect budget covers everything up to an established connection
        started_at = time.monotonic()
        # Read once so a concurrent setter never changes an execution mid-flight
        connect_timeout = self._timeouts.get_connect_timeout()
        budget = spec.timeout
        if budget is None:
            budget = self._timeouts.get_default_request_timeout()

        url = _resolve_target(spec.uri)
        body = encode_body(spec.body)

        if connect_timeout < 0:
            raise self._failure(
                FailureKind.CONNECT_TIMEOUT,
                spec,
                url,
                f"connect timeout {connect_timeout}s elapsed before connecting",
            )

        request = self._build_request(spec, url, body, connect_timeout, budget)
        deadline = _PhaseDeadlines(
            request.extensions["timeout"],
            budget,
            connect_budget=connect_timeout if connect_timeout > 0 else None,
            started_at=started_at,
        )
        request.extensions["trace"] = deadline.trace

        logger.debug(f"Request: {spec.method} {url}")

        try:
            start_time = time.perf_counter()
            response = self._client.send(request, stream=True)
            try:
                deadline.arm()
                content = self._read_body(response, deadline)
            finally:
                response.close()
            elapsed_ms = (time.perf_counter() - start_time) * 1000

        except httpx.HTTPError as e:
            raise self._failure(classify_transport_error(e), spec, url, str(e)) from e
        except RequestError as e:
            # Raised by the body stream while the transport was sending it
            raise self._failure(e.kind, spec, url, str(e)) from e

        if content is None:
            raise self._failure(
                FailureKind.REQUEST_TIMEOUT,
                spec,
                url,
                f"deadline of {budget}s elapsed while reading the response body",
            )

        logger.debug(f"Response: {response.status_code} for {spec.method} {url} in {elapsed_ms:.1f}ms")
        return normalize_response(response, content, elapsed_ms)

    def _build_request(
        self,
        spec: RequestSpec,
        url: httpx.URL,
        body: EncodedBody,
        connect_timeout: float,
        budget: float | None,
    ) -> httpx.Request:
        """Build the outbound request with per-phase timeouts.

        A connect timeout of 0 leaves the connect phase unbounded. The pool
        timeout shares the connect bound since both elapse before connecting.
        """
        if not spec.method.isascii():
            raise self._failure(
                FailureKind.ENCODING_FAILED,
                spec,
                url,
                "HTTP method must be ASCII",
            )

        headers = dict(spec.headers)
        lower_names = {name.lower() for name in headers}
        if body.content_type and "content-type" not in lower_names:
            headers["Content-Type"] = body.content_type
        if body.content_length is not None and "content-length" not in lower_names:
            headers["Content-Length"] = str(body.content_length)

        connect_bound = connect_timeout if connect_timeout > 0 else None
        timeout = httpx.Timeout(
            connect=connect_bound,
            pool=connect_bound,
            read=budget,
            write=budget,
        )

        try:
            request = self._client.build_request(
                spec.method,
                url,
                headers=headers,
                content=body.content,
                timeout=timeout,
            )
        except UnicodeEncodeError as e:
            raise self._failure(
                FailureKind.ENCODING_FAILED,
                spec,
                url,
                f"non-ASCII character {e.object[e.start:e.end]!r} in headers",
            ) from e
        except httpx.InvalidURL as e:
            raise self._failure(FailureKind.INVALID_URI, spec, url, str(e)) from e

        # httpx upper-cases methods; the method goes on the wire as given
        request.method = spec.method
        return request

    def _read_body(self, response: httpx.Response, deadline: _PhaseDeadlines) -> bytes | None:
        """Buffer the whole response body.

        Returns None if the deadline elapsed before the last byte arrived.
        Each read is also bounded by the transport's read timeout, which the
        deadline set to the remaining budget when the body phase started.
        """
        chunks: list[bytes] = []
        for chunk in response.iter_bytes():
            if deadline.expired():
                return None
            chunks.append(chunk)
        if deadline.expired():
            return None
        return b"".join(chunks)

    def _failure(
        self,
        kind: FailureKind,
        spec: RequestSpec,
        url: httpx.URL,
        detail: str,
    ) -> RequestError:
        logger.debug(f"Request failed ({kind.value}): {spec.method} {url}: {detail}")
        return RequestError(kind, f"{spec.method} {url} {_FAILURE_LABELS[kind]}: {detail}")


_default_executor: Executor | None = None
_default_executor_lock = Lock()


def _get_default_executor() -> Executor:
    """Executor bound to the process-wide TimeoutController, created on first use."""
    global _default_executor
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = Executor(DEFAULT_CONTROLLER)
        return _default_executor


def execute(spec: RequestSpec) -> ResponseResult:
    """Execute a request with the process-wide executor."""
    return _get_default_executor().execute(spec)


def do(spec: RequestSpec) -> tuple[ResponseResult | None, RequestError | None]:
    """Execute a request with the process-wide executor, returning (result, error)."""
    return _get_default_executor().do(spec)
