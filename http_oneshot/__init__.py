"""http-oneshot: single-call HTTP requests with separate connect and request timeouts."""

from http_oneshot.executor import Executor, do, execute
from http_oneshot.failures import FailureKind, OneshotError, RequestError
from http_oneshot.models import (
    NoBody,
    RequestSpec,
    ResponseResult,
    StreamBody,
    StructuredBody,
    TextBody,
)
from http_oneshot.timeouts import TimeoutController, get_connect_timeout, set_connect_timeout

__version__ = "0.1.0"

__all__ = [
    "Executor",
    "FailureKind",
    "NoBody",
    "OneshotError",
    "RequestError",
    "RequestSpec",
    "ResponseResult",
    "StreamBody",
    "StructuredBody",
    "TextBody",
    "TimeoutController",
    "do",
    "execute",
    "get_connect_timeout",
    "set_connect_timeout",
]
