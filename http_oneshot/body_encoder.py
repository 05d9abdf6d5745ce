"""Body Encoder - Turns a request Payload into bytes plus content metadata.

Encoding never touches the network. A structured value that cannot be
represented as JSON fails here, before any connection is attempted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator

from pydantic import BaseModel

from http_oneshot.failures import FailureKind, RequestError
from http_oneshot.models import NoBody, StreamBody, StructuredBody, TextBody

JSON_MEDIA_TYPE = "application/json"
CHUNK_SIZE = 65_536

_END_OF_STREAM = object()


@dataclass(frozen=True)
class EncodedBody:
    """Content ready for the transport.

    content is None for no body, bytes for text and structured payloads, and
    a one-shot iterator over the caller's source for streams. content_length
    is None when the length is unknown (sent chunked).
    """

    content: bytes | Iterable[bytes] | None
    content_length: int | None
    content_type: str | None


def encode_body(payload: NoBody | TextBody | StreamBody | StructuredBody) -> EncodedBody:
    """Encode a payload.

    Raises:
        RequestError: ENCODING_FAILED if a structured value is not JSON-representable.
    """
    if isinstance(payload, NoBody):
        return EncodedBody(content=None, content_length=None, content_type=None)

    if isinstance(payload, TextBody):
        data = payload.text.encode("utf-8")
        return EncodedBody(content=data, content_length=len(data), content_type=None)

    if isinstance(payload, StreamBody):
        return EncodedBody(
            content=_iter_stream(payload.source),
            content_length=payload.length,
            content_type=None,
        )

    if isinstance(payload, StructuredBody):
        data = _encode_structured(payload.value)
        return EncodedBody(content=data, content_length=len(data), content_type=JSON_MEDIA_TYPE)

    # Payload is a closed union; reaching here means a caller bypassed validation
    raise RequestError(
        FailureKind.ENCODING_FAILED,
        f"Unsupported payload type: {type(payload).__name__}",
    )


def _iter_stream(source: Any) -> Iterator[bytes]:
    """Yield the source's bytes once, in CHUNK_SIZE reads for file-like objects.

    Runs lazily while the transport writes the body, so failures surface
    mid-send: an I/O error from the source is TRANSFER_FAILED, a non-bytes
    chunk or any other exception from the source is ENCODING_FAILED.
    """
    chunks: Iterable[Any] = _read_chunks(source) if hasattr(source, "read") else source
    iterator = _guarded(iter, chunks)

    while True:
        chunk = _guarded(next, iterator, _END_OF_STREAM)
        if chunk is _END_OF_STREAM:
            return
        if isinstance(chunk, (bytearray, memoryview)):
            chunk = bytes(chunk)
        if not isinstance(chunk, bytes):
            raise RequestError(
                FailureKind.ENCODING_FAILED,
                f"Stream produced {type(chunk).__name__}, expected bytes",
            )
        if chunk:
            yield chunk


def _guarded(pull: Callable[..., Any], *args: Any) -> Any:
    """Call into the caller's source, classifying whatever it raises."""
    try:
        return pull(*args)
    except OSError as e:
        raise RequestError(
            FailureKind.TRANSFER_FAILED,
            f"Reading the stream source failed: {e}",
        ) from e
    except Exception as e:
        raise RequestError(
            FailureKind.ENCODING_FAILED,
            f"Stream source raised {type(e).__name__}: {e}",
        ) from e


def _read_chunks(source: Any) -> Iterator[Any]:
    while True:
        chunk = source.read(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


def _encode_structured(value: Any) -> bytes:
    """Serialize to compact JSON bytes, keeping the value's key order."""
    try:
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        text = json.dumps(
            value,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError, RecursionError) as e:
        raise RequestError(
            FailureKind.ENCODING_FAILED,
            f"Body is not JSON-representable: {e}",
        ) from e

    return text.encode("utf-8")
