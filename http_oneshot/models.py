"""Data models for http-oneshot.

All models use Pydantic v2 and are frozen: a RequestSpec is consumed by one
execution and a ResponseResult is owned by the caller once returned.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Request Payloads
# =============================================================================


class NoBody(BaseModel):
    """No request body."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["absent"] = "absent"


class TextBody(BaseModel):
    """Raw text sent as its exact UTF-8 bytes."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["text"] = "text"
    text: str = Field(description="Body text, sent byte-for-byte")


class StreamBody(BaseModel):
    """A byte source passed through to the wire unmodified.

    The source is a binary file-like object or an iterable of bytes chunks.
    It is drained exactly once, so a StreamBody cannot be replayed.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    kind: Literal["stream"] = "stream"
    source: Any = Field(description="Binary file-like object or iterable of bytes")
    length: int | None = Field(
        default=None, ge=0, description="Declared byte length; None sends chunked"
    )

    @field_validator("source")
    @classmethod
    def check_source(cls, v: Any) -> Any:
        if isinstance(v, (str, bytes, bytearray)):
            raise ValueError("stream source must be a file-like object or bytes iterable, use TextBody for text")
        if not hasattr(v, "read") and not hasattr(v, "__iter__"):
            raise ValueError("stream source must be a file-like object or bytes iterable")
        return v


class StructuredBody(BaseModel):
    """A value serialized as compact JSON.

    Object keys are written in the value's own enumeration order: dict
    insertion order, or field declaration order for pydantic models.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    kind: Literal["structured"] = "structured"
    value: Any = Field(description="JSON-representable value")


Payload = Annotated[
    Union[NoBody, TextBody, StreamBody, StructuredBody],
    Field(discriminator="kind"),
]


# =============================================================================
# Core HTTP Models
# =============================================================================


class RequestSpec(BaseModel):
    """One declarative HTTP request.

    The method is sent verbatim (case included); any token is accepted.
    Timeout is the bound on the exchange after the connection is established.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(default="GET", min_length=1, description="HTTP method, sent verbatim")
    uri: str = Field(description="Absolute URL")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: Payload = Field(default_factory=NoBody, description="Request payload")
    timeout: float | None = Field(
        default=None, gt=0, description="Post-connect bound in seconds (None uses the executor default)"
    )


class ResponseResult(BaseModel):
    """A fully buffered HTTP response.

    Headers are (name, value) pairs in wire order with original name case, so
    repeated headers keep their multiplicity. Any status code is a result,
    including 4xx and 5xx.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    headers: list[tuple[str, str]] = Field(
        default_factory=list, description="Response headers in wire order"
    )
    body: str = Field(default="", description="Decoded response body")
    elapsed_ms: float = Field(description="Time from send to last body byte in milliseconds")
    http_version: str = Field(default="HTTP/1.1", description="Protocol version")

    def header(self, name: str, default: str | None = None) -> str | None:
        """First value of a header, matched case-insensitively."""
        name_lower = name.lower()
        for key, value in self.headers:
            if key.lower() == name_lower:
                return value
        return default

    def header_values(self, name: str) -> list[str]:
        """All values of a header in wire order."""
        name_lower = name.lower()
        return [value for key, value in self.headers if key.lower() == name_lower]


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    connect_timeout: float = Field(
        default=1.0, description="Connect bound in seconds (0 disables, negative fails at once)"
    )
    request_timeout: float | None = Field(
        default=None, gt=0, description="Default post-connect bound in seconds"
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
