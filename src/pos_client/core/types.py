"""Core data types that flow through the request pipeline.

This module defines the immutable structures exchanged between the request
builder, the interceptor pipeline, the transport and the envelope normalizer.
Each stage produces a new value instead of mutating the one it received.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from types import MappingProxyType
import typing

T = typing.TypeVar("T")


def _freeze_mapping(
    m: dict[str, T] | typing.Mapping[str, T] | None,
) -> typing.Mapping[str, T] | None:
    """Return an immutable mapping view or None."""
    if m is None or isinstance(m, MappingProxyType):
        return m
    return MappingProxyType(dict(m))


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


# --- Result type ---
# Used where an outcome has to be carried as data before it is settled,
# e.g. a commit result handed to the waiters of an optimistic burst.

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=BaseException)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful outcome."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed outcome, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]

# --- Requests ---

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


@dataclasses.dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """A concrete request, ready for the transport.

    Immutable once built. Interceptors return modified copies via
    ``dataclasses.replace`` or the ``with_header`` helper.

    Attributes:
        method: Upper-case HTTP verb.
        url: Absolute URL including the API prefix.
        headers: Read-only header mapping.
        params: Query parameters, already stripped of ``None`` values.
        body: JSON-serializable body for JSON requests.
        form: Scalar multipart fields for uploads.
        files: Multipart file parts for uploads, as accepted by httpx.
    """

    method: str
    url: str
    headers: typing.Mapping[str, str] = dataclasses.field(
        default_factory=lambda: MappingProxyType({})
    )
    params: typing.Mapping[str, typing.Any] | None = None
    body: typing.Any = None
    form: typing.Mapping[str, typing.Any] | None = None
    files: typing.Mapping[str, typing.Any] | None = None

    def __post_init__(self) -> None:
        """Normalize the verb and freeze mappings."""
        _require(
            condition=isinstance(self.method, str)
            and self.method.upper() in HTTP_METHODS,
            message=f"must be one of {sorted(HTTP_METHODS)}",
            field_name="method",
        )
        _require(
            condition=isinstance(self.url, str) and self.url != "",
            message="must be a non-empty string",
            field_name="url",
        )
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", _freeze_mapping(self.headers or {}))
        object.__setattr__(self, "params", _freeze_mapping(self.params))
        object.__setattr__(self, "form", _freeze_mapping(self.form))
        object.__setattr__(self, "files", _freeze_mapping(self.files))

    @property
    def is_multipart(self) -> bool:
        """True for upload requests."""
        return self.files is not None

    @property
    def bearer_token(self) -> str | None:
        """The credential attached to this request, if any."""
        for name, value in self.headers.items():
            if name.lower() == "authorization" and value.startswith("Bearer "):
                return value[len("Bearer ") :]
        return None

    def with_header(self, name: str, value: str) -> RequestDescriptor:
        """Return a copy with one header set (case-insensitive replace)."""
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        headers[name] = value
        return dataclasses.replace(self, headers=headers)


# --- Response envelope ---


class EnvelopeStatus(str, Enum):
    """The three statuses an envelope may carry."""

    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


@dataclasses.dataclass(frozen=True, slots=True)
class FieldError:
    """A validation error attached to one input field."""

    field: str
    message: str


@dataclasses.dataclass(frozen=True, slots=True)
class EnvelopeMeta:
    """Response metadata.

    ``pagination`` is opaque and passed through untouched. Keys other than
    ``response_time`` and ``pagination`` are kept in ``extra``.
    """

    response_time_ms: float | None = None
    pagination: typing.Any = None
    extra: typing.Mapping[str, typing.Any] = dataclasses.field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        """Freeze the extra mapping."""
        object.__setattr__(self, "extra", _freeze_mapping(self.extra))


@dataclasses.dataclass(frozen=True, slots=True)
class _EnvelopeBase:
    message: str | None = None
    data: typing.Any = None
    errors: tuple[FieldError, ...] = ()
    meta: EnvelopeMeta = dataclasses.field(default_factory=EnvelopeMeta)
    timestamp: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class SuccessEnvelope(_EnvelopeBase):
    """The server accepted the request."""

    status: typing.ClassVar[EnvelopeStatus] = EnvelopeStatus.SUCCESS


@dataclasses.dataclass(frozen=True, slots=True)
class WarningEnvelope(_EnvelopeBase):
    """The server accepted the request but has something to say about it."""

    status: typing.ClassVar[EnvelopeStatus] = EnvelopeStatus.WARNING


@dataclasses.dataclass(frozen=True, slots=True)
class ErrorEnvelope(_EnvelopeBase):
    """The server rejected the request at the application level."""

    status: typing.ClassVar[EnvelopeStatus] = EnvelopeStatus.ERROR


type Envelope = SuccessEnvelope | WarningEnvelope | ErrorEnvelope

# --- Retry ---


@dataclasses.dataclass(frozen=True, slots=True)
class RetryState:
    """Position of one request in its retry budget.

    ``delay_ms`` follows ``min(cap_delay_ms, base_delay_ms * 2**attempt)``.
    ``max_attempts`` counts retries, so a request is issued at most
    ``max_attempts + 1`` times.
    """

    attempt: int = 0
    max_attempts: int = 3
    base_delay_ms: int = 1000
    cap_delay_ms: int = 10000

    def __post_init__(self) -> None:
        """Validate invariants."""
        _require(
            condition=self.attempt >= 0, message="must be >= 0", field_name="attempt"
        )
        _require(
            condition=self.max_attempts >= 0,
            message="must be >= 0",
            field_name="max_attempts",
        )
        _require(
            condition=self.base_delay_ms >= 0,
            message="must be >= 0",
            field_name="base_delay_ms",
        )
        _require(
            condition=self.cap_delay_ms >= self.base_delay_ms,
            message="must be >= base_delay_ms",
            field_name="cap_delay_ms",
        )

    @property
    def delay_ms(self) -> int:
        """Backoff before the retry that follows this attempt."""
        return min(self.cap_delay_ms, self.base_delay_ms * 2**self.attempt)

    @property
    def can_retry(self) -> bool:
        """Whether another attempt is allowed after this one fails."""
        return self.attempt < self.max_attempts

    @property
    def number(self) -> int:
        """One-based attempt number, for logs."""
        return self.attempt + 1

    def next(self) -> RetryState:
        """Return the state for the following attempt."""
        return dataclasses.replace(self, attempt=self.attempt + 1)


# --- Optimistic updates ---


class PayloadClass(str, Enum):
    """Debounce classes for optimistic writes."""

    FIELD = "field"  # text/price edits
    QUANTITY = "quantity"  # stock counters
    BINARY = "binary"  # images and other large payloads

    @property
    def default_debounce_ms(self) -> int:
        """Built-in debounce window for the class."""
        return _DEFAULT_DEBOUNCE_MS[self]


_DEFAULT_DEBOUNCE_MS: dict[PayloadClass, int] = {
    PayloadClass.FIELD: 300,
    PayloadClass.QUANTITY: 200,
    PayloadClass.BINARY: 500,
}
