"""Response envelope normalization.

Every backend response is expected to be a JSON object of the form::

    {
      "status": "success" | "error" | "warning",
      "message": str,                         # optional
      "data": any,                            # optional
      "errors": [{"field": str, "message": str}],   # optional
      "meta": {"pagination": ..., "response_time": ...},   # optional
      "timestamp": str
    }

``normalize_envelope`` turns such a mapping into one of the tagged envelope
types. Anything that does not follow the contract raises
``MalformedEnvelope``, never ``RequestFailed``: a caller can always tell
"the server spoke another protocol" from "the server said no".
"""

from __future__ import annotations

from collections.abc import Mapping
import json
from typing import Any, assert_never

from pos_client.core.exceptions import MalformedEnvelope, RequestFailed
from pos_client.core.types import (
    Envelope,
    EnvelopeMeta,
    EnvelopeStatus,
    ErrorEnvelope,
    FieldError,
    SuccessEnvelope,
    WarningEnvelope,
)
from pos_client.pipeline.interceptors import parse_response_time

_ENVELOPE_TYPES: dict[EnvelopeStatus, type[Envelope]] = {
    EnvelopeStatus.SUCCESS: SuccessEnvelope,
    EnvelopeStatus.WARNING: WarningEnvelope,
    EnvelopeStatus.ERROR: ErrorEnvelope,
}


def parse_body(content: bytes | str) -> Any:
    """Decode a JSON body, raising ``MalformedEnvelope`` when it is not JSON."""
    try:
        return json.loads(content)
    except (ValueError, TypeError) as e:
        preview = content[:200] if content else content
        raise MalformedEnvelope(
            f"Response body is not valid JSON: {e}", body=preview
        ) from e


def _parse_status(raw: Mapping[str, Any]) -> EnvelopeStatus:
    if "status" not in raw:
        raise MalformedEnvelope("Envelope is missing 'status'", body=raw)
    try:
        return EnvelopeStatus(raw["status"])
    except ValueError as e:
        raise MalformedEnvelope(
            f"Unknown envelope status {raw['status']!r}; expected one of "
            f"{[s.value for s in EnvelopeStatus]}",
            body=raw,
        ) from e


def _parse_errors(value: Any, raw: Mapping[str, Any]) -> tuple[FieldError, ...]:
    if value is None:
        return ()
    if not isinstance(value, list | tuple):
        raise MalformedEnvelope("Envelope 'errors' must be a list", body=raw)
    errors: list[FieldError] = []
    for item in value:
        if not isinstance(item, Mapping) or "message" not in item:
            raise MalformedEnvelope(
                "Each envelope error must be an object with 'field' and 'message'",
                body=raw,
            )
        errors.append(
            FieldError(field=str(item.get("field") or ""), message=str(item["message"]))
        )
    return tuple(errors)


def _parse_meta(value: Any, raw: Mapping[str, Any]) -> EnvelopeMeta:
    if value is None:
        return EnvelopeMeta()
    if not isinstance(value, Mapping):
        raise MalformedEnvelope("Envelope 'meta' must be an object", body=raw)
    extra = {k: v for k, v in value.items() if k not in ("response_time", "pagination")}
    return EnvelopeMeta(
        response_time_ms=parse_response_time(value.get("response_time")),
        pagination=value.get("pagination"),
        extra=extra,
    )


def normalize_envelope(raw: Any) -> Envelope:
    """Validate a decoded body and return the matching tagged envelope.

    Raises:
        MalformedEnvelope: If ``raw`` is not an object, or its status, errors
            or meta do not follow the contract.
    """
    if not isinstance(raw, Mapping):
        raise MalformedEnvelope(
            f"Envelope must be a JSON object, got {type(raw).__name__}", body=raw
        )
    status = _parse_status(raw)
    message = raw.get("message")
    envelope_type = _ENVELOPE_TYPES[status]
    return envelope_type(
        message=None if message is None else str(message),
        data=raw.get("data"),
        errors=_parse_errors(raw.get("errors"), raw),
        meta=_parse_meta(raw.get("meta"), raw),
        timestamp=str(raw.get("timestamp") or ""),
    )


def error_from_envelope(
    envelope: ErrorEnvelope, *, status_code: int | None = None
) -> RequestFailed:
    """Build the ``RequestFailed`` an error envelope stands for."""
    return RequestFailed(
        envelope.message or "Request failed",
        field_errors=envelope.errors,
        status_code=status_code,
    )


def unwrap(envelope: Envelope) -> Any:
    """Return ``data`` for success and warning envelopes; raise for errors."""
    match envelope:
        case SuccessEnvelope() | WarningEnvelope():
            return envelope.data
        case ErrorEnvelope():
            raise error_from_envelope(envelope)
        case _:
            assert_never(envelope)
