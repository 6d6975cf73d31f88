"""Ordered request and response interceptor chains.

Interceptors are plain or async callables. Each chain runs in registration
order, one transform at a time, and the output of one is the input of the
next. Nothing short-circuits the chain except an exception, which propagates
unchanged to whoever ran it.

The built-in interceptors at the bottom of this module are ordinary entries;
``install_default_interceptors`` simply registers them first.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import inspect
import logging
from typing import Any

from pos_client.core.exceptions import InterceptorError
from pos_client.core.types import RequestDescriptor

logger = logging.getLogger(__name__)

type RawEnvelope = Mapping[str, Any]
type RequestInterceptor = Callable[
    [RequestDescriptor], RequestDescriptor | Awaitable[RequestDescriptor]
]
type ResponseInterceptor = Callable[[RawEnvelope], RawEnvelope | Awaitable[RawEnvelope]]


async def _call(fn: Callable[[Any], Any], value: Any) -> Any:
    result = fn(value)
    if inspect.isawaitable(result):
        result = await result
    return result


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or type(fn).__name__


class InterceptorPipeline:
    """Two mutable chains of transforms: request phase and response phase."""

    def __init__(self) -> None:  # noqa: D107
        self._request: list[RequestInterceptor] = []
        self._response: list[ResponseInterceptor] = []

    def add_request_interceptor(self, fn: RequestInterceptor) -> Callable[[], None]:
        """Append a request transform; returns a callable that removes it."""
        self._request.append(fn)
        return lambda: self._remove(self._request, fn)

    def add_response_interceptor(self, fn: ResponseInterceptor) -> Callable[[], None]:
        """Append a response transform; returns a callable that removes it."""
        self._response.append(fn)
        return lambda: self._remove(self._response, fn)

    @property
    def request_interceptors(self) -> tuple[RequestInterceptor, ...]:
        """Registered request transforms, in execution order."""
        return tuple(self._request)

    @property
    def response_interceptors(self) -> tuple[ResponseInterceptor, ...]:
        """Registered response transforms, in execution order."""
        return tuple(self._response)

    async def run_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Pass a descriptor through every request transform in order."""
        current = descriptor
        for fn in tuple(self._request):
            current = await _call(fn, current)
            if not isinstance(current, RequestDescriptor):
                raise InterceptorError(
                    f"Request interceptor {_name(fn)} returned "
                    f"{type(current).__name__}, expected RequestDescriptor"
                )
        return current

    async def run_response(self, raw: RawEnvelope) -> RawEnvelope:
        """Pass a raw envelope through every response transform in order."""
        current = raw
        for fn in tuple(self._response):
            current = await _call(fn, current)
            if not isinstance(current, Mapping):
                raise InterceptorError(
                    f"Response interceptor {_name(fn)} returned "
                    f"{type(current).__name__}, expected a mapping"
                )
        return current

    @staticmethod
    def _remove(chain: list[Any], fn: Any) -> None:
        if fn in chain:
            chain.remove(fn)


# --- Built-in interceptors ---


def log_request(descriptor: RequestDescriptor) -> RequestDescriptor:
    """Log the outgoing method and URL."""
    logger.info("-> %s %s", descriptor.method, descriptor.url)
    return descriptor


def log_response(raw: RawEnvelope) -> RawEnvelope:
    """Log the envelope outcome, including field errors on failure."""
    status = raw.get("status")
    if status == "success":
        logger.info("Success: %s", raw.get("message") or "Request completed")
    elif status == "warning":
        logger.warning("Warning: %s", raw.get("message"))
    elif status == "error":
        logger.error("Error: %s", raw.get("message"))
        if raw.get("errors"):
            logger.error("Validation errors: %s", raw.get("errors"))
    return raw


def parse_response_time(value: Any) -> float | None:
    """Read ``meta.response_time`` as milliseconds.

    Accepts numbers and numeric strings with an optional ``ms`` suffix.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        text = value.strip().removesuffix("ms").strip()
        try:
            return float(text)
        except ValueError:
            return None
    return None


def slow_response_flagger(threshold_ms: float = 1000.0) -> ResponseInterceptor:
    """Build an interceptor that warns when the server reports a slow response."""

    def flag_slow_response(raw: RawEnvelope) -> RawEnvelope:
        meta = raw.get("meta")
        if isinstance(meta, Mapping):
            elapsed = parse_response_time(meta.get("response_time"))
            if elapsed is not None and elapsed > threshold_ms:
                logger.warning("Slow request: %.0fms", elapsed)
        return raw

    return flag_slow_response


def install_default_interceptors(
    pipeline: InterceptorPipeline, *, slow_response_ms: float = 1000.0
) -> None:
    """Register the logging and slow-response interceptors."""
    pipeline.add_request_interceptor(log_request)
    pipeline.add_response_interceptor(log_response)
    pipeline.add_response_interceptor(slow_response_flagger(slow_response_ms))
