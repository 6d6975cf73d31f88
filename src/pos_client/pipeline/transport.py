"""Transport and retry control.

Implements the network leg of a request:

- An explicit retry state machine (``RetryController``) that retries only
  network-class failures, with capped exponential backoff
- Status classification for non-2xx responses (401 eviction and
  notification, 429 rate limiting, everything else ``RequestFailed``)
- Response-phase interceptors and envelope normalization for 2xx responses

HTTP-level errors are application decisions and are never retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
import logging
import random
from typing import TYPE_CHECKING, Any

import httpx

from pos_client.core.exceptions import (
    MalformedEnvelope,
    NetworkFailure,
    RateLimited,
    RequestFailed,
    Unauthorized,
)
from pos_client.core.types import (
    Envelope,
    ErrorEnvelope,
    RequestDescriptor,
    RetryState,
)
from pos_client.events import UNAUTHORIZED, EventBus, default_bus
from pos_client.pipeline.envelope import (
    error_from_envelope,
    normalize_envelope,
    parse_body,
)
from pos_client.telemetry import TelemetryContext

if TYPE_CHECKING:
    from pos_client.auth import TokenProvider
    from pos_client.pipeline.interceptors import InterceptorPipeline
    from pos_client.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

# --- Telemetry scopes/keys ---
T_SEND = "transport.send"
T_ATTEMPT = "transport.attempt"
T_RETRY = "transport.retry"
T_UNAUTHORIZED = "transport.unauthorized"
T_RATE_LIMITED = "transport.rate_limited"

type Sleep = Callable[[float], Awaitable[Any]]
type Prepare = Callable[[], Awaitable[RequestDescriptor]]


class RetryController:
    """Runs an attempt function under a ``RetryState`` budget.

    The loop is iterative and terminates when an attempt succeeds, raises
    anything other than ``NetworkFailure``, or exhausts the budget. Attempts
    never overlap.
    """

    def __init__(
        self,
        initial: RetryState | None = None,
        *,
        jitter: float = 0.0,
        sleep: Sleep = asyncio.sleep,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            initial: Budget and delay bounds; defaults to 3 retries,
                1000 ms base, 10000 ms cap.
            jitter: Extra random delay as a fraction of the backoff. 0 keeps
                delays deterministic.
            sleep: Awaitable sleep, injectable for tests.
            telemetry: Optional telemetry context.
        """
        self.initial = initial or RetryState()
        self.jitter = jitter
        self._sleep = sleep
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()

    def backoff_seconds(self, state: RetryState) -> float:
        """Delay before the retry following ``state``."""
        delay_ms: float = state.delay_ms
        if self.jitter:
            delay_ms += delay_ms * self.jitter * random.random()  # noqa: S311
        return delay_ms / 1000

    async def run[T](self, attempt_fn: Callable[[RetryState], Awaitable[T]]) -> T:
        """Call ``attempt_fn`` until it succeeds or the budget is spent.

        Raises:
            NetworkFailure: The last network failure, with ``attempts`` set to
                the number of calls made.
        """
        state = self.initial
        while True:
            try:
                return await attempt_fn(state)
            except NetworkFailure as e:
                if not state.can_retry:
                    e.attempts = state.number
                    raise
                delay = self.backoff_seconds(state)
                logger.warning(
                    "Network failure on attempt %d/%d (%s); retrying in %.0fms",
                    state.number,
                    state.max_attempts + 1,
                    e,
                    delay * 1000,
                )
                self._telemetry.count(T_RETRY, attempt=state.number)
                await self._sleep(delay)
                state = state.next()


class Transport:
    """Sends descriptors over httpx and turns responses into envelopes."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        pipeline: InterceptorPipeline,
        tokens: TokenProvider,
        *,
        events: EventBus | None = None,
        retry: RetryController | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            http: Client used for every network call. Not owned.
            pipeline: Interceptors whose response phase runs on 2xx bodies.
            tokens: Credential store; cleared on 401.
            events: Bus receiving the ``"unauthorized"`` notification.
            retry: Retry controller; a default one is created when omitted.
            telemetry: Optional telemetry context.
        """
        self._http = http
        self._pipeline = pipeline
        self._tokens = tokens
        self._events = events or default_bus
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()
        self._retry = retry or RetryController(telemetry=self._telemetry)
        # Set once "unauthorized" has been emitted; reset whenever a request
        # goes out with a credential.
        self._unauthorized_signalled = False

    @property
    def retry(self) -> RetryController:
        """The retry controller in use."""
        return self._retry

    async def send(self, descriptor: RequestDescriptor) -> Envelope:
        """Send an already-built descriptor; see ``execute``."""

        async def _same() -> RequestDescriptor:
            return descriptor

        return await self.execute(_same)

    async def execute(self, prepare: Prepare) -> Envelope:
        """Run one logical request to completion.

        ``prepare`` builds a fresh descriptor for each attempt (credential
        lookup plus request-phase interceptors).

        Returns:
            A success or warning envelope.

        Raises:
            NetworkFailure: No response after the retry budget.
            Unauthorized: HTTP 401.
            RateLimited: HTTP 429.
            RequestFailed: Other non-2xx, or an envelope with status error.
            MalformedEnvelope: A 2xx body that breaks the envelope contract.
        """
        with self._telemetry(T_SEND):

            async def _attempt(state: RetryState) -> tuple[RequestDescriptor, httpx.Response]:
                descriptor = await prepare()
                with self._telemetry(T_ATTEMPT, attempt=state.number):
                    response = await self._issue(descriptor)
                return descriptor, response

            descriptor, response = await self._retry.run(_attempt)

            if not response.is_success:
                await self._raise_for_status(descriptor, response)

            raw = parse_body(response.content)
            if not isinstance(raw, Mapping):
                raise MalformedEnvelope(
                    f"Envelope must be a JSON object, got {type(raw).__name__}",
                    body=raw,
                )
            processed = await self._pipeline.run_response(raw)
            envelope = normalize_envelope(processed)
            if isinstance(envelope, ErrorEnvelope):
                raise error_from_envelope(envelope, status_code=response.status_code)
            return envelope

    async def _issue(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Single network call. Network-class failures become ``NetworkFailure``."""
        if descriptor.bearer_token is not None:
            self._unauthorized_signalled = False
        kwargs: dict[str, Any] = {
            "headers": dict(descriptor.headers),
            "params": dict(descriptor.params) if descriptor.params else None,
        }
        if descriptor.is_multipart:
            kwargs["data"] = dict(descriptor.form or {})
            kwargs["files"] = dict(descriptor.files or {})
        elif descriptor.body is not None:
            kwargs["json"] = descriptor.body
        try:
            return await self._http.request(descriptor.method, descriptor.url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkFailure(
                f"{descriptor.method} {descriptor.url} failed: {type(e).__name__}: {e}"
            ) from e

    async def _raise_for_status(
        self, descriptor: RequestDescriptor, response: httpx.Response
    ) -> None:
        """Terminal path for non-2xx responses. Always raises."""
        raw = self._error_body(response)
        message = raw.get("message") if isinstance(raw.get("message"), str) else None
        code = response.status_code

        if code == 401:
            self._evict_credential(descriptor.bearer_token)
            raise Unauthorized(message or "Unauthorized")

        if code == 429:
            self._telemetry.count(T_RATE_LIMITED)
            raise RateLimited(retry_after=_retry_after(response))

        try:
            envelope = normalize_envelope(raw)
        except MalformedEnvelope:
            raise RequestFailed(
                message or f"HTTP {code}: {response.reason_phrase}", status_code=code
            ) from None
        raise RequestFailed(
            envelope.message or "Request failed",
            field_errors=envelope.errors,
            status_code=code,
        )

    @staticmethod
    def _error_body(response: httpx.Response) -> Mapping[str, Any]:
        """Parse an error body, synthesizing a minimal envelope when it is not one."""
        try:
            raw = parse_body(response.content)
        except MalformedEnvelope:
            raw = None
        if isinstance(raw, Mapping):
            return raw
        return {
            "status": "error",
            "message": f"HTTP {response.status_code}: {response.reason_phrase}",
        }

    def _evict_credential(self, sent_token: str | None) -> None:
        """Clear the credential and notify once per rejected credential.

        A credential replaced by a fresh login since the request went out is
        left alone.
        """
        current = self._tokens.get_token()
        if current is not None and current != sent_token:
            logger.info("Ignoring 401 for a credential that has since been replaced")
            return
        if current is None and self._unauthorized_signalled:
            return
        self._tokens.clear_token()
        self._unauthorized_signalled = True
        self._telemetry.count(T_UNAUTHORIZED)
        logger.warning("Request unauthorized; credential cleared")
        self._events.emit(UNAUTHORIZED)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
