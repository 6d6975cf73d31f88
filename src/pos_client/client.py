"""The user-facing request client.

``APIClient`` wires the request builder, interceptor pipeline, transport and
optimistic update manager together behind ``get``/``post``/``put``/
``delete``/``upload``. Each call returns the envelope's ``data`` or raises a
typed error from ``pos_client.core.exceptions``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
import logging
from typing import Any

import httpx

from pos_client.auth import InMemoryTokenProvider, TokenProvider
from pos_client.config import FrozenConfig, resolve_config
from pos_client.core.exceptions import ClientClosedError
from pos_client.core.types import Envelope, PayloadClass, RequestDescriptor
from pos_client.events import EventBus, default_bus
from pos_client.optimistic import OptimisticUpdateManager
from pos_client.pipeline.envelope import unwrap
from pos_client.pipeline.interceptors import (
    InterceptorPipeline,
    RequestInterceptor,
    ResponseInterceptor,
    install_default_interceptors,
)
from pos_client.pipeline.request_builder import build_request, build_upload, join_url
from pos_client.pipeline.transport import RetryController, Transport
from pos_client.telemetry import (
    TelemetryContext,
    TelemetryContextProtocol,
    TelemetryReporter,
)

logger = logging.getLogger(__name__)


class APIClient:
    """Resilient client for the POS backend.

    Example:
        async with APIClient(resolve_config(base_url="https://pos.example")) as api:
            product = await api.get("/products/42")
    """

    def __init__(
        self,
        config: FrozenConfig | None = None,
        *,
        tokens: TokenProvider | None = None,
        events: EventBus | None = None,
        http: httpx.AsyncClient | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        reporters: tuple[TelemetryReporter, ...] = (),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Frozen configuration; resolved from the environment when
                omitted.
            tokens: Credential store. Defaults to an empty in-memory store.
            events: Bus for the ``"unauthorized"`` event. Defaults to the
                process-wide bus.
            http: Pre-built httpx client. Not closed by ``aclose``.
            http_transport: httpx transport for an owned client (e.g.
                ``httpx.MockTransport`` in tests).
            reporters: Telemetry reporters; active only when telemetry is
                enabled in the environment.
            sleep: Awaitable sleep used between retries.
        """
        self.config = config or resolve_config()
        self.tokens: TokenProvider = tokens or InMemoryTokenProvider()
        self.events = events or default_bus
        self._telemetry: TelemetryContextProtocol = TelemetryContext(*reporters)

        self.interceptors = InterceptorPipeline()
        if self.config.install_default_interceptors:
            install_default_interceptors(
                self.interceptors, slow_response_ms=self.config.slow_response_ms
            )

        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=self.config.timeout_seconds, transport=http_transport
        )
        retry = RetryController(
            self.config.retry_state(),
            jitter=self.config.retry_jitter,
            sleep=sleep,
            telemetry=self._telemetry,
        )
        self.transport = Transport(
            self._http,
            self.interceptors,
            self.tokens,
            events=self.events,
            retry=retry,
            telemetry=self._telemetry,
        )
        self.updates = OptimisticUpdateManager(
            debounce_ms={c: self.config.debounce_for(c) for c in PayloadClass},
            telemetry=self._telemetry,
        )
        self._closed = False

    # --- Interceptors ---

    def add_request_interceptor(self, fn: RequestInterceptor) -> Callable[[], None]:
        """Register a request transform; see ``InterceptorPipeline``."""
        return self.interceptors.add_request_interceptor(fn)

    def add_response_interceptor(self, fn: ResponseInterceptor) -> Callable[[], None]:
        """Register a response transform; see ``InterceptorPipeline``."""
        return self.interceptors.add_response_interceptor(fn)

    # --- Requests ---

    def url_for(self, path: str) -> str:
        """Absolute URL for an API path."""
        return join_url(self.config.api_url, path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Envelope:
        """Send a JSON request and return the full envelope.

        Use this over the verb helpers when ``meta`` (e.g. pagination) is
        needed.
        """
        self._ensure_open()
        url = self.url_for(path)

        async def _prepare() -> RequestDescriptor:
            descriptor = build_request(
                method,
                url,
                params=params,
                body=body,
                headers=headers,
                token=self.tokens.get_token(),
            )
            return await self.interceptors.run_request(descriptor)

        return await self.transport.execute(_prepare)

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET ``path`` and return the envelope data."""
        return unwrap(await self.request("GET", path, params=params))

    async def post(self, path: str, body: Any = None) -> Any:
        """POST a JSON body and return the envelope data."""
        return unwrap(await self.request("POST", path, body=body))

    async def put(self, path: str, body: Any = None) -> Any:
        """PUT a JSON body and return the envelope data."""
        return unwrap(await self.request("PUT", path, body=body))

    async def delete(self, path: str) -> Any:
        """DELETE ``path`` and return the envelope data."""
        return unwrap(await self.request("DELETE", path))

    async def upload(
        self,
        path: str,
        file: Any,
        fields: Mapping[str, Any] | None = None,
        *,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> Any:
        """POST a multipart body (one file plus scalar fields).

        Goes through the same credential attachment, interceptors, retry and
        error classification as JSON requests.
        """
        self._ensure_open()
        url = self.url_for(path)

        async def _prepare() -> RequestDescriptor:
            descriptor = build_upload(
                url,
                file=file,
                filename=filename,
                content_type=content_type,
                fields=fields,
                token=self.tokens.get_token(),
            )
            return await self.interceptors.run_request(descriptor)

        return unwrap(await self.transport.execute(_prepare))

    # --- Lifecycle ---

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError("APIClient is closed")

    async def aclose(self) -> None:
        """Close the update manager, then the owned HTTP client."""
        if self._closed:
            return
        self._closed = True
        await self.updates.aclose()
        if self._owns_http:
            await self._http.aclose()
        logger.debug("APIClient closed")

    async def __aenter__(self) -> APIClient:  # noqa: D105
        return self

    async def __aexit__(self, *exc_info: object) -> None:  # noqa: D105
        await self.aclose()
