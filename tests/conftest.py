"""
Global test configuration: environment isolation and a fake POS backend.
"""

from collections.abc import Callable
import json
import os
from typing import Any

import httpx
import pytest

from pos_client import APIClient, EventBus, FrozenConfig, InMemoryTokenProvider


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated unit tests")
    config.addinivalue_line(
        "markers", "allow_env_pollution: keep POS_CLIENT_* variables for this test"
    )


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_pos_env(request, monkeypatch):
    """Ensure a clean POS_CLIENT_* environment for each test.

    Escape hatch: @pytest.mark.allow_env_pollution keeps the current env.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("POS_CLIENT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


# --- Envelope helpers ---
def envelope(status: str = "success", **fields: Any) -> dict[str, Any]:
    """Wire-shaped envelope with a fixed timestamp."""
    return {"status": status, "timestamp": "2024-01-01T00:00:00Z", **fields}


@pytest.fixture
def make_envelope() -> Callable[..., dict[str, Any]]:
    return envelope


def json_response(status_code: int, body: Any, **kwargs: Any) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(body).encode(),
        headers={"Content-Type": "application/json", **kwargs.pop("headers", {})},
        **kwargs,
    )


class FakeBackend:
    """Scripted httpx handler that records every request it sees.

    Queue responses (``httpx.Response`` objects, exceptions to raise, or
    callables taking the request) with ``push``; each entry is used once.
    When the queue is empty ``default`` is called to build the response.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._script: list[Any] = []
        self.default: Any = lambda request: json_response(200, envelope(data=None))

    def push(self, *responses: Any) -> "FakeBackend":
        self._script.extend(responses)
        return self

    def respond_json(self, status_code: int, body: Any, **kwargs: Any) -> "FakeBackend":
        return self.push(json_response(status_code, body, **kwargs))

    def fail_network(self, times: int = 1) -> "FakeBackend":
        return self.push(*([httpx.ConnectError] * times))

    @property
    def calls(self) -> int:
        return len(self.requests)

    def json_bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._script.pop(0) if self._script else self.default
        if isinstance(item, type) and issubclass(item, httpx.TransportError):
            raise item("connection refused", request=request)
        if isinstance(item, BaseException):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            item = item(request)
            if not isinstance(item, httpx.Response):
                item = await item
        return item


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


class SleepRecorder:
    """Awaitable sleep replacement that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(backend, sleeps):
    """Factory for an ``APIClient`` wired to the fake backend.

    Uses its own event bus and a token store holding ``"tok-1"``. Keyword
    arguments override ``FrozenConfig`` fields.
    """

    def _make(
        *,
        token: str | None = "tok-1",
        events: EventBus | None = None,
        reporters: tuple[Any, ...] = (),
        **config: Any,
    ) -> APIClient:
        config.setdefault("base_url", "http://pos.test")
        return APIClient(
            FrozenConfig(**config),
            tokens=InMemoryTokenProvider(token),
            events=events or EventBus(),
            http_transport=httpx.MockTransport(backend),
            reporters=reporters,
            sleep=sleeps,
        )

    return _make
