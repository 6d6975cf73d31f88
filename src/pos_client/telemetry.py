"""Timing scopes and counters for the transport and update manager.

Off unless ``POS_CLIENT_TELEMETRY=1`` (or ``DEBUG=1``) is set and at least
one reporter is given; the disabled context is a shared no-op.
"""

from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
import os
import time
from typing import Any, Protocol, Self, runtime_checkable

log = logging.getLogger(__name__)

# Active scope names for the current task
_scopes: ContextVar[tuple[str, ...]] = ContextVar("pos_client_scopes", default=())

_TELEMETRY_ENABLED = (
    os.getenv("POS_CLIENT_TELEMETRY") == "1" or os.getenv("DEBUG") == "1"
)


@runtime_checkable
class TelemetryReporter(Protocol):
    """Receives scope timings and counter increments."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    def __call__(self, name: str, **metadata: Any) -> Self:  # noqa: ARG002
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        pass


class _EnabledTelemetryContext:
    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter):
        self.reporters = reporters

    @contextmanager
    def __call__(self, name: str, **metadata: Any) -> Iterator[Self]:
        parents = _scopes.get()
        token = _scopes.set((*parents, name))
        started = time.perf_counter()
        failed = False
        try:
            yield self
        except BaseException:
            failed = True
            raise
        finally:
            elapsed = time.perf_counter() - started
            _scopes.reset(token)
            self._dispatch(
                "record_timing",
                ".".join((*parents, name)),
                elapsed,
                parent_scope=".".join(parents) or None,
                failed=failed,
                **metadata,
            )

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        """Record a counter increment under the current scope."""
        parents = _scopes.get()
        self._dispatch(
            "record_metric",
            ".".join((*parents, name)),
            increment,
            parent_scope=".".join(parents) or None,
            **metadata,
        )

    def _dispatch(self, method: str, scope: str, value: Any, **metadata: Any) -> None:
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(scope, value, **metadata)
            except Exception:
                name = type(reporter).__name__
                log.error("Telemetry reporter '%s' failed", name, exc_info=True)


_NO_OP = _NoOpTelemetryContext()

type TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext


def TelemetryContext(  # noqa: N802
    *reporters: TelemetryReporter, enabled: bool | None = None
) -> TelemetryContextProtocol:
    """Return an active context, or the shared no-op when off or unreported."""
    is_enabled = _TELEMETRY_ENABLED if enabled is None else enabled
    if is_enabled and reporters:
        return _EnabledTelemetryContext(*reporters)
    return _NO_OP


class InMemoryReporter:
    """Keeps the most recent timings and counters per scope."""

    def __init__(self, max_entries_per_scope: int = 1000):  # noqa: D107
        self.max_entries = max_entries_per_scope
        self.timings: dict[str, deque[tuple[float, dict[str, Any]]]] = {}
        self.metrics: dict[str, deque[tuple[Any, dict[str, Any]]]] = {}

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:  # noqa: D102
        self.timings.setdefault(scope, deque(maxlen=self.max_entries)).append(
            (duration, metadata)
        )

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:  # noqa: D102
        self.metrics.setdefault(scope, deque(maxlen=self.max_entries)).append(
            (value, metadata)
        )

    def total(self, scope: str) -> float:
        """Sum of numeric values recorded under ``scope``."""
        values = (v for v, _ in self.metrics.get(scope, ()))
        return sum(v for v in values if isinstance(v, int | float))
