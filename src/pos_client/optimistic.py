"""Optimistic updates with per-key debounce and rollback.

A caller mutates its local state immediately while the network write is
debounced and committed in the background:

- At most one pending entry per logical key (``"product:42:price"``)
- Rapid edits for a key coalesce into one commit carrying the last payload
- Rollback restores the snapshot taken before the first edit of the burst
- Commits for one key never overlap; an edit that arrives while a commit is
  in flight waits for it to settle before its own debounce starts

State is owned by a manager instance with explicit teardown (``aclose``),
so timers never outlive the client that created them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
import dataclasses
import logging
from typing import Any

from pos_client.core.exceptions import ClientClosedError
from pos_client.core.types import Failure, PayloadClass, Result, Success
from pos_client.telemetry import TelemetryContext, TelemetryContextProtocol

logger = logging.getLogger(__name__)

T_COMMIT = "optimistic.commit"
T_COALESCED = "optimistic.coalesced"
T_ROLLBACK = "optimistic.rollback"

type ApplyLocally = Callable[[Any], Any]
type Commit = Callable[[Any], Awaitable[Any]]
type Snapshot = Callable[[], Any]


@dataclasses.dataclass(slots=True)
class PendingUpdate:
    """Uncommitted state for one key.

    ``waiters`` belong to edits whose commit has not started yet; once the
    timer fires they move to the running commit task. ``follow_up_snapshot``
    is the caller state read just before the first edit queued behind an
    in-flight commit; it becomes ``previous_snapshot`` if that commit lands.
    """

    key: str
    latest_payload: Any
    previous_snapshot: Any
    apply_locally: ApplyLocally
    commit: Commit
    debounce_ms: int
    timer: asyncio.TimerHandle | None = None
    in_flight: bool = False
    task: asyncio.Task[None] | None = None
    waiters: list[asyncio.Future[Any]] = dataclasses.field(default_factory=list)
    follow_up_snapshot: Any = None

    def cancel_timer(self) -> None:
        """Cancel the debounce timer if it has not fired."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class OptimisticUpdateManager:
    """Owns pending optimistic writes for one client or session."""

    def __init__(
        self,
        *,
        debounce_ms: Mapping[PayloadClass, int] | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Initialize an empty manager.

        Args:
            debounce_ms: Per-class debounce windows overriding the built-in
                300/200/500 ms defaults.
            telemetry: Optional telemetry context.
        """
        self._debounce = {c: c.default_debounce_ms for c in PayloadClass}
        self._debounce.update(debounce_ms or {})
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()
        self._pending: dict[str, PendingUpdate] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # --- Inspection ---

    @property
    def pending_keys(self) -> tuple[str, ...]:
        """Keys with uncommitted edits, in creation order."""
        return tuple(self._pending)

    def is_pending(self, key: str) -> bool:
        """Whether ``key`` has an entry (debouncing or in flight)."""
        return key in self._pending

    def is_in_flight(self, key: str) -> bool:
        """Whether a commit for ``key`` is currently running."""
        entry = self._pending.get(key)
        return entry is not None and entry.in_flight

    @property
    def closed(self) -> bool:
        """True after ``aclose``."""
        return self._closed

    # --- Scheduling ---

    def schedule_update(
        self,
        key: str,
        payload: Any,
        *,
        apply_locally: ApplyLocally,
        commit: Commit,
        snapshot: Snapshot,
        debounce_ms: int | None = None,
        payload_class: PayloadClass = PayloadClass.FIELD,
    ) -> asyncio.Future[Any]:
        """Apply ``payload`` locally now and commit it after a quiet period.

        Must be called from a running event loop.

        Args:
            key: Logical key, typically ``kind:id[:field]``.
            payload: New value; supersedes any uncommitted payload for ``key``.
            apply_locally: Applies a value to the caller's state. Called with
                ``payload`` immediately and with the snapshot on rollback.
            commit: Async network write, called with the latest payload.
            snapshot: Reads the caller's current value. Called before the
                first edit of a burst: when no entry exists for ``key``, or
                when this is the first edit queued behind an in-flight commit.
            debounce_ms: Explicit window; defaults to the payload class window.
            payload_class: Selects the default window.

        Returns:
            A future that settles once with the commit result, or with the
            commit error after rollback.

        Raises:
            ClientClosedError: If the manager has been closed.
        """
        if self._closed:
            raise ClientClosedError("OptimisticUpdateManager is closed")
        loop = asyncio.get_running_loop()
        window = self._debounce[payload_class] if debounce_ms is None else debounce_ms

        entry = self._pending.get(key)
        if entry is None:
            previous = snapshot()
            apply_locally(payload)
            entry = PendingUpdate(
                key=key,
                latest_payload=payload,
                previous_snapshot=previous,
                apply_locally=apply_locally,
                commit=commit,
                debounce_ms=window,
            )
            self._pending[key] = entry
        else:
            starts_follow_up = entry.in_flight and not entry.waiters
            previous = snapshot() if starts_follow_up else None
            apply_locally(payload)
            if starts_follow_up:
                entry.follow_up_snapshot = previous
            entry.cancel_timer()
            entry.latest_payload = payload
            entry.apply_locally = apply_locally
            entry.commit = commit
            entry.debounce_ms = window
            self._telemetry.count(T_COALESCED, key=key)

        future: asyncio.Future[Any] = loop.create_future()
        entry.waiters.append(future)
        if entry.in_flight:
            logger.debug("Commit for '%s' in flight; deferring debounce", key)
        else:
            self._arm(entry, loop)
        return future

    def _arm(self, entry: PendingUpdate, loop: asyncio.AbstractEventLoop) -> None:
        entry.cancel_timer()
        entry.timer = loop.call_later(entry.debounce_ms / 1000, self._fire, entry.key)

    def _fire(self, key: str) -> None:
        entry = self._pending.get(key)
        if entry is None or entry.in_flight:
            return
        entry.timer = None
        entry.in_flight = True
        waiters, entry.waiters = entry.waiters, []
        task = asyncio.get_running_loop().create_task(
            self._run_commit(entry, entry.latest_payload, waiters)
        )
        entry.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_commit(
        self, entry: PendingUpdate, payload: Any, waiters: list[asyncio.Future[Any]]
    ) -> None:
        outcome: Result[Any, Exception]
        with self._telemetry(T_COMMIT, key=entry.key):
            try:
                outcome = Success(await entry.commit(payload))
            except Exception as e:
                outcome = Failure(e)
        self._settle(entry, waiters, outcome)

    def _settle(
        self,
        entry: PendingUpdate,
        waiters: list[asyncio.Future[Any]],
        outcome: Result[Any, Exception],
    ) -> None:
        entry.in_flight = False
        entry.task = None
        match outcome:
            case Success(value=value):
                if entry.waiters and not self._closed:
                    # Follow-up burst rolls back to the state it started from.
                    entry.previous_snapshot = entry.follow_up_snapshot
                    entry.follow_up_snapshot = None
                    self._arm(entry, asyncio.get_running_loop())
                else:
                    self._drop(entry)
                _resolve(waiters, value)
            case Failure(error=error):
                followers, entry.waiters = entry.waiters, []
                self._drop(entry)
                self._rollback(entry, error)
                _reject(waiters + followers, error)

    def _rollback(self, entry: PendingUpdate, error: Exception) -> None:
        logger.warning("Commit for '%s' failed (%s); rolling back", entry.key, error)
        self._telemetry.count(T_ROLLBACK, key=entry.key)
        try:
            entry.apply_locally(entry.previous_snapshot)
        except Exception:
            logger.exception("Rollback for '%s' failed", entry.key)

    def _drop(self, entry: PendingUpdate) -> None:
        if self._pending.get(entry.key) is entry:
            del self._pending[entry.key]
        _cancel(entry.waiters)
        entry.waiters = []

    # --- Lifecycle ---

    async def flush(self, key: str | None = None) -> None:
        """Commit pending edits now and wait until they settle.

        Commit failures are delivered to the futures returned by
        ``schedule_update``, not raised here.
        """
        while True:
            entries = [
                e for k, e in self._pending.items() if key is None or k == key
            ]
            if not entries:
                return
            for entry in entries:
                if not entry.in_flight:
                    entry.cancel_timer()
                    self._fire(entry.key)
            tasks = [e.task for e in entries if e.task is not None]
            await asyncio.gather(*tasks, return_exceptions=True)

    def clear_pending(self) -> None:
        """Cancel every unfired debounce timer and drop its entry.

        Waiters of dropped edits are cancelled. In-flight commits keep
        running; edits queued behind them are discarded. Local state is left
        as it is.
        """
        for entry in list(self._pending.values()):
            entry.cancel_timer()
            if entry.in_flight:
                _cancel(entry.waiters)
                entry.waiters = []
            else:
                self._drop(entry)

    async def aclose(self) -> None:
        """Cancel outstanding timers and wait for in-flight commits."""
        self._closed = True
        self.clear_pending()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> OptimisticUpdateManager:  # noqa: D105
        return self

    async def __aexit__(self, *exc_info: object) -> None:  # noqa: D105
        await self.aclose()


def _resolve(futures: list[asyncio.Future[Any]], value: Any) -> None:
    for fut in futures:
        if not fut.done():
            fut.set_result(value)


def _reject(futures: list[asyncio.Future[Any]], error: Exception) -> None:
    for fut in futures:
        if not fut.done():
            fut.set_exception(error)


def _cancel(futures: list[asyncio.Future[Any]]) -> None:
    for fut in futures:
        if not fut.done():
            fut.cancel()
