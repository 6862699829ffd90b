"""Refresh triggers: initial mount, fixed intervals and visibility regained.

Triggers are best effort. Each one goes through ``request_refresh``, so a trigger
firing during an in-flight cycle is dropped rather than queued.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from logging import getLogger
from typing import TYPE_CHECKING, Self

from carechain.domain.model import CollectionKind

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from carechain.config.sync import SyncConfig

    from .engine import StateReconciler

log = getLogger(__name__)

type VisibilityListener = Callable[[bool], None]


class VisibilitySignal:
    """Whether the consuming view is currently visible, with change listeners."""

    def __init__(self, *, visible: bool = True) -> None:
        self._visible = visible
        self._listeners: list[VisibilityListener] = []

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        self._visible = visible
        for listener in tuple(self._listeners):
            listener(visible)

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def intervals_from_config(config: SyncConfig) -> dict[CollectionKind, float]:
    return {
        CollectionKind.RECORDS: config.records_interval_seconds,
        CollectionKind.PERMISSION_REQUESTS: config.permissions_interval_seconds,
        CollectionKind.CLAIMS: config.claims_interval_seconds,
        CollectionKind.BOOKINGS: config.bookings_interval_seconds,
    }


class ScheduleHandle:
    """Single teardown handle returned by ``RefreshScheduler.start``."""

    def __init__(self, stop: Callable[[], None]) -> None:
        self._stop: Callable[[], None] | None = stop

    @property
    def closed(self) -> bool:
        return self._stop is None

    def close(self) -> None:
        stop, self._stop = self._stop, None
        if stop is not None:
            stop()


class RefreshScheduler:
    def __init__(
        self,
        reconciler: StateReconciler,
        *,
        intervals: Mapping[CollectionKind, float],
        visibility: VisibilitySignal | None = None,
    ) -> None:
        for kind, seconds in intervals.items():
            if seconds <= 0:
                raise ValueError(f"Refresh interval for {kind} must be positive")
        self._reconciler = reconciler
        self._intervals = dict(intervals)
        self.visibility = visibility or VisibilitySignal()
        self._timers: list[asyncio.Task[None]] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._handle: ScheduleHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> ScheduleHandle:
        """Mount: refresh every collection now, then arm timers and the visibility listener."""

        if self._handle is not None:
            return self._handle
        loop = asyncio.get_running_loop()
        self._trigger_all("mount")
        self._timers = [
            loop.create_task(self._tick(kind, seconds), name=f"refresh-timer-{kind}")
            for kind, seconds in self._intervals.items()
        ]
        self._unsubscribe = self.visibility.subscribe(self._on_visibility)
        self._handle = ScheduleHandle(self._teardown)
        log.debug("Refresh scheduler started for %s", ", ".join(self._intervals))
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.close()

    async def aclose(self) -> None:
        timers = list(self._timers)
        self.stop()
        for timer in timers:
            with suppress(asyncio.CancelledError):
                await timer

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _teardown(self) -> None:
        for timer in self._timers:
            timer.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._timers = []
        self._unsubscribe = None
        self._handle = None
        log.debug("Refresh scheduler stopped")

    async def _tick(self, kind: CollectionKind, seconds: float) -> None:
        while True:
            await asyncio.sleep(seconds)
            if not self.visibility.visible:
                continue
            self._reconciler.request_refresh(kind)

    def _on_visibility(self, visible: bool) -> None:
        if visible:
            self._trigger_all("visibility")

    def _trigger_all(self, reason: str) -> None:
        for kind in self._intervals:
            started = self._reconciler.request_refresh(kind)
            log.debug("Refresh trigger (%s) for %s: started=%s", reason, kind, started)
