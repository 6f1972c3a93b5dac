"""Cooperative scheduling seam.

All note state lives on the UI thread. Periodic work (autosave, the live
timer, waveform frames) is expressed as callbacks scheduled on that thread's
event loop rather than as extra threads.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, fn: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class TkScheduler:
    """Scheduler backed by a Tk widget's ``after`` queue."""

    def __init__(self, widget: Any) -> None:
        self._widget = widget

    def call_later(self, delay_ms: int, fn: Callable[[], None]) -> str:
        return self._widget.after(max(0, int(delay_ms)), fn)

    def cancel(self, handle: Any) -> None:
        if handle is None:
            return
        try:
            self._widget.after_cancel(handle)
        except Exception:
            # Already fired or widget destroyed
            pass

    def dispatch(self, fn: Callable[[], None]) -> None:
        """Run `fn` on the UI thread as soon as possible (safe from workers)."""
        self._widget.after(0, fn)


class Ticker:
    """Run `fn` every `interval_ms` until stopped."""

    def __init__(
        self, scheduler: Scheduler, interval_ms: int, fn: Callable[[], None]
    ) -> None:
        self._scheduler = scheduler
        self._interval = interval_ms
        self._fn = fn
        self._handle: Any = None
        self._running = False

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._handle = self._scheduler.call_later(self._interval, self._tick)

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._scheduler.cancel(self._handle)
            self._handle = None

    def is_running(self) -> bool:
        return self._running

    def _tick(self) -> None:
        if not self._running:
            return
        try:
            self._fn()
        finally:
            if self._running:
                self._handle = self._scheduler.call_later(self._interval, self._tick)
