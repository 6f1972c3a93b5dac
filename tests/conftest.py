from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from voicenotes.common.encoding import FORMATS


class ManualScheduler:
    """Deterministic stand-in for the Tk ``after`` queue."""

    def __init__(self) -> None:
        self.now = 0
        self._next = 0
        self.pending: dict[int, tuple[int, Callable[[], None]]] = {}
        self.cancelled: list[int] = []

    def call_later(self, delay_ms: int, fn: Callable[[], None]) -> int:
        self._next += 1
        self.pending[self._next] = (self.now + delay_ms, fn)
        return self._next

    def cancel(self, handle) -> None:
        if self.pending.pop(handle, None) is not None:
            self.cancelled.append(handle)

    def dispatch(self, fn: Callable[[], None]) -> None:
        self.call_later(0, fn)

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [(t, h) for h, (t, _fn) in self.pending.items() if t <= target]
            if not due:
                break
            t, handle = min(due)
            self.now = t
            _t, fn = self.pending.pop(handle)
            fn()
        self.now = target


class FakeAnalyser:
    def __init__(self, level: int = 128, bins: int = 128) -> None:
        self.level = level
        self.bins = bins

    def byte_frequency_data(self) -> np.ndarray:
        return np.full(self.bins, self.level, dtype=np.uint8)


class FakeDevice:
    """AudioCaptureDevice double: records calls, fails on demand."""

    def __init__(self, failures: list[Exception] | None = None) -> None:
        self.failures = list(failures or [])
        self.calls: list[str] = []
        self.constraints: list = []
        self.on_chunk: Callable[[bytes], None] | None = None
        self.analyser = FakeAnalyser()
        self.format = FORMATS["wav"]
        self.sample_rate = 16_000
        self.channels = 1
        self.pending_on_finish: list[bytes] = []
        self._acquired = False

    def is_acquired(self) -> bool:
        return self._acquired

    def acquire(self, constraints) -> None:
        self.calls.append("acquire")
        self.constraints.append(constraints)
        if self.failures:
            raise self.failures.pop(0)
        self._acquired = True

    def start(self, on_chunk):
        self.calls.append("start")
        self.on_chunk = on_chunk
        return self.format

    def finish(self) -> None:
        self.calls.append("finish")
        # Blocks still queued in the encoder are flushed on finish
        for chunk in self.pending_on_finish:
            if self.on_chunk is not None:
                self.on_chunk(chunk)
        self.pending_on_finish = []

    def release(self) -> None:
        self.calls.append("release")
        self._acquired = False
        self.on_chunk = None


class FakeSurface:
    def __init__(self, width: float = 200, height: float = 50, ratio: float = 2.0) -> None:
        self.size = (width, height)
        self.ratio = ratio
        self.pixel_size = (0, 0)
        self.frames: list[list] = []
        self.clears = 0

    def logical_size(self):
        return self.size

    def pixel_ratio(self) -> float:
        return self.ratio

    def set_pixel_size(self, width: int, height: int) -> None:
        self.pixel_size = (width, height)

    def clear(self) -> None:
        self.clears += 1

    def draw_bars(self, bars) -> None:
        self.frames.append(list(bars))


class FakeClock:
    def __init__(self, start: int = 1_000) -> None:
        self.value = start

    def __call__(self) -> int:
        return self.value


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def pcm_chunk() -> bytes:
    # 100 ms of a quiet 440 Hz tone, int16 little-endian
    t = np.arange(1600) / 16_000.0
    return (np.sin(2 * np.pi * 440 * t) * 0.2 * 32767).astype("<i2").tobytes()

