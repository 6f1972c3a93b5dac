"""Live level visualizer drawn while a recording is capturing."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

import numpy as np

from .common.scheduling import Scheduler


@dataclass(frozen=True)
class Bar:
    x: int
    y: int
    width: int
    height: int


class LevelSource(Protocol):
    def byte_frequency_data(self) -> np.ndarray: ...


class DrawSurface(Protocol):
    def logical_size(self) -> tuple[float, float]: ...

    def pixel_ratio(self) -> float: ...

    def set_pixel_size(self, width: int, height: int) -> None: ...

    def clear(self) -> None: ...

    def draw_bars(self, bars: Sequence[Bar]) -> None: ...


def compute_bars(data: Sequence[int], width: float, height: float) -> list[Bar]:
    """Down-sample amplitude bytes (0..255) into vertically centered bars."""
    n = len(data)
    num_bars = int(n * 0.5)
    if num_bars == 0 or width <= 0:
        return []

    slot = width / num_bars
    bar_width = max(1, math.floor(slot * 0.7))
    spacing = max(0, math.floor(slot * 0.3))

    bars: list[Bar] = []
    x = 0.0
    for i in range(num_bars):
        if x >= width:
            break
        value = int(data[int(i * (n / num_bars))])
        bar_height = value / 255.0 * height
        if 0 < bar_height < 1:
            bar_height = 1
        bar_height = round(bar_height)
        y = round((height - bar_height) / 2)
        bars.append(Bar(math.floor(x), y, bar_width, bar_height))
        x += bar_width + spacing
    return bars


class LevelVisualizer:
    """Self-rescheduling draw loop.

    Every frame checks ``is_active`` first and ends itself (cancelling its own
    pending frame) once the recording is no longer capturing.
    """

    def __init__(
        self, surface: DrawSurface, scheduler: Scheduler, frame_interval_ms: int = 16
    ) -> None:
        self._surface = surface
        self._scheduler = scheduler
        self._frame_ms = frame_interval_ms
        self._source: Optional[LevelSource] = None
        self._is_active: Callable[[], bool] = lambda: False
        self._handle: Any = None
        self.pixel_size: tuple[int, int] = (0, 0)
        self.frames_drawn = 0

    def is_running(self) -> bool:
        return self._handle is not None

    def start(self, source: LevelSource, is_active: Callable[[], bool]) -> None:
        self.stop()
        self._source = source
        self._is_active = is_active
        self.resize()
        self._frame()

    def stop(self) -> None:
        if self._handle is not None:
            self._scheduler.cancel(self._handle)
            self._handle = None
        if self._source is not None:
            self._surface.clear()
        self._source = None

    def resize(self) -> None:
        width, height = self._surface.logical_size()
        ratio = self._surface.pixel_ratio() or 1.0
        self.pixel_size = (round(width * ratio), round(height * ratio))
        self._surface.set_pixel_size(*self.pixel_size)

    def _frame(self) -> None:
        self._handle = None
        if self._source is None or not self._is_active():
            self.stop()
            return
        self._handle = self._scheduler.call_later(self._frame_ms, self._frame)

        data = self._source.byte_frequency_data()
        width, height = self._surface.logical_size()
        self._surface.clear()
        self._surface.draw_bars(compute_bars(data, width, height))
        self.frames_drawn += 1
