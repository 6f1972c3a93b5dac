"""Recording session state machine.

Idle -> Acquiring -> Capturing -> Stopping -> Idle, with AcquisitionFailed as
a per-attempt dead end that resolves straight back to Idle.
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from .common.encoding import DEFAULT_FORMAT, CaptureFormat, assemble, pcm_duration_seconds
from .common.errors import AcquisitionError
from .common.scheduling import Scheduler, Ticker
from .visualizer import LevelVisualizer

if TYPE_CHECKING:
    from .capture import AudioCaptureDevice


def _dbg(msg: str) -> None:
    if os.environ.get("VOICENOTES_DEBUG") == "1":
        ts = time.strftime("%H:%M:%S")
        print(f"[session {ts}] {msg}", flush=True)


class SessionState(Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    CAPTURING = "capturing"
    STOPPING = "stopping"
    ACQUISITION_FAILED = "acquisition_failed"


@dataclass(frozen=True)
class CaptureConstraints:
    sample_rate: Optional[int] = 16_000  # None -> device default
    channels: int = 1
    latency: str = "low"

    @classmethod
    def conservative(cls) -> "CaptureConstraints":
        """Device defaults everywhere; the fallback when the first open fails."""
        return cls(sample_rate=None, channels=1, latency="high")


@dataclass(frozen=True)
class AudioArtifact:
    data: bytes
    media_type: str
    duration_seconds: float = 0.0

    @property
    def size(self) -> int:
        return len(self.data)


def format_elapsed(elapsed: float) -> str:
    """MM:SS.hh as shown by the live recording timer."""
    elapsed_ms = max(0, int(elapsed * 1000))
    total_seconds = elapsed_ms // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    hundredths = (elapsed_ms % 1000) // 10
    return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"


class RecordingSession:
    """Own microphone acquisition, chunk accumulation and artifact assembly.

    Usage:
      session = RecordingSession(AudioCaptureDevice(), scheduler)
      session.start()
      ...
      artifact = session.stop()  # None when nothing was captured
    """

    def __init__(
        self,
        device: AudioCaptureDevice,
        scheduler: Scheduler,
        *,
        visualizer: Optional[LevelVisualizer] = None,
        constraints: Optional[CaptureConstraints] = None,
        timer_interval_ms: int = 50,
        on_tick: Optional[Callable[[str], None]] = None,
        on_state: Optional[Callable[[SessionState], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._device = device
        self._visualizer = visualizer
        self._constraints = constraints or CaptureConstraints()
        self._on_tick = on_tick
        self._on_state = on_state
        self._clock = clock
        self._timer = Ticker(scheduler, timer_interval_ms, self._tick)
        self._state = SessionState.IDLE
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()
        self._format: CaptureFormat = DEFAULT_FORMAT
        self._started_at: Optional[float] = None

    # ---------- Public API ----------
    @property
    def state(self) -> SessionState:
        return self._state

    def is_capturing(self) -> bool:
        return self._state is SessionState.CAPTURING

    def chunk_count(self) -> int:
        with self._lock:
            return len(self._chunks)

    def start(self) -> None:
        if self._state is SessionState.CAPTURING:
            raise RuntimeError("Recording already in progress")

        # Leftovers from a previous attempt are closed before acquiring again
        if self._device.is_acquired():
            self._device.release()
        self._stop_live_display()
        with self._lock:
            self._chunks.clear()

        self._set_state(SessionState.ACQUIRING)
        try:
            self._open(self._constraints)
        except AcquisitionError as first:
            _dbg(f"acquisition failed ({first}); retrying with conservative constraints")
            self._device.release()
            try:
                self._open(CaptureConstraints.conservative())
            except AcquisitionError:
                self._device.release()
                self._set_state(SessionState.ACQUISITION_FAILED)
                self._set_state(SessionState.IDLE)
                raise

        self._started_at = self._clock()
        self._set_state(SessionState.CAPTURING)
        if self._visualizer is not None:
            self._visualizer.start(self._device.analyser, self.is_capturing)
        self._tick()
        self._timer.start()

    def stop(self) -> Optional[AudioArtifact]:
        if self._state not in (SessionState.CAPTURING, SessionState.ACQUIRING):
            self._stop_live_display()
            return None

        self._set_state(SessionState.STOPPING)
        try:
            self._device.finish()
        finally:
            self._device.release()
            self._stop_live_display()
            self._started_at = None
            self._set_state(SessionState.IDLE)

        with self._lock:
            chunks = self._chunks
            self._chunks = []
        if not chunks:
            _dbg("stopped with no captured chunks")
            return None

        rate = self._device.sample_rate
        channels = self._device.channels
        data = assemble(chunks, self._format, rate, channels)
        duration = pcm_duration_seconds(sum(len(c) for c in chunks), rate, channels)
        _dbg(f"assembled {len(chunks)} chunks -> {len(data)} bytes {self._format.media_type}")
        return AudioArtifact(
            data=data, media_type=self._format.media_type, duration_seconds=duration
        )

    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def format_elapsed(self) -> str:
        return format_elapsed(self.elapsed_seconds())

    # ---------- Internals ----------
    def _open(self, constraints: CaptureConstraints) -> None:
        self._device.acquire(constraints)
        self._format = self._device.start(self._on_chunk)

    def _on_chunk(self, chunk: bytes) -> None:
        # Runs on the encoder thread
        if not chunk:
            return
        with self._lock:
            if self._state in (
                SessionState.ACQUIRING,
                SessionState.CAPTURING,
                SessionState.STOPPING,
            ):
                self._chunks.append(chunk)

    def _tick(self) -> None:
        if self._on_tick is not None and self.is_capturing():
            self._on_tick(self.format_elapsed())

    def _stop_live_display(self) -> None:
        self._timer.stop()
        if self._visualizer is not None:
            self._visualizer.stop()

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            self._state = state
        _dbg(f"state -> {state.value}")
        if self._on_state is not None:
            self._on_state(state)
