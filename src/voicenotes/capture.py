"""Microphone capture for Voice Notes.

Encapsulates the sounddevice input stream, incremental PCM chunk encoding on a
writer thread, and a frequency analyser tap that feeds the live waveform.
"""

from __future__ import annotations

import os
import queue
import threading
import time
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from .common.encoding import (
    DEFAULT_FORMAT,
    CaptureFormat,
    encode_pcm_block,
    negotiate_format,
)
from .common.errors import (
    AcquisitionError,
    CaptureFailed,
    DeviceNotFound,
    DeviceUnavailable,
    EncodingUnsupported,
    PermissionDenied,
)
from .session import CaptureConstraints


def _dbg(msg: str) -> None:
    if os.environ.get("VOICENOTES_DEBUG") == "1":
        ts = time.strftime("%H:%M:%S")
        print(f"[capture {ts}] {msg}", flush=True)


# Sentinel used to signal the writer thread to finish after draining
_SENTINEL: None = None


def classify_capture_error(exc: BaseException) -> AcquisitionError:
    """Map a PortAudio/sounddevice failure onto the acquisition taxonomy."""
    if isinstance(exc, AcquisitionError):
        return exc
    text = str(exc) or exc.__class__.__name__
    low = text.lower()
    if any(
        k in low
        for k in ("permission", "not permitted", "not authorized", "access denied")
    ):
        return PermissionDenied(text)
    if "-9985" in text or "device unavailable" in low or "busy" in low:
        return DeviceUnavailable(text)
    if (
        "-9996" in text
        or "invalid device" in low
        or "no input device" in low
        or "no default" in low
        or "querying device -1" in low
    ):
        return DeviceNotFound(text)
    return CaptureFailed(text)


class FrequencyAnalyser:
    """Byte-scaled frequency magnitudes of the most recent input samples.

    Behaves like a Web Audio AnalyserNode: Blackman window, exponential
    smoothing between reads, decibels mapped from [min_db, max_db] to 0..255.
    """

    def __init__(
        self,
        fft_size: int = 256,
        smoothing: float = 0.75,
        min_db: float = -100.0,
        max_db: float = -30.0,
    ) -> None:
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db
        self._window = np.blackman(fft_size)
        self._samples = np.zeros(fft_size, dtype=np.float32)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        with self._lock:
            self._samples[:] = 0.0
            self._smoothed[:] = 0.0

    def push(self, samples: np.ndarray) -> None:
        """Append mono samples; only the last fft_size are kept."""
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if samples.size == 0:
            return
        with self._lock:
            if samples.size >= self.fft_size:
                self._samples[:] = samples[-self.fft_size :]
            else:
                self._samples = np.roll(self._samples, -samples.size)
                self._samples[-samples.size :] = samples

    def byte_frequency_data(self) -> np.ndarray:
        with self._lock:
            frame = self._samples * self._window
            magnitude = np.abs(np.fft.rfft(frame))[: self.bin_count] / self.fft_size
            self._smoothed = (
                self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude
            )
            smoothed = self._smoothed.copy()
        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(smoothed)
        scaled = (db - self.min_db) * (255.0 / (self.max_db - self.min_db))
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)


class AudioCaptureDevice:
    """Own one microphone stream at a time.

    Usage:
      dev = AudioCaptureDevice()
      dev.acquire(CaptureConstraints())
      dev.start(on_chunk)
      ...
      dev.finish()   # stop stream, flush pending chunks
      dev.release()  # close stream
    """

    def __init__(
        self,
        *,
        device: int | str | None = None,
        capture_format: str = "ogg",
        blocksize: int = 1024,
    ) -> None:
        self._device = device
        self._preferred_format = capture_format
        self._blocksize = blocksize
        self._stream: Optional[sd.InputStream] = None
        self._q: queue.Queue = queue.Queue(maxsize=200)
        self._writer: Optional[threading.Thread] = None
        self._on_chunk: Optional[Callable[[bytes], None]] = None
        self.analyser = FrequencyAnalyser()
        self.format: CaptureFormat = DEFAULT_FORMAT
        self.sample_rate: int = 0
        self.channels: int = 1

    # ---------- Public API ----------
    def is_acquired(self) -> bool:
        return self._stream is not None

    def acquire(self, constraints: CaptureConstraints) -> None:
        if self._stream is not None:
            raise RuntimeError("Microphone already acquired")
        try:
            info = sd.query_devices(self._device, kind="input")
            rate = constraints.sample_rate or int(info["default_samplerate"])
            stream = sd.InputStream(
                device=self._device,
                channels=constraints.channels,
                samplerate=rate,
                blocksize=self._blocksize,
                latency=constraints.latency,
                dtype="float32",
                callback=self._on_audio,
            )
        except (sd.PortAudioError, ValueError, OSError) as e:
            raise classify_capture_error(e) from e
        self._stream = stream
        self.sample_rate = rate
        self.channels = constraints.channels
        self.analyser.reset()
        _dbg(f"acquired device={self._device!r} sr={rate} latency={constraints.latency}")

    def start(self, on_chunk: Callable[[bytes], None]) -> CaptureFormat:
        """Begin encoding; returns the negotiated capture format."""
        if self._stream is None:
            raise RuntimeError("Microphone not acquired")
        try:
            self.format = negotiate_format(self._preferred_format)
        except EncodingUnsupported as e:
            _dbg(f"{e}; falling back to {DEFAULT_FORMAT.name}")
            self.format = DEFAULT_FORMAT
        self._on_chunk = on_chunk
        self._q = queue.Queue(maxsize=200)
        self._writer = threading.Thread(
            target=self._drain, name="CaptureEncoder", daemon=True
        )
        self._writer.start()
        try:
            self._stream.start()
        except sd.PortAudioError as e:
            self._stop_writer()
            raise classify_capture_error(e) from e
        _dbg(f"capture started format={self.format.name}")
        return self.format

    def finish(self) -> None:
        """Stop the stream and flush every pending block through the encoder."""
        if self._stream is not None:
            try:
                self._stream.stop()
            except sd.PortAudioError as e:
                print(f"Error stopping input stream: {e}", flush=True)
        self._stop_writer()

    def release(self) -> None:
        self._stop_writer()
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.close()
            except sd.PortAudioError as e:
                print(f"Error closing input stream: {e}", flush=True)
            _dbg("released device")

    # ---------- Internals ----------
    def _stop_writer(self) -> None:
        writer = self._writer
        if writer is None:
            return
        self._writer = None
        try:
            self._q.put(_SENTINEL, timeout=1.0)
        except queue.Full:
            pass
        writer.join(timeout=2.0)
        self._on_chunk = None

    def _on_audio(self, indata: np.ndarray, frames: int, time_info, status) -> None:  # type: ignore[override]
        if status:
            _dbg(f"audio status: {status}")
        self.analyser.push(indata[:, 0])
        try:
            self._q.put(indata.copy(), block=False)
        except queue.Full:
            pass

    def _drain(self) -> None:
        while True:
            try:
                block = self._q.get(timeout=0.2)
            except queue.Empty:
                continue
            if block is _SENTINEL:
                break
            cb = self._on_chunk
            if cb is not None:
                cb(encode_pcm_block(block))
