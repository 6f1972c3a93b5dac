"""Capture encoding for Voice Notes.

Audio blocks are encoded incrementally into 16-bit PCM chunks while recording;
on stop the chunks are assembled into a single container in the negotiated
format.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import soundfile as sf

from .errors import EncodingUnsupported


@dataclass(frozen=True)
class CaptureFormat:
    name: str
    container: str  # libsndfile major format
    subtype: str
    media_type: str
    extension: str


FORMATS: dict[str, CaptureFormat] = {
    "ogg": CaptureFormat("ogg", "OGG", "VORBIS", "audio/ogg", ".ogg"),
    "flac": CaptureFormat("flac", "FLAC", "PCM_16", "audio/flac", ".flac"),
    "wav": CaptureFormat("wav", "WAV", "PCM_16", "audio/wav", ".wav"),
}

DEFAULT_FORMAT = FORMATS["wav"]

# Bytes per sample of the intermediate chunk encoding
_PCM_WIDTH = 2


def negotiate_format(preferred: str) -> CaptureFormat:
    """Return the preferred format if libsndfile can write it.

    Raises EncodingUnsupported otherwise; callers fall back to DEFAULT_FORMAT.
    """
    fmt = FORMATS.get((preferred or "").lower())
    if fmt is None or not sf.check_format(fmt.container, fmt.subtype):
        raise EncodingUnsupported(preferred)
    return fmt


def encode_pcm_block(block: np.ndarray) -> bytes:
    """Encode a float32 block (-1..1) as interleaved little-endian int16 bytes."""
    if block.size == 0:
        return b""
    clipped = np.clip(block, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def assemble(
    chunks: Iterable[bytes], fmt: CaptureFormat, sample_rate: int, channels: int = 1
) -> bytes:
    """Join PCM chunks and encode them into one `fmt` container in memory."""
    pcm = b"".join(chunks)
    frames = np.frombuffer(pcm, dtype="<i2").reshape(-1, channels)
    buf = io.BytesIO()
    with sf.SoundFile(
        buf,
        mode="w",
        samplerate=sample_rate,
        channels=channels,
        format=fmt.container,
        subtype=fmt.subtype,
    ) as out:
        out.write(frames)
    return buf.getvalue()


def pcm_duration_seconds(n_bytes: int, sample_rate: int, channels: int = 1) -> float:
    if sample_rate <= 0 or channels <= 0:
        return 0.0
    return n_bytes / float(_PCM_WIDTH * channels * sample_rate)


def human_readable_bytes(n: int) -> str:
    MiB = 1024 * 1024
    KiB = 1024
    if n >= MiB:
        return f"{n / MiB:.1f} MiB"
    if n >= KiB:
        return f"{n / KiB:.0f} KiB"
    return f"{n} B"
