import io

import numpy as np
import pytest
import soundfile as sf

from voicenotes.common import encoding
from voicenotes.common.encoding import (
    FORMATS,
    assemble,
    encode_pcm_block,
    human_readable_bytes,
    negotiate_format,
    pcm_duration_seconds,
)
from voicenotes.common.errors import EncodingUnsupported


def test_encode_pcm_block_clips_and_scales() -> None:
    block = np.array([[0.0], [1.0], [-1.0], [2.0]], dtype=np.float32)
    data = encode_pcm_block(block)
    assert np.frombuffer(data, dtype="<i2").tolist() == [0, 32767, -32767, 32767]
    assert encode_pcm_block(np.zeros((0, 1), dtype=np.float32)) == b""


def test_negotiate_known_format() -> None:
    assert negotiate_format("WAV") is FORMATS["wav"]


def test_negotiate_unknown_format_raises() -> None:
    with pytest.raises(EncodingUnsupported) as info:
        negotiate_format("mp3")
    assert info.value.fmt == "mp3"


def test_negotiate_unsupported_by_libsndfile(monkeypatch) -> None:
    monkeypatch.setattr(encoding.sf, "check_format", lambda *a, **k: False)
    with pytest.raises(EncodingUnsupported):
        negotiate_format("ogg")


def test_assemble_wav_container(pcm_chunk: bytes) -> None:
    data = assemble([pcm_chunk, pcm_chunk], FORMATS["wav"], 16_000)
    frames, rate = sf.read(io.BytesIO(data), dtype="int16")
    assert rate == 16_000
    assert len(frames) == 3200
    assert frames.tolist() == np.frombuffer(pcm_chunk * 2, dtype="<i2").tolist()


def test_duration_and_sizes() -> None:
    assert pcm_duration_seconds(32_000, 16_000) == 1.0
    assert pcm_duration_seconds(100, 0) == 0.0
    assert human_readable_bytes(512) == "512 B"
    assert human_readable_bytes(2048) == "2 KiB"
    assert human_readable_bytes(3 * 1024 * 1024) == "3.0 MiB"
