from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable, cast

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray

from .errors import InvalidConfigError
from .hashing import sha256_hex

FloatArray = NDArray[np.float32]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float] | FloatArray

SAMPLE_RATE = 44_100
_PCM_SCALE = 32767


def ensure_audio_contract(
    audio: AudioNumbers,
    *,
    sample_rate: int = SAMPLE_RATE,
    check_peak: bool = True,
) -> FloatArray:
    """Normalize dtype/range/shape to the audio contract (mono float32, |x| <= 1)."""

    if sample_rate <= 0:
        raise InvalidConfigError(f"sample_rate must be positive, got {sample_rate}")
    mono: FloatArray = np.asarray(audio, dtype=np.float32).reshape(-1)
    if mono.size == 0 or not check_peak:
        return mono
    peak = float(np.max(np.abs(mono)))
    if peak > 1.0:
        mono = mono / peak
    return mono


def to_pcm16(audio: AudioNumbers) -> bytes:
    """Little-endian signed 16-bit PCM bytes for hashing and hand-off."""
    mono = ensure_audio_contract(audio)
    scaled = np.clip(np.round(mono.astype(np.float64) * _PCM_SCALE), -_PCM_SCALE, _PCM_SCALE)
    return scaled.astype("<i2").tobytes()


def audio_digest(audio: AudioNumbers) -> str:
    return sha256_hex(to_pcm16(audio))


def write_wav(
    path: str | Path,
    audio: AudioNumbers,
    *,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    """Write a rendered buffer to a 16-bit wav file for auditioning."""

    target = Path(path)
    match audio:
        case str() | bytes():  # type: ignore[reportUnnecessaryComparison]
            raise InvalidConfigError("audio must be a sample array or sequence")
        case _:
            pass
    write_fn = getattr(sf, "write", None)
    assert callable(write_fn)
    write_audio = cast(Callable[..., None], write_fn)
    normalized = ensure_audio_contract(audio, sample_rate=sample_rate)
    write_audio(target, normalized, sample_rate, subtype="PCM_16")
    return target
