# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownArgumentType=false

"""
Event renderer.

1. Primitives: sine partials, envelopes, filters
2. Voices: tonal notes and percussive hits
3. Mixer: events → mono buffer, low-passed and peak-normalised
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import TypeAlias

import numpy as np
from numpy.typing import NDArray
from scipy.signal import butter, sosfilt  # type: ignore[import]

from .audio import SAMPLE_RATE
from .composition import Event

_LOGGER = logging.getLogger("skyscore.synth")

FloatArray: TypeAlias = NDArray[np.float64]

PEAK_LEVEL = 0.85
MIX_CUTOFF_HZ = 8000.0
PARTIAL_LIMIT = 0.45  # fraction of the sample rate
HIT_SECONDS = 0.12

# Relative amplitude of the 1st, 2nd and 3rd partial per role.
PARTIALS: Mapping[str, tuple[float, ...]] = MappingProxyType(
    {
        "melody": (1.0, 0.35, 0.15),
        "harmony": (1.0, 0.5, 0.25),
    }
)

# (attack, decay, sustain, release) in seconds / level.
ENVELOPES: Mapping[str, tuple[float, float, float, float]] = MappingProxyType(
    {
        "melody": (0.01, 0.08, 0.7, 0.08),
        "harmony": (0.08, 0.2, 0.6, 0.25),
    }
)

ROLE_GAIN: Mapping[str, float] = MappingProxyType(
    {"melody": 0.35, "harmony": 0.18, "rhythm": 0.3}
)


# =============================================================================
# PART 1: PRIMITIVES
# =============================================================================

MIN_ATTACK = 0.005
MIN_RELEASE = 0.01
TAIL_FADE = 0.01
FILTER_ORDER = 2


def midi_to_freq(pitch: float) -> float:
    return 440.0 * 2 ** ((pitch - 69) / 12)


def sample_times(samples: int, sr: int = SAMPLE_RATE) -> FloatArray:
    return np.arange(samples, dtype=np.float64) / sr


def additive_tone(
    fundamental: float, weights: tuple[float, ...], samples: int, sr: int = SAMPLE_RATE
) -> FloatArray:
    """Sum of harmonic sines; partials at or above the limit are left out."""
    harmonics = np.arange(1, len(weights) + 1, dtype=np.float64) * fundamental
    keep = harmonics < sr * PARTIAL_LIMIT
    if samples <= 0 or not np.any(keep):
        return np.zeros(max(samples, 0))
    phases = 2 * np.pi * np.outer(harmonics[keep], sample_times(samples, sr))
    return np.asarray(weights, dtype=np.float64)[keep] @ np.sin(phases)


def adsr_envelope(
    samples: int,
    attack: float,
    decay: float,
    sustain: float,
    release: float,
    sr: int = SAMPLE_RATE,
) -> FloatArray:
    """Piecewise-linear gain curve that starts and ends at zero.

    Segments that do not fit the note are shrunk in proportion, so short notes
    lose their sustain plateau first.
    """
    if samples <= 0:
        return np.zeros(0)
    attack = max(attack, MIN_ATTACK)
    release = max(release, MIN_RELEASE)
    span = (samples - 1) / sr
    shaped = attack + decay + release
    if shaped > span:
        scale = span / shaped
        attack, decay, release = attack * scale, decay * scale, release * scale
    knees = (0.0, attack, attack + decay, span - release, span)
    levels = (0.0, 1.0, sustain, sustain, 0.0)
    return np.interp(sample_times(samples, sr), knees, levels)


@lru_cache(maxsize=128)
def _lowpass_sos(cutoff_millis: int) -> NDArray[np.float64]:
    # Keyed on thousandths of Nyquist so nearby cutoffs share one design.
    sos = butter(FILTER_ORDER, cutoff_millis / 1000.0, btype="lowpass", output="sos")
    return np.asarray(sos, dtype=np.float64)


def lowpass(signal: FloatArray, cutoff: float, sr: int = SAMPLE_RATE) -> FloatArray:
    """Causal Butterworth low-pass at ``cutoff`` Hz."""
    ratio = min(max(cutoff / (sr / 2), 0.001), 0.99)
    sos = _lowpass_sos(int(round(ratio * 1000)))
    return np.asarray(sosfilt(sos, signal), dtype=np.float64)


def mix_into(buffer: FloatArray, voice: FloatArray, start: int, sr: int = SAMPLE_RATE) -> None:
    """Add ``voice`` to ``buffer`` at ``start``; a voice cut by the buffer end gets a short fade."""
    room = len(buffer) - start
    if room <= 0 or voice.size == 0:
        return
    if voice.size <= room:
        buffer[start : start + voice.size] += voice
        return
    head = voice[:room].copy()
    fade = min(int(sr * TAIL_FADE), room // 4)
    if fade > 1:
        head[-fade:] *= np.linspace(1.0, 0.0, fade)
    buffer[start:] += head


# =============================================================================
# PART 2: VOICES
# =============================================================================


def render_tone(event: Event, sr: int = SAMPLE_RATE) -> FloatArray:
    """Band-limited additive tone for a melody or harmony event."""
    attack, decay, sustain, release = ENVELOPES[event.role]
    samples = int(sr * max(event.duration, attack + release))
    tone = additive_tone(midi_to_freq(event.pitch), PARTIALS[event.role], samples, sr)
    gain = event.velocity * ROLE_GAIN[event.role]
    return tone * adsr_envelope(samples, attack, decay, sustain, release, sr) * gain


def render_hit(event: Event, sr: int = SAMPLE_RATE) -> FloatArray:
    """Short exponentially decaying transient for a rhythm event."""
    t = sample_times(int(sr * min(HIT_SECONDS, max(event.duration, 0.02))), sr)
    ceiling = sr * PARTIAL_LIMIT
    body_freq = min(midi_to_freq(event.pitch), ceiling)
    # A fixed inharmonic partial stands in for noise.
    click_freq = min(body_freq * 7.13, ceiling)
    strike = np.sin(2 * np.pi * body_freq * t) + 0.4 * np.sin(2 * np.pi * click_freq * t)
    return strike * np.exp(-35.0 * t) * event.velocity * ROLE_GAIN["rhythm"]


# =============================================================================
# PART 3: MIXER
# =============================================================================


def render_events(
    events: Iterable[Event],
    duration: float,
    *,
    sample_rate: int = SAMPLE_RATE,
    normalize: bool = True,
) -> NDArray[np.float32]:
    """Render events into a mono float32 buffer of exactly ``duration`` seconds."""
    sr = sample_rate
    output = np.zeros(int(sr * duration))
    rendered = 0
    for event in events:
        match event.role:
            case "rhythm":
                voice = render_hit(event, sr)
            case "melody" | "harmony":
                voice = render_tone(event, sr)
            case _:
                raise ValueError(f"Unknown event role: {event.role!r}")
        mix_into(output, voice, int(round(event.onset * sr)), sr)
        rendered += 1

    if output.size:
        output = lowpass(output, MIX_CUTOFF_HZ, sr)

    if normalize:
        max_val = np.max(np.abs(output)) if output.size else 0.0
        if max_val > 0:
            output = output / max_val * PEAK_LEVEL

    _LOGGER.debug("Rendered %d events into %d samples", rendered, output.size)
    return output.astype(np.float32)
