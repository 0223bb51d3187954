"""Symbolic measurements that feed the quality gates.

All four scores live in ``[0, 1]`` and are computed from event lists only, so
they are exact and reproducible for a given composition.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence

from .composition import Composition, Event, event_sort_key

MIN_EVENTS = 4
STEP_LIMIT = 2
ARC_SCALE = 12.0
IOI_BIN_SECONDS = 0.05
ENTROPY_BITS = math.log2(8)
DURATION_VARIETY = 8


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _melody(composition: Composition) -> list[int]:
    events = sorted(
        (event for event in composition.events if event.role == "melody"), key=event_sort_key
    )
    return [event.pitch for event in events]


def melody_arc(pitches: Sequence[int]) -> float:
    """Height of the middle third over both outer thirds, in octaves."""
    if len(pitches) < MIN_EVENTS:
        return 0.0
    one_third = len(pitches) // 3
    two_thirds = 2 * len(pitches) // 3
    parts = (pitches[:one_third], pitches[one_third:two_thirds], pitches[two_thirds:])
    m1, m2, m3 = (sum(part) / len(part) for part in parts)
    rise = max(0.0, m2 - m1)
    release = max(0.0, m2 - m3)
    return _clamp((rise + release) / ARC_SCALE)


def melody_step_leap(pitches: Sequence[int]) -> float:
    if len(pitches) < MIN_EVENTS:
        return 0.0
    intervals = [abs(b - a) for a, b in zip(pitches, pitches[1:])]
    return sum(1 for interval in intervals if interval <= STEP_LIMIT) / len(intervals)


def melody_narrative(pitches: Sequence[int]) -> float:
    """One minus the share of direction reversals among non-repeated moves."""
    if len(pitches) < MIN_EVENTS:
        return 0.0
    moves = [b - a for a, b in zip(pitches, pitches[1:]) if b != a]
    if len(moves) < 2:
        return 1.0 if moves else 0.0
    changes = sum(1 for a, b in zip(moves, moves[1:]) if (a > 0) != (b > 0))
    return _clamp(1.0 - changes / (len(moves) - 1))


def _entropy(values: Sequence[int]) -> float:
    counts = Counter(values)
    total = len(values)
    return -sum((count / total) * math.log2(count / total) for count in counts.values())


def rhythm_diversity(events: Sequence[Event]) -> float:
    """Inter-onset entropy (50 ms bins) blended with duration variety."""
    hits = sorted((event for event in events if event.role == "rhythm"), key=event_sort_key)
    if len(hits) < MIN_EVENTS:
        return 0.0
    intervals = [
        round((b.onset - a.onset) / IOI_BIN_SECONDS) for a, b in zip(hits, hits[1:])
    ]
    entropy = _clamp(_entropy(intervals) / ENTROPY_BITS)
    durations = {round(event.duration / IOI_BIN_SECONDS) for event in hits}
    variety = _clamp(len(durations) / DURATION_VARIETY)
    return _clamp(0.75 * entropy + 0.25 * variety)


def measure(composition: Composition) -> dict[str, float]:
    pitches = _melody(composition)
    return {
        "melody_arc": melody_arc(pitches),
        "melody_step_leap": melody_step_leap(pitches),
        "melody_narrative": melody_narrative(pitches),
        "rhythm_diversity": rhythm_diversity(composition.events),
    }
