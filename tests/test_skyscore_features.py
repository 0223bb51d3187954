from __future__ import annotations

import pytest

from skyscore.composition import Composition, Event, Segment
from skyscore.controls import NEUTRAL_VECTOR
from skyscore.features import (
    measure,
    melody_arc,
    melody_narrative,
    melody_step_leap,
    rhythm_diversity,
)
from skyscore.gates import measure_gate_scores


def _composition(pitches: list[int], hits: list[tuple[float, float]] | None = None) -> Composition:
    events = [Event("melody", pitch, i * 0.5, 0.4, 0.7, "lead") for i, pitch in enumerate(pitches)]
    events += [Event("rhythm", 36, onset, length, 0.8, "drums") for onset, length in hits or []]
    events.sort(key=lambda event: (event.onset, event.role))
    duration = max(10.0, len(pitches) * 0.5)
    return Composition(
        mode="house-order",
        duration=duration,
        segments=(Segment("house", "house-1", 0.0, duration, tuple(events)),),
        vector=NEUTRAL_VECTOR,
    )


def test_arc_rewards_rise_and_release() -> None:
    assert melody_arc([60, 60, 66, 66, 60, 60]) == pytest.approx(1.0)
    assert melody_arc([60, 60, 63, 63, 60, 60]) == pytest.approx(0.5)
    assert melody_arc([60] * 9) == 0.0
    assert melody_arc([66, 66, 60, 60, 66, 66]) == 0.0
    assert melody_arc([72, 72, 66, 66, 60, 60]) == pytest.approx(0.5)


def test_step_leap_counts_small_intervals() -> None:
    assert melody_step_leap([60, 61, 63, 70]) == pytest.approx(2 / 3)
    assert melody_step_leap([60, 60, 60, 60]) == 1.0


def test_narrative_penalises_zigzag() -> None:
    assert melody_narrative([60, 62, 64, 66, 68]) == 1.0
    assert melody_narrative([60, 62, 60, 62, 60]) == 0.0
    assert melody_narrative([60, 62, 64, 62, 60]) == pytest.approx(2 / 3)


def test_short_melodies_score_zero() -> None:
    assert melody_arc([60, 62, 64]) == 0.0
    assert melody_step_leap([60, 62]) == 0.0
    assert melody_narrative([60]) == 0.0


def test_rhythm_diversity_prefers_varied_spacing() -> None:
    even = _composition([60] * 4, [(i * 0.5, 0.1) for i in range(16)])
    varied_onsets = [0.0, 0.1, 0.35, 0.5, 0.9, 1.0, 1.45, 1.6, 2.3, 2.45, 2.5, 3.2]
    varied = _composition(
        [60] * 4, [(onset, 0.05 * (1 + i % 5)) for i, onset in enumerate(varied_onsets)]
    )
    assert rhythm_diversity(even.events) == pytest.approx(0.25 / 8)
    assert rhythm_diversity(varied.events) > rhythm_diversity(even.events)


def test_measure_returns_all_four_scores() -> None:
    composition = _composition([60, 62, 64, 66, 64, 62, 60], [(i * 0.3, 0.1) for i in range(8)])
    scores = measure(composition)
    assert set(scores) == {"melody_arc", "melody_step_leap", "melody_narrative", "rhythm_diversity"}
    assert all(0.0 <= value <= 1.0 for value in scores.values())
    assert measure_gate_scores(composition).melody_step_leap == 1.0
