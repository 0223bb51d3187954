from __future__ import annotations

import pytest

from skyscore.composition import (
    COMPOSITION_MODES,
    HARMONY_PITCHES,
    PITCH_CEILING,
    PITCH_FLOOR,
    RHYTHM_PITCHES,
    Composition,
    generate_composition,
)
from skyscore.controls import (
    AstroSummary,
    CompositionVector,
    ControlSurface,
    ElementWeights,
    ModalityWeights,
    PlanetCluster,
)
from skyscore.errors import InvalidRequestError
from skyscore.upstream import ControlProjectionModel

CONTROLS = ControlSurface(hash="seed-A")
VECTOR = CompositionVector.from_sequence(ControlProjectionModel().predict(CONTROLS))


def _assert_contiguous(composition: Composition) -> None:
    segments = composition.segments
    assert segments[0].start == 0.0
    assert segments[-1].end == composition.duration
    for left, right in zip(segments, segments[1:]):
        assert left.end == right.start
    for segment in segments:
        assert segment.duration > 0


@pytest.mark.parametrize("mode", COMPOSITION_MODES)
def test_segments_cover_timeline(mode: str) -> None:
    composition = generate_composition(CONTROLS, VECTOR, mode, duration=60.0)  # type: ignore[arg-type]
    _assert_contiguous(composition)


@pytest.mark.parametrize("mode", COMPOSITION_MODES)
def test_events_start_inside_their_segment(mode: str) -> None:
    composition = generate_composition(CONTROLS, VECTOR, mode, duration=30.0)  # type: ignore[arg-type]
    last = len(composition.segments) - 1
    for index, segment in enumerate(composition.segments):
        for event in segment.events:
            assert segment.contains(event.onset, last=index == last)


@pytest.mark.parametrize("mode", COMPOSITION_MODES)
def test_every_segment_has_melody(mode: str) -> None:
    composition = generate_composition(CONTROLS, VECTOR, mode, duration=60.0)  # type: ignore[arg-type]
    assert all(segment.count("melody") >= 1 for segment in composition.segments)


@pytest.mark.parametrize("mode", COMPOSITION_MODES)
def test_generation_is_deterministic(mode: str) -> None:
    first = generate_composition(CONTROLS, VECTOR, mode, duration=20.0)  # type: ignore[arg-type]
    second = generate_composition(CONTROLS, VECTOR, mode, duration=20.0)  # type: ignore[arg-type]
    assert first == second


def test_different_hash_changes_events() -> None:
    other = ControlSurface(hash="seed-B")
    first = generate_composition(CONTROLS, VECTOR, "house-order", duration=20.0)
    second = generate_composition(other, VECTOR, "house-order", duration=20.0)
    assert first.events != second.events


def test_pitch_ranges_per_role() -> None:
    composition = generate_composition(CONTROLS, VECTOR, "house-order", duration=60.0)
    for event in composition.events:
        match event.role:
            case "melody":
                assert PITCH_FLOOR <= event.pitch <= PITCH_CEILING
            case "rhythm":
                assert RHYTHM_PITCHES[0] <= event.pitch <= RHYTHM_PITCHES[1]
            case "harmony":
                assert HARMONY_PITCHES[0] <= event.pitch <= HARMONY_PITCHES[1]


def test_house_order_has_twelve_houses() -> None:
    composition = generate_composition(CONTROLS, VECTOR, "house-order", duration=60.0)
    assert [segment.label for segment in composition.segments] == [
        f"house-{index}" for index in range(1, 13)
    ]


def test_lunar_has_four_phases() -> None:
    composition = generate_composition(CONTROLS, VECTOR, "lunar", duration=40.0)
    assert [segment.label for segment in composition.segments] == ["new", "waxing", "full", "waning"]
    assert all(segment.duration == pytest.approx(10.0) for segment in composition.segments)


def test_elemental_segments_follow_weights() -> None:
    astro = AstroSummary(
        elements=ElementWeights(fire=0.5, earth=0.0, air=0.25, water=0.25),
        modality=ModalityWeights(cardinal=0.4, fixed=0.3, mutable=0.3),
        element_dominance="fire",
        aspect_tension=0.5,
    )
    composition = generate_composition(CONTROLS, VECTOR, "elemental", duration=60.0, astro=astro)
    durations = {segment.label: segment.duration for segment in composition.segments}
    assert list(durations) == ["fire", "earth", "air", "water"]
    assert durations["fire"] > durations["air"] > durations["earth"] > 0
    assert durations["air"] == pytest.approx(durations["water"])


def test_cluster_mode_uses_defaults_and_fill() -> None:
    composition = generate_composition(CONTROLS, VECTOR, "cluster", duration=60.0)
    kinds = [segment.kind for segment in composition.segments]
    assert kinds == ["cluster", "cluster", "cluster", "fill"]
    for segment in composition.segments[:3]:
        assert 3.0 <= segment.duration <= 15.0
    _assert_contiguous(composition)


def test_cluster_mode_clips_overflow() -> None:
    astro = AstroSummary.from_controls(CONTROLS).model_copy(
        update={
            "clusters": (
                PlanetCluster(id="a", planets=("sun", "moon", "mars")),
                PlanetCluster(id="b", planets=("venus", "saturn")),
                PlanetCluster(id="c", planets=("jupiter", "pluto")),
            )
        }
    )
    composition = generate_composition(CONTROLS, VECTOR, "cluster", duration=8.0, astro=astro)
    assert [segment.label for segment in composition.segments] == ["a", "b", "c"]
    assert composition.segments[-1].end == 8.0
    assert composition.segments[-1].duration < 3.0
    _assert_contiguous(composition)


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(InvalidRequestError):
        generate_composition(CONTROLS, VECTOR, "spiral", duration=10.0)  # type: ignore[arg-type]


def test_non_positive_duration_is_rejected() -> None:
    with pytest.raises(InvalidRequestError):
        generate_composition(CONTROLS, VECTOR, "lunar", duration=0.0)


def test_step_bias_shapes_melody_intervals() -> None:
    stepwise = ControlSurface(step_bias=1.0, leap_cap=6, hash="steps")
    leaping = ControlSurface(step_bias=0.0, leap_cap=6, hash="steps")

    def large_moves(controls: ControlSurface) -> int:
        composition = generate_composition(controls, VECTOR, "house-order", duration=60.0)
        pitches = [event.pitch for event in composition.events if event.role == "melody"]
        return sum(1 for a, b in zip(pitches, pitches[1:]) if abs(b - a) > 2)

    assert large_moves(stepwise) < large_moves(leaping)
