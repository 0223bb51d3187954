from __future__ import annotations

import math
import re

import pytest
from pydantic import ValidationError

from skyscore.controls import (
    DEFAULT_CONTROLS,
    NEUTRAL_VECTOR,
    AstroSummary,
    CompositionVector,
    ControlSurface,
    ElementWeights,
    coerce_controls,
)
from skyscore.errors import InvalidControlsError


def test_default_surface_matches_sandbox_defaults() -> None:
    controls = ControlSurface()
    assert controls.arc_shape == 0.45
    assert controls.density_level == 0.6
    assert controls.tempo_norm == 0.7
    assert controls.step_bias == 0.7
    assert controls.leap_cap == 5
    assert controls.rhythm_template_id == 3
    assert controls.syncopation_bias == 0.3
    assert controls.motif_rate == 0.6
    assert controls.element_dominance == "air"
    assert controls.aspect_tension == 0.4
    assert controls.modality == "mutable"


def test_hash_is_derived_from_fields() -> None:
    first = ControlSurface(arc_shape=0.5)
    second = ControlSurface(arc_shape=0.5)
    third = ControlSurface(arc_shape=0.51)
    assert re.fullmatch(r"[0-9a-f]{16}", first.hash)
    assert first.hash == second.hash
    assert first.hash != third.hash


def test_supplied_hash_is_kept() -> None:
    controls = ControlSurface(hash="seed-A")
    assert controls.hash == "seed-A"
    assert "hash" not in controls.payload()


def test_surface_is_frozen() -> None:
    with pytest.raises(ValidationError):
        DEFAULT_CONTROLS.arc_shape = 0.9  # type: ignore[misc]


def test_coerce_merges_partial_over_defaults() -> None:
    controls = coerce_controls({"tempo_norm": 0.2})
    assert controls.tempo_norm == 0.2
    assert controls.step_bias == DEFAULT_CONTROLS.step_bias
    assert controls.hash != DEFAULT_CONTROLS.hash


def test_coerce_none_returns_defaults() -> None:
    assert coerce_controls(None) is DEFAULT_CONTROLS


@pytest.mark.parametrize(
    "bad",
    [
        {"arc_shape": 1.5},
        {"tempo_norm": -0.1},
        {"leap_cap": -1},
        {"element_dominance": "metal"},
        {"modality": "flexible"},
        {"unknown_field": 1},
        {"density_level": math.nan},
    ],
)
def test_coerce_rejects_invalid_controls(bad: dict[str, object]) -> None:
    with pytest.raises(InvalidControlsError):
        coerce_controls(bad)


def test_coerce_rejects_unsupported_type() -> None:
    with pytest.raises(InvalidControlsError):
        coerce_controls("arc_shape=0.5")  # type: ignore[arg-type]


def test_astro_summary_from_controls_is_normalized() -> None:
    summary = AstroSummary.from_controls(ControlSurface(element_dominance="water", modality="fixed"))
    assert summary.elements.top() == "water"
    assert summary.modality.fixed == pytest.approx(0.6)
    assert summary.dominant_planets == ()
    assert summary.clusters == ()


def test_element_weights_must_sum_to_one() -> None:
    with pytest.raises(ValidationError):
        ElementWeights(fire=0.5, earth=0.5, air=0.5, water=0.5)


def test_vector_from_sequence_validates() -> None:
    vector = CompositionVector.from_sequence([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
    assert vector.melodic_activity == 0.6
    assert vector.as_tuple() == (0.1, 0.2, 0.3, 0.4, 0.5, 0.6)
    with pytest.raises(ValueError):
        CompositionVector.from_sequence([0.1, 0.2])
    with pytest.raises(ValueError):
        CompositionVector.from_sequence([0.1, 0.2, 0.3, 0.4, 0.5, 1.5])
    with pytest.raises(ValueError):
        CompositionVector.from_sequence([0.1, 0.2, 0.3, 0.4, 0.5, math.inf])


def test_neutral_vector_is_mid_range() -> None:
    assert set(NEUTRAL_VECTOR.as_tuple()) == {0.5}
    assert NEUTRAL_VECTOR.as_dict()["brightness"] == 0.5
