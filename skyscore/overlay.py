"""Natal-versus-current control deltas for overlay explanations."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

from .controls import ControlSurface
from .mapping import MappingTable

OverlayField = Literal["step_bias", "syncopation_bias", "density_level"]

OVERLAY_THRESHOLDS: Mapping[OverlayField, float] = MappingProxyType(
    {
        "step_bias": 0.10,
        "syncopation_bias": 0.15,
        "density_level": 0.20,
    }
)

# Deltas are rounded before comparison so 0.7 - 0.5 counts as exactly 0.2.
DELTA_PRECISION = 6


@dataclass(frozen=True, slots=True)
class ControlDelta:
    field: OverlayField
    delta: float
    threshold: float

    @property
    def significant(self) -> bool:
        return abs(self.delta) >= self.threshold

    @property
    def direction(self) -> Literal["up", "down"]:
        return "up" if self.delta > 0 else "down"


def compute_deltas(natal: ControlSurface, current: ControlSurface) -> tuple[ControlDelta, ...]:
    deltas = []
    for field, threshold in OVERLAY_THRESHOLDS.items():
        delta = round(getattr(current, field) - getattr(natal, field), DELTA_PRECISION)
        deltas.append(ControlDelta(field, delta, threshold))
    return tuple(deltas)


def significant_deltas(natal: ControlSurface, current: ControlSurface) -> tuple[ControlDelta, ...]:
    return tuple(delta for delta in compute_deltas(natal, current) if delta.significant)


def describe_deltas(deltas: Sequence[ControlDelta], table: MappingTable) -> list[str]:
    phrases = []
    for delta in deltas:
        entry = table.overlay_phrases[delta.field]
        phrases.append(entry.up if delta.direction == "up" else entry.down)
    return phrases


def join_phrases(phrases: Sequence[str]) -> str:
    match len(phrases):
        case 0:
            return ""
        case 1:
            return phrases[0]
        case _:
            return f"{', '.join(phrases[:-1])} and {phrases[-1]}"
