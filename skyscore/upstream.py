"""Collaborators that live outside the composer.

The real ephemeris service and learned models are external. The classes here
are deterministic stand-ins with the same call shape, used by default and in
tests; production wiring passes its own implementations into the context.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Protocol, runtime_checkable

from .controls import (
    AstroSummary,
    CompositionVector,
    ControlSurface,
    ElementWeights,
    ModalityWeights,
    PlanetCluster,
)
from .rng import SeededGenerator, create

PLANETS: tuple[str, ...] = (
    "sun",
    "moon",
    "mercury",
    "venus",
    "mars",
    "jupiter",
    "saturn",
    "uranus",
    "neptune",
    "pluto",
)

ELEMENT_BRIGHTNESS: Mapping[str, float] = MappingProxyType(
    {"fire": 0.8, "air": 0.65, "earth": 0.45, "water": 0.35}
)


@runtime_checkable
class ChartSource(Protocol):
    def summarize(self, when: str, latitude: float, longitude: float) -> AstroSummary: ...


@runtime_checkable
class ControlPredictor(Protocol):
    def predict(self, summary: AstroSummary) -> ControlSurface: ...


@runtime_checkable
class VectorModel(Protocol):
    def predict(self, controls: ControlSurface) -> Sequence[float]: ...


def _clamp(value: float) -> float:
    return round(min(max(value, 0.0), 1.0), 4)


def _shuffle(items: Sequence[str], rng: SeededGenerator) -> list[str]:
    shuffled = list(items)
    for index in range(len(shuffled) - 1, 0, -1):
        swap = int(rng.next() * (index + 1))
        shuffled[index], shuffled[swap] = shuffled[swap], shuffled[index]
    return shuffled


def _normalized(raw: Sequence[float]) -> list[float]:
    total = sum(raw)
    values = [round(value / total, 4) for value in raw]
    # Push rounding drift into the largest weight so the sum is exact to 4 places.
    drift = round(1.0 - sum(values), 4)
    largest = values.index(max(values))
    values[largest] = round(values[largest] + drift, 4)
    return values


class SeededChartSource:
    """Reproducible pseudo-chart keyed by time and place."""

    def summarize(self, when: str, latitude: float, longitude: float) -> AstroSummary:
        rng = create(f"chart|{when}|{latitude:.4f}|{longitude:.4f}")
        fire, earth, air, water = _normalized([0.2 + rng.next() for _ in range(4)])
        cardinal, fixed, mutable = _normalized([0.2 + rng.next() for _ in range(3)])
        elements = ElementWeights(fire=fire, earth=earth, air=air, water=water)
        modality = ModalityWeights(cardinal=cardinal, fixed=fixed, mutable=mutable)

        order = _shuffle(PLANETS, rng)
        dominant = tuple(order[: rng.randint(1, 4)])
        clusters: list[PlanetCluster] = []
        cursor = 0
        while cursor < len(order) - 1 and len(clusters) < 4:
            size = rng.randint(2, 4)
            members = tuple(order[cursor : cursor + size])
            clusters.append(PlanetCluster(id=f"cluster-{len(clusters) + 1}", planets=members))
            cursor += size

        return AstroSummary(
            elements=elements,
            modality=modality,
            dominant_planets=dominant,
            clusters=tuple(clusters),
            element_dominance=elements.top(),
            aspect_tension=_clamp(rng.next()),
            timestamp=when,
        )


class RuleControlPredictor:
    """Element-weighted rules mapping a chart summary onto the control surface."""

    def predict(self, summary: AstroSummary) -> ControlSurface:
        el = summary.elements
        tension = summary.aspect_tension
        modality_weights = summary.modality.model_dump()
        modality = max(modality_weights, key=lambda name: modality_weights[name])
        return ControlSurface(
            arc_shape=_clamp(0.3 + 0.5 * el.fire + 0.2 * tension),
            density_level=_clamp(0.3 + 0.4 * el.earth + 0.1 * len(summary.dominant_planets)),
            tempo_norm=_clamp(0.35 + 0.4 * (el.fire + el.air) - 0.1 * el.water + 0.1 * tension),
            step_bias=_clamp(0.8 - 0.5 * el.fire),
            leap_cap=2 + math.floor(el.fire * 4),
            rhythm_template_id=math.floor(
                el.fire * 100 + el.earth * 200 + el.air * 300 + el.water * 400
            )
            % 8,
            syncopation_bias=_clamp(0.2 + 0.6 * el.air + 0.2 * el.fire),
            motif_rate=_clamp(0.4 + 0.4 * el.water + 0.2 * summary.modality.fixed),
            element_dominance=summary.element_dominance,
            aspect_tension=_clamp(tension),
            modality=modality,
        )


class ControlProjectionModel:
    """Linear projection of the control surface onto the six composition dims."""

    def predict(self, controls: ControlSurface) -> tuple[float, ...]:
        return CompositionVector(
            tempo_energy=controls.tempo_norm,
            rhythm_density=0.5 * controls.density_level + 0.5 * controls.syncopation_bias,
            harmonic_tension=controls.aspect_tension,
            brightness=ELEMENT_BRIGHTNESS[controls.element_dominance],
            texture_space=1.0 - controls.density_level,
            melodic_activity=0.6 * controls.motif_rate + 0.4 * controls.density_level,
        ).as_tuple()
