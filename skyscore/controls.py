from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import astuple, dataclass, fields
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidControlsError
from .hashing import build_control_hash

Element = Literal["fire", "earth", "air", "water"]
Modality = Literal["cardinal", "fixed", "mutable"]

ELEMENTS: tuple[Element, ...] = ("fire", "earth", "air", "water")
MODALITIES: tuple[Modality, ...] = ("cardinal", "fixed", "mutable")

_WEIGHT_TOLERANCE = 1e-3


class ControlSurface(BaseModel):
    """The fixed schema that drives one composition.

    ``hash`` is derived from every other field unless the caller already owns a
    seed and supplies one; in that case it is kept verbatim.
    """

    arc_shape: float = Field(default=0.45, ge=0.0, le=1.0, description="Melodic arc height.")
    density_level: float = Field(default=0.6, ge=0.0, le=1.0, description="Texture density.")
    tempo_norm: float = Field(default=0.7, ge=0.0, le=1.0, description="Normalised tempo.")
    step_bias: float = Field(default=0.7, ge=0.0, le=1.0, description="Stepwise preference.")
    leap_cap: int = Field(default=5, ge=0, description="Largest leap in semitones.")
    rhythm_template_id: int = Field(default=3, description="Rhythm template selector.")
    syncopation_bias: float = Field(default=0.3, ge=0.0, le=1.0)
    motif_rate: float = Field(default=0.6, ge=0.0, le=1.0)
    element_dominance: Element = "air"
    aspect_tension: float = Field(default=0.4, ge=0.0, le=1.0)
    modality: Modality = "mutable"
    hash: str = Field(default="", description="Deterministic seed for this surface.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _fill_hash(self) -> "ControlSurface":
        if not self.hash:
            object.__setattr__(self, "hash", build_control_hash(self.payload()))
        return self

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"hash"})


DEFAULT_CONTROLS = ControlSurface()


def coerce_controls(
    data: ControlSurface | Mapping[str, Any] | None,
    *,
    defaults: ControlSurface | None = None,
) -> ControlSurface:
    """Merge a partial control mapping over ``defaults`` and validate it."""
    base = defaults or DEFAULT_CONTROLS
    match data:
        case None:
            return base
        case ControlSurface():
            return data
        case Mapping():
            merged = {**base.payload(), **dict(data)}
            try:
                return ControlSurface.model_validate(merged)
            except ValidationError as exc:
                raise InvalidControlsError(_describe_validation(exc)) from exc
        case _:
            raise InvalidControlsError(
                f"Unsupported controls type: {type(data).__name__}"
            )


def _describe_validation(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "controls"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


class ElementWeights(BaseModel):
    fire: float = Field(ge=0.0, le=1.0)
    earth: float = Field(ge=0.0, le=1.0)
    air: float = Field(ge=0.0, le=1.0)
    water: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _sums_to_one(self) -> "ElementWeights":
        total = self.fire + self.earth + self.air + self.water
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"element weights must sum to 1, got {total:.4f}")
        return self

    def ordered(self) -> tuple[tuple[Element, float], ...]:
        return tuple((name, float(getattr(self, name))) for name in ELEMENTS)

    def top(self) -> Element:
        return max(self.ordered(), key=lambda item: item[1])[0]


class ModalityWeights(BaseModel):
    cardinal: float = Field(ge=0.0, le=1.0)
    fixed: float = Field(ge=0.0, le=1.0)
    mutable: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _sums_to_one(self) -> "ModalityWeights":
        total = self.cardinal + self.fixed + self.mutable
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"modality weights must sum to 1, got {total:.4f}")
        return self


class PlanetCluster(BaseModel):
    id: str
    planets: tuple[str, ...] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def size(self) -> int:
        return len(self.planets)


class AstroSummary(BaseModel):
    """Ephemeris-derived summary consumed by the composer and the atoms."""

    elements: ElementWeights
    modality: ModalityWeights
    dominant_planets: tuple[str, ...] = ()
    clusters: tuple[PlanetCluster, ...] = ()
    element_dominance: Element
    aspect_tension: float = Field(ge=0.0, le=1.0)
    timestamp: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_controls(cls, controls: ControlSurface) -> "AstroSummary":
        elements = {name: 0.1 for name in ELEMENTS}
        elements[controls.element_dominance] = 0.7
        modality = {name: 0.2 for name in MODALITIES}
        modality[controls.modality] = 0.6
        return cls(
            elements=ElementWeights(**elements),
            modality=ModalityWeights(**modality),
            element_dominance=controls.element_dominance,
            aspect_tension=controls.aspect_tension,
        )


NEUTRAL_ASTRO = AstroSummary(
    elements=ElementWeights(fire=0.25, earth=0.25, air=0.25, water=0.25),
    modality=ModalityWeights(cardinal=1 / 3, fixed=1 / 3, mutable=1 / 3),
    element_dominance="air",
    aspect_tension=0.5,
)


@dataclass(frozen=True, slots=True)
class CompositionVector:
    tempo_energy: float
    rhythm_density: float
    harmonic_tension: float
    brightness: float
    texture_space: float
    melodic_activity: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "CompositionVector":
        items = [float(value) for value in values]
        expected = len(fields(cls))
        if len(items) != expected:
            raise ValueError(f"composition vector needs {expected} values, got {len(items)}")
        for value in items:
            if not math.isfinite(value) or not 0.0 <= value <= 1.0:
                raise ValueError(f"composition vector value out of range: {value!r}")
        return cls(*items)

    def as_tuple(self) -> tuple[float, ...]:
        return astuple(self)

    def as_dict(self) -> Mapping[str, float]:
        return MappingProxyType({item.name: getattr(self, item.name) for item in fields(self)})


NEUTRAL_VECTOR = CompositionVector(0.5, 0.5, 0.5, 0.5, 0.5, 0.5)
