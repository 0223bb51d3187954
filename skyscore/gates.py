from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .composition import Composition
from .errors import GateConfigError
from .features import measure

_LOGGER = logging.getLogger("skyscore.gates")

GateName = Literal["melody_arc", "melody_step_leap", "melody_narrative", "rhythm_diversity"]
GATE_NAMES: tuple[GateName, ...] = (
    "melody_arc",
    "melody_step_leap",
    "melody_narrative",
    "rhythm_diversity",
)
GATE_VERSION = "v2.3-final"


class GateThresholds(BaseModel):
    melody_arc: float = Field(ge=0.0, le=1.0)
    melody_step_leap: float = Field(ge=0.0, le=1.0)
    melody_narrative: float = Field(ge=0.0, le=1.0)
    rhythm_diversity: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid", frozen=True)


class GateScores(BaseModel):
    melody_arc: float = Field(ge=0.0, le=1.0)
    melody_step_leap: float = Field(ge=0.0, le=1.0)
    melody_narrative: float = Field(ge=0.0, le=1.0)
    rhythm_diversity: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid", frozen=True)


class GateVerdicts(BaseModel):
    melody_arc: bool
    melody_step_leap: bool
    melody_narrative: bool
    rhythm_diversity: bool
    overall: bool

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _overall_is_conjunction(self) -> "GateVerdicts":
        expected = all(getattr(self, name) for name in GATE_NAMES)
        if self.overall != expected:
            raise GateConfigError(f"overall={self.overall} disagrees with sub-gates ({expected})")
        return self


class GatePolicy(BaseModel):
    """Calibrated and strict threshold tiers; strict never sits below calibrated."""

    calibrated: GateThresholds = GateThresholds(
        melody_arc=0.40,
        melody_step_leap=0.45,
        melody_narrative=0.35,
        rhythm_diversity=0.30,
    )
    strict: GateThresholds = GateThresholds(
        melody_arc=0.45,
        melody_step_leap=0.55,
        melody_narrative=0.40,
        rhythm_diversity=0.35,
    )
    version: str = GATE_VERSION

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _strict_dominates(self) -> "GatePolicy":
        for name in GATE_NAMES:
            calibrated = getattr(self.calibrated, name)
            strict = getattr(self.strict, name)
            if strict < calibrated:
                raise GateConfigError(
                    f"strict threshold for {name} ({strict}) is below calibrated ({calibrated})"
                )
        return self


class GateReport(BaseModel):
    calibrated: GateVerdicts
    strict: GateVerdicts
    scores: GateScores

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _strict_implies_calibrated(self) -> "GateReport":
        for name in GATE_NAMES:
            if getattr(self.strict, name) and not getattr(self.calibrated, name):
                raise GateConfigError(f"{name} passes strict but fails calibrated")
        return self

    @property
    def passed(self) -> bool:
        return self.calibrated.overall


def _verdicts(scores: GateScores, thresholds: GateThresholds) -> GateVerdicts:
    results = {name: getattr(scores, name) >= getattr(thresholds, name) for name in GATE_NAMES}
    return GateVerdicts(**results, overall=all(results.values()))


def evaluate_gates(scores: GateScores, policy: GatePolicy | None = None) -> GateReport:
    active = policy or GatePolicy()
    report = GateReport(
        calibrated=_verdicts(scores, active.calibrated),
        strict=_verdicts(scores, active.strict),
        scores=scores,
    )
    _LOGGER.debug(
        "Gates %s: calibrated=%s strict=%s scores=%s",
        active.version,
        report.calibrated.overall,
        report.strict.overall,
        scores.model_dump(),
    )
    return report


def measure_gate_scores(composition: Composition) -> GateScores:
    return GateScores(**measure(composition))


def failed_gates(verdicts: GateVerdicts) -> tuple[GateName, ...]:
    return tuple(name for name in GATE_NAMES if not getattr(verdicts, name))
