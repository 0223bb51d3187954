from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .audio import SAMPLE_RATE
from .composition import CompositionMode
from .errors import InvalidConfigError
from .gates import GatePolicy
from .mapping import MappingTable, load_mapping_table
from .upstream import (
    ChartSource,
    ControlPredictor,
    ControlProjectionModel,
    RuleControlPredictor,
    SeededChartSource,
    VectorModel,
)

_LOGGER = logging.getLogger("skyscore.context")

_ENV_FIELDS: Mapping[str, str] = {
    "SKYSCORE_DURATION_SEC": "duration_sec",
    "SKYSCORE_SAMPLE_RATE": "sample_rate",
    "SKYSCORE_STRUCTURE": "default_structure",
    "SKYSCORE_MAPPING_TABLE": "mapping_table_path",
    "SKYSCORE_RUNTIME_MODEL": "runtime_model",
}


class PipelineSettings(BaseModel):
    duration_sec: float = Field(default=60.0, gt=0.0, le=600.0)
    sample_rate: int = Field(default=SAMPLE_RATE, ge=8000, le=192000)
    default_structure: CompositionMode = "house-order"
    mapping_table_path: Path | None = None
    runtime_model: str = "student-v2.8-slice-batch"

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineSettings":
        source = os.environ if environ is None else environ
        values = {name: source[key] for key, name in _ENV_FIELDS.items() if source.get(key)}
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid SKYSCORE_* settings: {exc}") from exc


class ArtifactVersions(BaseModel):
    model: str = "084c92dca9af2f09"
    encoder: str = "db4eb96e52b3f63e"
    snapset: str = "185371267270f0ef"
    gate: str = "v2.3-final"
    mapping_tables_version: str = "v1.1"

    model_config = ConfigDict(extra="forbid", frozen=True)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class PipelineContext:
    """Read-only dependencies shared by every compose call."""

    settings: PipelineSettings
    mapping: MappingTable
    gates: GatePolicy
    artifacts: ArtifactVersions
    chart_source: ChartSource
    control_predictor: ControlPredictor
    vector_model: VectorModel
    clock: Callable[[], datetime] = field(default=_utc_now)


def build_context(
    settings: PipelineSettings | None = None,
    *,
    mapping: MappingTable | None = None,
    gates: GatePolicy | None = None,
    chart_source: ChartSource | None = None,
    control_predictor: ControlPredictor | None = None,
    vector_model: VectorModel | None = None,
    clock: Callable[[], datetime] | None = None,
) -> PipelineContext:
    """Assemble a context, loading the mapping table and validating gate tiers once."""
    active = settings or PipelineSettings.from_env()
    table = mapping or load_mapping_table(active.mapping_table_path)
    policy = gates or GatePolicy()
    artifacts = ArtifactVersions(gate=policy.version, mapping_tables_version=table.version)
    _LOGGER.info(
        "Pipeline ready: structure=%s duration=%.1fs mapping=%s gates=%s",
        active.default_structure,
        active.duration_sec,
        table.version,
        policy.version,
    )
    return PipelineContext(
        settings=active,
        mapping=table,
        gates=policy,
        artifacts=artifacts,
        chart_source=chart_source or SeededChartSource(),
        control_predictor=control_predictor or RuleControlPredictor(),
        vector_model=vector_model or ControlProjectionModel(),
        clock=clock or _utc_now,
    )


@lru_cache(maxsize=1)
def default_context() -> PipelineContext:
    """Process-wide context built from ``SKYSCORE_*`` on first use and reused after."""
    return build_context()
