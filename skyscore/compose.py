"""End-to-end compose: controls in, audio plus explanation out.

One call runs validate → resolve controls → vector → compose → finalize →
render → gates → atoms → text → hashes. Nothing here keeps state between
calls; everything shared lives on the :class:`PipelineContext`.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .atoms import generate_atoms
from .audio import audio_digest, to_pcm16
from .composition import Composition, CompositionMode, generate_composition
from .context import PipelineContext, default_context
from .controls import (
    DEFAULT_CONTROLS,
    NEUTRAL_ASTRO,
    NEUTRAL_VECTOR,
    AstroSummary,
    CompositionVector,
    ControlSurface,
    coerce_controls,
)
from .errors import (
    GateConfigError,
    InvalidConfigError,
    InvalidControlsError,
    InvalidRequestError,
    MappingTableError,
)
from .finalize import FinalizeReport, finalize_composition
from .gates import GateReport, evaluate_gates, measure_gate_scores
from .hashing import build_payload_hash
from .logging_utils import log_audit, log_exception
from .realizer import ExplainerText, realize_overlay_text, realize_text
from .synth import render_events

_LOGGER = logging.getLogger("skyscore.compose")

T = TypeVar("T")

AUDIO_URL_TEMPLATE = "/api/audio/{key}.mp3"
AUDIO_KEY_LENGTH = 12


class OverlayParams(BaseModel):
    natal_latitude: float = Field(alias="natalLatitude", ge=-90.0, le=90.0)
    natal_longitude: float = Field(alias="natalLongitude", ge=-180.0, le=180.0)
    natal_datetime: str = Field(alias="natalDatetime", min_length=1)
    current_latitude: float = Field(alias="currentLatitude", ge=-90.0, le=90.0)
    current_longitude: float = Field(alias="currentLongitude", ge=-180.0, le=180.0)
    current_datetime: str = Field(alias="currentDatetime", min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class ComposeRequest(BaseModel):
    mode: Literal["sandbox", "overlay"] = "sandbox"
    controls: dict[str, Any] | None = None
    overlay_params: OverlayParams | None = Field(default=None, alias="overlayParams")
    natal_controls: dict[str, Any] | None = Field(default=None, alias="natalControls")
    structure: CompositionMode | None = None
    duration_sec: float | None = Field(default=None, alias="durationSec", gt=0.0, le=600.0)
    seed: int | None = None

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _overlay_needs_two_charts(self) -> "ComposeRequest":
        if self.mode != "overlay" or self.overlay_params is not None:
            return self
        if self.controls is None or self.natal_controls is None:
            raise ValueError("overlay mode needs overlayParams or both controls and natalControls")
        return self


class AstroBlock(BaseModel):
    element_dominance: str
    aspect_tension: float
    modality: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class AudioBlock(BaseModel):
    url: str
    digest: str
    duration_sec: float
    sample_rate: int
    latency_ms: float | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class HashBlock(BaseModel):
    control: str
    audio: str
    explanation: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class ArtifactBlock(BaseModel):
    model: str
    encoder: str
    snapset: str
    gate: str
    mapping_tables_version: str
    timestamp: str | None = None
    seed: int | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class ComposeResponse(BaseModel):
    controls: ControlSurface
    astro: AstroBlock
    gate_report: GateReport
    audio: AudioBlock
    text: ExplainerText
    hashes: HashBlock
    artifacts: ArtifactBlock

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _seeded_consistently(self) -> "ComposeResponse":
        if self.text.seed != self.controls.hash or self.hashes.control != self.controls.hash:
            raise ValueError("text seed and control hash must match controls.hash")
        return self


@dataclass(frozen=True, slots=True)
class ComposeResult:
    response: ComposeResponse
    audio: NDArray[np.float32]
    pcm: bytes
    composition: Composition
    finalize_report: FinalizeReport


@dataclass(frozen=True, slots=True)
class _Resolved:
    controls: ControlSurface
    natal: ControlSurface | None
    astro: AstroSummary
    fallbacks: tuple[str, ...]


def _log_fallback(context: str, exc: Exception) -> None:
    debug = bool(os.environ.get("SKYSCORE_DEBUG"))
    _LOGGER.warning("%s unavailable, using neutral fallback: %s", context, exc, exc_info=debug)
    log_exception(context, exc)


def _with_fallback(context: str, call: Callable[[], T], fallback: T, used: list[str]) -> T:
    try:
        return call()
    except Exception as exc:
        _log_fallback(context, exc)
        used.append(context)
        return fallback


def _predicted_controls(context: PipelineContext, summary: AstroSummary) -> ControlSurface:
    predicted = context.control_predictor.predict(summary)
    match predicted:
        case ControlSurface():
            return predicted
        case Mapping():
            return coerce_controls(predicted)
        case _:
            raise InvalidControlsError(f"predictor returned {type(predicted).__name__}")


def _resolve_overlay(request: ComposeRequest, context: PipelineContext) -> _Resolved:
    used: list[str] = []
    params = request.overlay_params
    current_astro: AstroSummary | None = None
    natal_astro: AstroSummary | None = None
    if params is not None:
        current_astro = _with_fallback(
            "chart.current",
            lambda: context.chart_source.summarize(
                params.current_datetime, params.current_latitude, params.current_longitude
            ),
            NEUTRAL_ASTRO,
            used,
        )
        natal_astro = _with_fallback(
            "chart.natal",
            lambda: context.chart_source.summarize(
                params.natal_datetime, params.natal_latitude, params.natal_longitude
            ),
            NEUTRAL_ASTRO,
            used,
        )

    if request.controls is not None:
        current = coerce_controls(request.controls)
    else:
        assert current_astro is not None
        summary = current_astro
        current = _with_fallback(
            "predictor.current", lambda: _predicted_controls(context, summary), DEFAULT_CONTROLS, used
        )

    if request.natal_controls is not None:
        natal = coerce_controls(request.natal_controls)
    else:
        assert natal_astro is not None
        natal_summary = natal_astro
        natal = _with_fallback(
            "predictor.natal",
            lambda: _predicted_controls(context, natal_summary),
            DEFAULT_CONTROLS,
            used,
        )

    astro = current_astro or AstroSummary.from_controls(current)
    return _Resolved(controls=current, natal=natal, astro=astro, fallbacks=tuple(used))


def _resolve(request: ComposeRequest, context: PipelineContext) -> _Resolved:
    match request.mode:
        case "sandbox":
            controls = coerce_controls(request.controls)
            return _Resolved(controls, None, AstroSummary.from_controls(controls), ())
        case "overlay":
            return _resolve_overlay(request, context)
        case _:
            raise InvalidRequestError(f"Unsupported mode: {request.mode!r}")


def _vector(controls: ControlSurface, context: PipelineContext, used: list[str]) -> CompositionVector:
    return _with_fallback(
        "vector_model",
        lambda: CompositionVector.from_sequence(context.vector_model.predict(controls)),
        NEUTRAL_VECTOR,
        used,
    )


def explanation_hash(text: ExplainerText) -> str:
    return build_payload_hash(text.model_dump(mode="json"))


def audio_url(control_hash: str) -> str:
    return AUDIO_URL_TEMPLATE.format(key=control_hash[:AUDIO_KEY_LENGTH])


def compose(request: ComposeRequest, context: PipelineContext | None = None) -> ComposeResult:
    """Run one full compose; identical requests give identical results.

    Without ``context`` the process-wide :func:`default_context` is used.
    """
    active = context or default_context()
    settings = active.settings
    started = time.perf_counter()

    resolved = _resolve(request, active)
    controls = resolved.controls
    fallbacks = list(resolved.fallbacks)
    vector = _vector(controls, active, fallbacks)

    structure = request.structure or settings.default_structure
    duration = request.duration_sec or settings.duration_sec
    composition = generate_composition(
        controls, vector, structure, duration=duration, astro=resolved.astro
    )
    composition, finalize_report = finalize_composition(composition, controls)

    render_started = time.perf_counter()
    buffer = render_events(composition.events, duration, sample_rate=settings.sample_rate)
    pcm = to_pcm16(buffer)
    render_ms = (time.perf_counter() - render_started) * 1000.0

    gate_report = evaluate_gates(measure_gate_scores(composition), active.gates)
    atoms = generate_atoms(controls, active.mapping, resolved.astro)
    if resolved.natal is not None:
        text = realize_overlay_text(atoms, gate_report, resolved.natal, controls, active.mapping)
    else:
        text = realize_text(atoms, gate_report, controls, active.mapping)

    digest = audio_digest(buffer)
    latency_ms = round((time.perf_counter() - started) * 1000.0, 3)
    artifacts = active.artifacts
    response = ComposeResponse(
        controls=controls,
        astro=AstroBlock(
            element_dominance=controls.element_dominance,
            aspect_tension=controls.aspect_tension,
            modality=controls.modality,
        ),
        gate_report=gate_report,
        audio=AudioBlock(
            url=audio_url(controls.hash),
            digest=digest,
            duration_sec=duration,
            sample_rate=settings.sample_rate,
            latency_ms=latency_ms,
        ),
        text=text,
        hashes=HashBlock(control=controls.hash, audio=digest, explanation=explanation_hash(text)),
        artifacts=ArtifactBlock(
            **artifacts.model_dump(),
            timestamp=active.clock().isoformat(),
            seed=request.seed,
        ),
    )
    log_audit(
        "compose_done",
        hash=controls.hash,
        mode=request.mode,
        structure=structure,
        template_id=text.template_id,
        scores=gate_report.scores.model_dump(),
        calibrated=gate_report.calibrated.overall,
        strict=gate_report.strict.overall,
        fail_closed_text=text.fail_closed,
        events_added=finalize_report.added,
        fallbacks=fallbacks,
        latency_ms=latency_ms,
        render_ms=round(render_ms, 3),
    )
    return ComposeResult(
        response=response,
        audio=buffer,
        pcm=pcm,
        composition=composition,
        finalize_report=finalize_report,
    )


def _error(message: str, code: str) -> dict[str, Any]:
    return {"error": message, "code": code}


def compose_payload(
    payload: Mapping[str, Any], context: PipelineContext | None = None
) -> dict[str, Any]:
    """JSON-in/JSON-out wrapper that reports bad input as a structured error."""
    try:
        request = ComposeRequest.model_validate(dict(payload))
    except ValidationError as exc:
        return _error(str(exc), "invalid_request")
    try:
        result = compose(request, context)
    except InvalidControlsError as exc:
        return _error(str(exc), "invalid_controls")
    except InvalidRequestError as exc:
        return _error(str(exc), "invalid_request")
    except (InvalidConfigError, MappingTableError) as exc:
        log_exception("compose", exc)
        return _error(str(exc), "configuration_error")
    except GateConfigError as exc:
        log_exception("compose", exc)
        raise
    return result.response.model_dump(mode="json")
