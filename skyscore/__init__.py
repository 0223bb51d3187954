from __future__ import annotations

from .atoms import ExplainerAtoms, generate_atoms
from .audio import SAMPLE_RATE, audio_digest, ensure_audio_contract, to_pcm16, write_wav
from .compose import (
    ComposeRequest,
    ComposeResponse,
    ComposeResult,
    OverlayParams,
    compose,
    compose_payload,
)
from .composition import (
    COMPOSITION_MODES,
    Composition,
    CompositionMode,
    Event,
    Segment,
    generate_composition,
)
from .context import (
    ArtifactVersions,
    PipelineContext,
    PipelineSettings,
    build_context,
    default_context,
)
from .controls import (
    DEFAULT_CONTROLS,
    NEUTRAL_ASTRO,
    NEUTRAL_VECTOR,
    AstroSummary,
    CompositionVector,
    ControlSurface,
    PlanetCluster,
    coerce_controls,
)
from .errors import (
    GateConfigError,
    InvalidConfigError,
    InvalidControlsError,
    InvalidRequestError,
    MappingTableError,
    SkyscoreError,
    UpstreamUnavailableError,
)
from .finalize import FinalizeReport, bpm_for, finalize_composition
from .gates import (
    GatePolicy,
    GateReport,
    GateScores,
    GateThresholds,
    GateVerdicts,
    evaluate_gates,
    failed_gates,
    measure_gate_scores,
)
from .hashing import hash_normalized_response, normalize_response, string_hash
from .logging_utils import configure_logging as _configure_logging
from .mapping import MappingTable, load_mapping_table
from .realizer import ExplainerText, realize_overlay_text, realize_text
from .rng import SeededGenerator, create, derive
from .synth import render_events

__all__ = [
    "COMPOSITION_MODES",
    "DEFAULT_CONTROLS",
    "NEUTRAL_ASTRO",
    "NEUTRAL_VECTOR",
    "SAMPLE_RATE",
    "ArtifactVersions",
    "AstroSummary",
    "ComposeRequest",
    "ComposeResponse",
    "ComposeResult",
    "Composition",
    "CompositionMode",
    "CompositionVector",
    "ControlSurface",
    "Event",
    "ExplainerAtoms",
    "ExplainerText",
    "FinalizeReport",
    "GateConfigError",
    "GatePolicy",
    "GateReport",
    "GateScores",
    "GateThresholds",
    "GateVerdicts",
    "InvalidConfigError",
    "InvalidControlsError",
    "InvalidRequestError",
    "MappingTable",
    "MappingTableError",
    "OverlayParams",
    "PipelineContext",
    "PipelineSettings",
    "PlanetCluster",
    "SeededGenerator",
    "Segment",
    "SkyscoreError",
    "UpstreamUnavailableError",
    "audio_digest",
    "bpm_for",
    "build_context",
    "coerce_controls",
    "compose",
    "compose_payload",
    "create",
    "default_context",
    "derive",
    "ensure_audio_contract",
    "evaluate_gates",
    "failed_gates",
    "finalize_composition",
    "generate_atoms",
    "generate_composition",
    "hash_normalized_response",
    "load_mapping_table",
    "measure_gate_scores",
    "normalize_response",
    "realize_overlay_text",
    "realize_text",
    "render_events",
    "string_hash",
    "to_pcm16",
    "write_wav",
]

__version__ = "0.3.0"

_configure_logging()
del _configure_logging
