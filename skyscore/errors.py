from __future__ import annotations


class SkyscoreError(Exception):
    """Base error for the skyscore pipeline."""


class InvalidControlsError(SkyscoreError):
    """Raised when a control surface fails range or schema validation."""


class InvalidRequestError(SkyscoreError):
    """Raised when a compose request cannot be parsed."""


class InvalidConfigError(SkyscoreError):
    """Raised when pipeline settings cannot be parsed or validated."""


class MappingTableError(SkyscoreError):
    """Raised when the explainer mapping table is missing or malformed."""


class GateConfigError(SkyscoreError):
    """Raised when gate thresholds or a gate report break tier ordering."""


class UpstreamUnavailableError(SkyscoreError):
    """Raised by an upstream collaborator (chart source, predictor, vector model)."""
