"""Versioned phrase table used by the explainer.

The table is read once per pipeline context. Its lookup sections are exposed
as read-only mappings, so a shared context cannot be altered by one request.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import MappingTableError
from .gates import GATE_NAMES

_LOGGER = logging.getLogger("skyscore.mapping")

MAPPING_TABLE_FILE = "mapping_tables_v1.1.json"
DEFAULT_MAPPING_PATH = Path(__file__).with_name("data") / MAPPING_TABLE_FILE

ARC_BUCKETS = ("rise_peak_release", "gentle_wave", "plateau_hold", "mixed_rise_release")
MOVEMENT_BUCKETS = ("stepwise_heavy", "balanced", "leaping_lead")
LEAP_BUCKETS = ("wide_reaches", "close_careful")
RHYTHM_BUCKETS = ("simple_even", "lightly_shifting", "strong_accented", "fluid_open")
SYNCOPATION_BUCKETS = ("pronounced", "subtle", "straight")
DENSITY_BUCKETS = ("sparse", "balanced", "dense")
MOTIF_BUCKETS = ("frequent", "moderate", "sparse")
TEMPO_BUCKETS = ("brisk", "measured", "slow")
TINT_BUCKETS = ("fire", "earth", "air", "water", "none")
OVERLAY_FIELDS = ("step_bias", "syncopation_bias", "density_level")

_FROZEN = ConfigDict(extra="forbid", frozen=True)


def _freeze_mappings(model: BaseModel) -> None:
    """Replace the dict fields of ``model`` with read-only views."""
    for name in type(model).model_fields:
        value = getattr(model, name)
        if isinstance(value, Mapping) and not isinstance(value, MappingProxyType):
            object.__setattr__(model, name, MappingProxyType(dict(value)))


class TemplateSet(BaseModel):
    templates: tuple[str, ...] = Field(min_length=1)
    model_config = _FROZEN


class Phrase(BaseModel):
    phrase: str
    model_config = _FROZEN


class Movement(BaseModel):
    primary: str
    model_config = _FROZEN


class Modifier(BaseModel):
    modifier: str
    model_config = _FROZEN


class RhythmClass(BaseModel):
    label: str = Field(alias="class")
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class Description(BaseModel):
    description: str
    model_config = _FROZEN


class Suffix(BaseModel):
    suffix: str
    model_config = _FROZEN


class AstroColors(BaseModel):
    element_adjectives: Mapping[str, str]
    planet_adjectives: Mapping[str, str]
    model_config = _FROZEN

    @model_validator(mode="after")
    def _freeze(self) -> "AstroColors":
        _freeze_mappings(self)
        return self


class LengthBudget(BaseModel):
    max_length: int = Field(gt=0)
    model_config = _FROZEN


class TemplateStructures(BaseModel):
    short: LengthBudget
    long: LengthBudget
    model_config = _FROZEN


class SynonymSets(BaseModel):
    sets: tuple[Mapping[str, str], ...] = Field(min_length=1)
    model_config = _FROZEN

    @model_validator(mode="after")
    def _freeze(self) -> "SynonymSets":
        object.__setattr__(self, "sets", tuple(MappingProxyType(dict(entry)) for entry in self.sets))
        return self


class SynonymVariations(BaseModel):
    seed_based: SynonymSets
    model_config = _FROZEN


class Hint(BaseModel):
    hint: str
    model_config = _FROZEN


class FailClosed(BaseModel):
    hint_pattern: str
    banned_adjectives: tuple[str, ...]
    model_config = _FROZEN


class OverlayPhrase(BaseModel):
    up: str
    down: str
    model_config = _FROZEN


def _require(section: str, present: Mapping[str, object], required: tuple[str, ...]) -> None:
    missing = [name for name in required if name not in present]
    if missing:
        raise ValueError(f"{section} is missing buckets: {', '.join(missing)}")


class MappingTable(BaseModel):
    version: str
    arc_descriptions: Mapping[str, TemplateSet]
    element_tints: Mapping[str, Phrase]
    movement_descriptions: Mapping[str, Movement]
    leap_modifiers: Mapping[str, Modifier]
    planet_tints: Mapping[str, str]
    rhythm_classes: Mapping[str, RhythmClass]
    syncopation_descriptions: Mapping[str, Description]
    density_descriptions: Mapping[str, Description]
    stellium_suffix: Suffix
    motif_descriptions: Mapping[str, Description]
    tempo_descriptions: Mapping[str, Description]
    astro_colors: AstroColors
    template_structures: TemplateStructures
    synonym_variations: SynonymVariations
    sandbox_hints: Mapping[str, Hint]
    fail_closed: FailClosed
    overlay_phrases: Mapping[str, OverlayPhrase]

    model_config = _FROZEN

    @model_validator(mode="after")
    def _freeze(self) -> "MappingTable":
        _freeze_mappings(self)
        return self

    @model_validator(mode="after")
    def _check_buckets(self) -> "MappingTable":
        _require("arc_descriptions", self.arc_descriptions, ARC_BUCKETS)
        _require("element_tints", self.element_tints, TINT_BUCKETS)
        _require("movement_descriptions", self.movement_descriptions, MOVEMENT_BUCKETS)
        _require("leap_modifiers", self.leap_modifiers, LEAP_BUCKETS)
        _require("rhythm_classes", self.rhythm_classes, RHYTHM_BUCKETS)
        _require("syncopation_descriptions", self.syncopation_descriptions, SYNCOPATION_BUCKETS)
        _require("density_descriptions", self.density_descriptions, DENSITY_BUCKETS)
        _require("motif_descriptions", self.motif_descriptions, MOTIF_BUCKETS)
        _require("tempo_descriptions", self.tempo_descriptions, TEMPO_BUCKETS)
        _require("sandbox_hints", self.sandbox_hints, GATE_NAMES)
        _require("overlay_phrases", self.overlay_phrases, OVERLAY_FIELDS)
        return self

    @model_validator(mode="after")
    def _check_hints(self) -> "MappingTable":
        try:
            pattern = self.hint_regex
        except re.error as exc:
            raise ValueError(f"hint_pattern is not a valid regex: {exc}") from exc
        banned = self.banned_regex
        for gate, hint in self.sandbox_hints.items():
            if not pattern.match(hint.hint):
                raise ValueError(f"sandbox hint for {gate} does not match hint_pattern")
            if banned is not None and banned.search(hint.hint):
                raise ValueError(f"sandbox hint for {gate} uses a descriptive adjective")
        return self

    @model_validator(mode="after")
    def _check_synonyms(self) -> "MappingTable":
        # Replacements may not lengthen text, so truncated output stays within budget.
        for index, mapping in enumerate(self.synonym_variations.seed_based.sets):
            for source, target in mapping.items():
                if len(target) > len(source):
                    raise ValueError(
                        f"synonym set {index}: {target!r} is longer than {source!r}"
                    )
        return self

    @property
    def hint_regex(self) -> re.Pattern[str]:
        return re.compile(self.fail_closed.hint_pattern)

    @property
    def banned_regex(self) -> re.Pattern[str] | None:
        words = self.fail_closed.banned_adjectives
        if not words:
            return None
        alternatives = "|".join(re.escape(word) for word in sorted(words, key=len, reverse=True))
        return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    @property
    def synonym_sets(self) -> tuple[Mapping[str, str], ...]:
        return self.synonym_variations.seed_based.sets

    def hint_for(self, gate: str) -> str:
        try:
            return self.sandbox_hints[gate].hint
        except KeyError as exc:
            raise MappingTableError(f"No sandbox hint for gate {gate!r}") from exc


def load_mapping_table(path: str | Path | None = None) -> MappingTable:
    """Load and validate the mapping table at ``path`` (bundled v1.1 by default)."""
    target = Path(path) if path is not None else DEFAULT_MAPPING_PATH
    try:
        raw = json.loads(target.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise MappingTableError(f"Cannot read mapping table {target}: {exc}") from exc
    match raw:
        case dict():
            pass
        case _:
            raise MappingTableError(f"Mapping table {target} must contain a JSON object")
    try:
        table = MappingTable.model_validate(raw)
    except ValidationError as exc:
        raise MappingTableError(f"Invalid mapping table {target}: {exc}") from exc
    _LOGGER.debug("Loaded mapping table %s from %s", table.version, target)
    return table
