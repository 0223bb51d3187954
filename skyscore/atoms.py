"""Bucket the control surface into six short phrases ("atoms").

Every bucket boundary is closed on the lower side, so each value lands in
exactly one bucket. Within a bucket, phrase variants are picked with
``string_hash(seed + atom_name)`` so the choice depends only on the control hash.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from .controls import AstroSummary, ControlSurface
from .hashing import string_hash
from .mapping import MappingTable

STELLIUM_SIZE = 3
ELEMENT_TINT_WEIGHT = 0.4


class ExplainerAtoms(BaseModel):
    arc_desc: str
    movement: str
    rhythm_feel: str
    density_desc: str
    motif_desc: str
    astro_color: str

    model_config = ConfigDict(extra="forbid", frozen=True)


def select_by_seed(options: Sequence[str], seed: str, atom: str) -> str:
    if not options:
        return f"default {atom}"
    if len(options) == 1:
        return options[0]
    return options[string_hash(seed + atom) % len(options)]


def arc_bucket(arc_shape: float) -> str:
    if arc_shape >= 0.6:
        return "rise_peak_release"
    if arc_shape >= 0.4:
        return "gentle_wave"
    if arc_shape >= 0.2:
        return "plateau_hold"
    return "mixed_rise_release"


def movement_bucket(step_bias: float) -> str:
    if step_bias >= 0.70:
        return "stepwise_heavy"
    if step_bias >= 0.40:
        return "balanced"
    return "leaping_lead"


def leap_bucket(leap_cap: int) -> str | None:
    if leap_cap >= 5:
        return "wide_reaches"
    if leap_cap <= 2:
        return "close_careful"
    return None


def rhythm_bucket(template_id: int) -> str:
    match template_id:
        case 0 | 1 | 2:
            return "simple_even"
        case 3 | 4:
            return "lightly_shifting"
        case 5 | 6:
            return "strong_accented"
        case _:
            return "fluid_open"


def syncopation_bucket(bias: float) -> str:
    if bias >= 0.60:
        return "pronounced"
    if bias >= 0.30:
        return "subtle"
    return "straight"


def density_bucket(level: float) -> str:
    if level < 0.35:
        return "sparse"
    if level < 0.65:
        return "balanced"
    return "dense"


def motif_bucket(rate: float) -> str:
    if rate > 0.70:
        return "frequent"
    if rate >= 0.40:
        return "moderate"
    return "sparse"


def tempo_bucket(tempo_norm: float) -> str:
    if tempo_norm > 0.70:
        return "brisk"
    if tempo_norm >= 0.40:
        return "measured"
    return "slow"


def _element_tint(astro: AstroSummary, table: MappingTable) -> str:
    for element, weight in astro.elements.ordered():
        if weight > ELEMENT_TINT_WEIGHT:
            return table.element_tints[element].phrase
    return table.element_tints["none"].phrase


def _planet_entry(planets: Sequence[str], entries: Mapping[str, str]) -> str | None:
    for planet in planets:
        entry = entries.get(planet)
        if entry:
            return entry
    return None


def _arc(controls: ControlSurface, astro: AstroSummary, table: MappingTable) -> str:
    templates = table.arc_descriptions[arc_bucket(controls.arc_shape)].templates
    template = select_by_seed(templates, controls.hash, "arc")
    return template.replace("{tint}", _element_tint(astro, table))


def _movement(controls: ControlSurface, astro: AstroSummary, table: MappingTable) -> str:
    primary = table.movement_descriptions[movement_bucket(controls.step_bias)].primary
    leap = leap_bucket(controls.leap_cap)
    modifier = table.leap_modifiers[leap].modifier if leap else ""
    tint = _planet_entry(astro.dominant_planets, table.planet_tints)
    suffix = f", {tint}" if tint else ""
    return f"{primary}{modifier}{suffix}."


def _rhythm(controls: ControlSurface, table: MappingTable) -> str:
    label = table.rhythm_classes[rhythm_bucket(controls.rhythm_template_id)].label
    syncopation = table.syncopation_descriptions[syncopation_bucket(controls.syncopation_bias)]
    return f"{label}, {syncopation.description}."


def _density(controls: ControlSurface, astro: AstroSummary, table: MappingTable) -> str:
    description = table.density_descriptions[density_bucket(controls.density_level)].description
    if len(astro.dominant_planets) >= STELLIUM_SIZE:
        description += table.stellium_suffix.suffix
    return description


def _astro_color(astro: AstroSummary, table: MappingTable) -> str:
    colors = table.astro_colors
    element = colors.element_adjectives.get(astro.elements.top(), "balanced")
    planet = _planet_entry(astro.dominant_planets, colors.planet_adjectives) or "balanced"
    return f"Tone: {element}, {planet}."


def generate_atoms(
    controls: ControlSurface,
    table: MappingTable,
    astro: AstroSummary | None = None,
) -> ExplainerAtoms:
    summary = astro or AstroSummary.from_controls(controls)
    return ExplainerAtoms(
        arc_desc=_arc(controls, summary, table),
        movement=_movement(controls, summary, table),
        rhythm_feel=_rhythm(controls, table),
        density_desc=_density(controls, summary, table),
        motif_desc=table.motif_descriptions[motif_bucket(controls.motif_rate)].description,
        astro_color=_astro_color(summary, table),
    )
