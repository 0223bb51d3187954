"""Turn explainer atoms into short, long and bullet text.

When the calibrated gate fails, the realizer is fail-closed: no descriptive
prose is produced, only the adjustment hints for the failing sub-gates.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from .atoms import ExplainerAtoms, tempo_bucket
from .controls import ControlSurface
from .errors import MappingTableError
from .gates import GateReport, failed_gates
from .hashing import string_hash
from .mapping import MappingTable
from .overlay import describe_deltas, join_phrases, significant_deltas

_LOGGER = logging.getLogger("skyscore.realizer")

MAX_BULLETS = 6
SHORT_RHYTHM_LIMIT = 80
SENTENCE_CUT_RATIO = 0.7
WORD_CUT_RATIO = 0.8
ELLIPSIS = "..."
FAIL_TEMPLATE_ID = "v1.fail.00"

_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


class ExplainerText(BaseModel):
    short: str
    long: str
    bullets: tuple[str, ...]
    seed: str
    template_id: str

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def fail_closed(self) -> bool:
        return self.template_id == FAIL_TEMPLATE_ID


def truncate(text: str, max_length: int) -> str:
    """Cut at a sentence end past 70% of the budget, else a word boundary past 80%."""
    if len(text) <= max_length:
        return text
    sentence_ends = [match.end() for match in _SENTENCE_END.finditer(text) if match.end() <= max_length]
    if sentence_ends and sentence_ends[-1] > max_length * SENTENCE_CUT_RATIO:
        return text[: sentence_ends[-1]]
    room = max_length - len(ELLIPSIS)
    space = text.rfind(" ", 0, room + 1)
    if space > max_length * WORD_CUT_RATIO:
        return text[:space].rstrip(" ,;:") + ELLIPSIS
    return text[:room] + ELLIPSIS


def apply_synonyms(text: str, replacements: Mapping[str, str]) -> str:
    """Whole-word substitution in a single pass, so replacements never chain."""
    if not replacements:
        return text
    words = sorted(replacements, key=len, reverse=True)
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b")
    return pattern.sub(lambda match: replacements[match.group(0)], text)


def _synonym_index(seed: str, table: MappingTable) -> int:
    return string_hash(seed) % len(table.synonym_sets)


def _short(atoms: ExplainerAtoms, prefix: str = "") -> str:
    parts = [prefix] if prefix else []
    parts += [atoms.astro_color, atoms.movement, atoms.arc_desc]
    text = " ".join(parts)
    if len(text) < SHORT_RHYTHM_LIMIT:
        text = f"{text} {atoms.rhythm_feel}"
    return text


def _long(atoms: ExplainerAtoms, controls: ControlSurface, table: MappingTable, prefix: str = "") -> str:
    tempo = table.tempo_descriptions[tempo_bucket(controls.tempo_norm)].description
    parts = [prefix] if prefix else []
    parts += [
        atoms.astro_color,
        atoms.movement,
        f"{atoms.rhythm_feel.rstrip('.')} {tempo}.",
        atoms.density_desc,
        atoms.motif_desc,
    ]
    return " ".join(parts)


def _bullets(atoms: ExplainerAtoms) -> list[str]:
    return [
        atoms.movement,
        atoms.arc_desc,
        atoms.rhythm_feel,
        atoms.density_desc,
        atoms.motif_desc,
    ]


def _compose_pass(
    atoms: ExplainerAtoms,
    controls: ControlSurface,
    table: MappingTable,
    *,
    prefix: str = "",
    lead_bullets: Sequence[str] = (),
    family: str = "short",
) -> ExplainerText:
    index = _synonym_index(controls.hash, table)
    replacements = table.synonym_sets[index]
    budgets = table.template_structures
    short = apply_synonyms(truncate(_short(atoms, prefix), budgets.short.max_length), replacements)
    long = apply_synonyms(
        truncate(_long(atoms, controls, table, prefix), budgets.long.max_length), replacements
    )
    bullets = [*lead_bullets, *_bullets(atoms)][:MAX_BULLETS]
    return ExplainerText(
        short=short,
        long=long,
        bullets=tuple(apply_synonyms(bullet, replacements) for bullet in bullets),
        seed=controls.hash,
        template_id=f"v1.{family}.{index:02d}",
    )


def fail_closed_text(report: GateReport, controls: ControlSurface, table: MappingTable) -> ExplainerText:
    failing = failed_gates(report.calibrated)
    hints = [table.hint_for(gate) for gate in failing]
    pattern = table.hint_regex
    banned = table.banned_regex
    for hint in hints:
        if not pattern.match(hint) or (banned is not None and banned.search(hint)):
            raise MappingTableError(f"Sandbox hint violates fail-closed rules: {hint!r}")
    _LOGGER.info("Fail-closed explanation for %s: %s", controls.hash, ", ".join(failing))
    return ExplainerText(
        short="",
        long=" ".join(hints),
        bullets=tuple(hints),
        seed=controls.hash,
        template_id=FAIL_TEMPLATE_ID,
    )


def realize_text(
    atoms: ExplainerAtoms,
    report: GateReport,
    controls: ControlSurface,
    table: MappingTable,
) -> ExplainerText:
    if not report.calibrated.overall:
        return fail_closed_text(report, controls, table)
    return _compose_pass(atoms, controls, table)


def realize_overlay_text(
    atoms: ExplainerAtoms,
    report: GateReport,
    natal: ControlSurface,
    current: ControlSurface,
    table: MappingTable,
) -> ExplainerText:
    """Like :func:`realize_text`, with a natal-contrast lead when deltas are large enough."""
    if not report.calibrated.overall:
        return fail_closed_text(report, current, table)
    phrases = describe_deltas(significant_deltas(natal, current), table)
    if not phrases:
        return _compose_pass(atoms, current, table)
    described = join_phrases(phrases)
    prefix = f"Compared to your natal chart, today's transits add {described}."
    bullet = f"{described[0].upper()}{described[1:]} compared to natal."
    return _compose_pass(
        atoms, current, table, prefix=prefix, lead_bullets=(bullet,), family="overlay"
    )
