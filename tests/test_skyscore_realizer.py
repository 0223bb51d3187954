from __future__ import annotations

import pytest

from skyscore.atoms import generate_atoms
from skyscore.controls import ControlSurface
from skyscore.gates import GATE_NAMES, GateReport, GateScores, evaluate_gates
from skyscore.mapping import load_mapping_table
from skyscore.overlay import compute_deltas, join_phrases, significant_deltas
from skyscore.realizer import apply_synonyms, realize_overlay_text, realize_text, truncate

TABLE = load_mapping_table()


def _report(**overrides: float) -> GateReport:
    values = {name: 0.9 for name in GATE_NAMES}
    values.update(overrides)
    return evaluate_gates(GateScores(**values))


PASS = _report()
FAIL = _report(melody_step_leap=0.1)


class TestTruncate:
    def test_short_text_is_untouched(self) -> None:
        assert truncate("Short text.", 120) == "Short text."

    def test_prefers_sentence_end(self) -> None:
        text = "A" * 90 + ". " + "b" * 100
        assert truncate(text, 120) == "A" * 90 + "."

    def test_falls_back_to_word_boundary(self) -> None:
        text = "word " * 40
        result = truncate(text, 120)
        assert result.endswith("word...")
        assert len(result) <= 120
        assert len(result) > 96

    def test_hard_cut_when_no_boundary(self) -> None:
        result = truncate("x" * 200, 120)
        assert result == "x" * 117 + "..."


def test_synonyms_are_whole_word_and_single_pass() -> None:
    mapping = {"melody": "line", "line": "melody"}
    assert apply_synonyms("melody line melodyx", mapping) == "line melody melodyx"
    assert apply_synonyms("unchanged", {}) == "unchanged"


def test_pass_text_respects_budgets() -> None:
    controls = ControlSurface(hash="seed-A")
    text = realize_text(generate_atoms(controls, TABLE), PASS, controls, TABLE)
    assert 0 < len(text.short) <= 120
    assert 0 < len(text.long) <= 300
    assert 1 <= len(text.bullets) <= 6
    assert text.seed == "seed-A"
    assert text.template_id.startswith("v1.short.")
    assert not text.fail_closed


def test_pass_text_is_deterministic() -> None:
    controls = ControlSurface(hash="seed-A")
    atoms = generate_atoms(controls, TABLE)
    assert realize_text(atoms, PASS, controls, TABLE) == realize_text(atoms, PASS, controls, TABLE)


def test_long_text_mentions_tempo() -> None:
    controls = ControlSurface(tempo_norm=0.9, hash="seed-A")
    text = realize_text(generate_atoms(controls, TABLE), PASS, controls, TABLE)
    assert "at a brisk tempo." in text.long


def test_fail_closed_emits_only_hints() -> None:
    controls = ControlSurface(hash="seed-A")
    text = realize_text(generate_atoms(controls, TABLE), FAIL, controls, TABLE)
    hint = TABLE.hint_for("melody_step_leap")
    assert text.short == ""
    assert text.bullets == (hint,)
    assert text.long == hint
    assert text.fail_closed
    assert text.template_id == "v1.fail.00"
    banned = TABLE.banned_regex
    assert banned is not None and not banned.search(text.long)


def test_fail_closed_lists_every_failing_gate() -> None:
    controls = ControlSurface(hash="seed-A")
    report = _report(melody_arc=0.0, rhythm_diversity=0.0)
    text = realize_text(generate_atoms(controls, TABLE), report, controls, TABLE)
    assert text.bullets == (TABLE.hint_for("melody_arc"), TABLE.hint_for("rhythm_diversity"))
    assert all(TABLE.hint_regex.match(bullet) for bullet in text.bullets)


class TestOverlay:
    def test_deltas_round_before_comparison(self) -> None:
        natal = ControlSurface(density_level=0.5)
        current = ControlSurface(density_level=0.7)
        deltas = {delta.field: delta for delta in compute_deltas(natal, current)}
        assert deltas["density_level"].delta == 0.2
        assert deltas["density_level"].significant

    def test_below_threshold_adds_nothing(self) -> None:
        natal = ControlSurface(step_bias=0.65, density_level=0.45, syncopation_bias=0.2)
        current = ControlSurface(hash="seed-A")
        assert significant_deltas(natal, current) == ()
        text = realize_overlay_text(generate_atoms(current, TABLE), PASS, natal, current, TABLE)
        assert text.template_id.startswith("v1.short.")
        assert not text.short.startswith("Compared to your natal chart")

    def test_contrast_prefix_and_bullet(self) -> None:
        natal = ControlSurface(step_bias=0.5)
        current = ControlSurface(hash="seed-A")
        text = realize_overlay_text(generate_atoms(current, TABLE), PASS, natal, current, TABLE)
        assert text.short.startswith(
            "Compared to your natal chart, today's transits add more stepwise motion."
        )
        assert text.long.startswith("Compared to your natal chart")
        assert text.bullets[0] == "More stepwise motion compared to natal."
        assert text.template_id.startswith("v1.overlay.")
        assert len(text.short) <= 120

    def test_downward_deltas_use_down_phrases(self) -> None:
        natal = ControlSurface(syncopation_bias=0.6, density_level=0.9)
        current = ControlSurface(hash="seed-A")
        text = realize_overlay_text(generate_atoms(current, TABLE), PASS, natal, current, TABLE)
        assert text.bullets[0].startswith("Reduced syncopation and sparser")

    def test_fail_closed_overlay_has_no_prose(self) -> None:
        natal = ControlSurface(step_bias=0.2)
        current = ControlSurface(hash="seed-A")
        text = realize_overlay_text(generate_atoms(current, TABLE), FAIL, natal, current, TABLE)
        assert text.short == ""
        assert text.fail_closed


@pytest.mark.parametrize(
    ("phrases", "joined"),
    [([], ""), (["a"], "a"), (["a", "b"], "a and b"), (["a", "b", "c"], "a, b and c")],
)
def test_join_phrases(phrases: list[str], joined: str) -> None:
    assert join_phrases(phrases) == joined
