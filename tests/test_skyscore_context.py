from pathlib import Path

import pytest

import skyscore.context as context_module
from skyscore.context import ArtifactVersions, PipelineSettings, build_context, default_context
from skyscore.errors import InvalidConfigError, MappingTableError
from skyscore.gates import GatePolicy, GateThresholds


def test_settings_read_environment() -> None:
    settings = PipelineSettings.from_env(
        {
            "SKYSCORE_DURATION_SEC": "30",
            "SKYSCORE_SAMPLE_RATE": "22050",
            "SKYSCORE_STRUCTURE": "lunar",
            "UNRELATED": "x",
        }
    )
    assert settings.duration_sec == 30.0
    assert settings.sample_rate == 22050
    assert settings.default_structure == "lunar"
    assert settings.mapping_table_path is None


def test_empty_environment_gives_defaults() -> None:
    settings = PipelineSettings.from_env({})
    assert settings == PipelineSettings()
    assert settings.duration_sec == 60.0
    assert settings.sample_rate == 44100


@pytest.mark.parametrize(
    "environ",
    [
        {"SKYSCORE_DURATION_SEC": "-1"},
        {"SKYSCORE_SAMPLE_RATE": "fast"},
        {"SKYSCORE_STRUCTURE": "spiral"},
    ],
)
def test_bad_environment_raises(environ) -> None:
    with pytest.raises(InvalidConfigError):
        PipelineSettings.from_env(environ)


def test_context_reports_artifact_versions(settings) -> None:
    context = build_context(settings)
    assert context.artifacts == ArtifactVersions()
    assert context.artifacts.gate == context.gates.version
    assert context.artifacts.mapping_tables_version == context.mapping.version


def test_custom_gate_policy_flows_into_artifacts(settings) -> None:
    policy = GatePolicy(
        version="v9-test",
        calibrated=GateThresholds(
            melody_arc=0.3, melody_step_leap=0.3, melody_narrative=0.3, rhythm_diversity=0.3
        ),
        strict=GateThresholds(
            melody_arc=0.5, melody_step_leap=0.5, melody_narrative=0.5, rhythm_diversity=0.5
        ),
    )
    context = build_context(settings, gates=policy)
    assert context.artifacts.gate == "v9-test"


def test_missing_mapping_table_fails_at_build(tmp_path: Path) -> None:
    settings = PipelineSettings(duration_sec=4.0, mapping_table_path=tmp_path / "missing.json")
    with pytest.raises(MappingTableError):
        build_context(settings)


def test_default_context_is_built_once_per_process(monkeypatch: pytest.MonkeyPatch) -> None:
    builds: list[int] = []
    real_build = context_module.build_context

    def counting_build(*args, **kwargs):
        builds.append(1)
        return real_build(*args, **kwargs)

    monkeypatch.setattr(context_module, "build_context", counting_build)
    default_context.cache_clear()
    try:
        first = default_context()
        second = default_context()
    finally:
        default_context.cache_clear()
    assert first is second
    assert len(builds) == 1
