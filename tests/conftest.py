from __future__ import annotations

from datetime import datetime, timezone

import pytest

from skyscore.context import PipelineContext, PipelineSettings, build_context

FIXED_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_logs(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SKYSCORE_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(duration_sec=4.0, sample_rate=8000)


@pytest.fixture
def context(settings: PipelineSettings) -> PipelineContext:
    return build_context(settings, clock=lambda: FIXED_TIME)
