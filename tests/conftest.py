"""Global test fixtures for coldstart."""

from __future__ import annotations

from pathlib import Path

import pytest

from coldstart.config import AnalyzerConfig


@pytest.fixture
def config() -> AnalyzerConfig:
    """Default analyzer configuration (empty URL pattern)."""
    return AnalyzerConfig()


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the user config directory and cwd at an empty temp tree."""
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("COLDSTART_URL_PATTERN", raising=False)
    monkeypatch.delenv("COLDSTART_DEBUG", raising=False)
    monkeypatch.chdir(work)
    return work
