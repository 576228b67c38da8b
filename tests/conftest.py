"""Shared test fixtures for agentsync."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def user_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A throwaway home directory that every provider resolves against."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("AGENTSYNC_USER_HOME", str(home))
    for var in ("XDG_CONFIG_HOME", "XDG_DATA_HOME", "CLAUDE_CONFIG_DIR", "CODEX_HOME"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def sync_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A throwaway sync home for state, contexts and credentials."""
    path = tmp_path / "sync"
    monkeypatch.setenv("AGENTSYNC_HOME", str(path))
    return path


def write(root: Path, relative: str, content: str) -> Path:
    """Create ``root/relative`` with parents and return its path."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
