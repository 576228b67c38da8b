"""
Sync settings -- optional ``config.yaml`` in the sync home.

Missing file means defaults. A file that fails to parse or validate is
logged and ignored rather than blocking a sync.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .paths import ensure_dir, sync_home

logger = logging.getLogger("agentsync.config")

CONFIG_FILENAME = "config.yaml"
SYNC_MARKER = "coding-agent-sync"
LEGACY_SYNC_MARKER = "opencodesync"


class SyncSettings(BaseModel):
    """User-tunable knobs for the remote store and provider selection."""

    api_url: str = "https://api.github.com"
    timeout: float = Field(default=30.0, gt=0)
    description: str = f"{SYNC_MARKER} - AI assistant settings sync"
    default_providers: list[str] = Field(default_factory=list)


def config_path(home: Optional[Path] = None) -> Path:
    return (home or sync_home()) / CONFIG_FILENAME


def load_settings(home: Optional[Path] = None) -> SyncSettings:
    """Load settings from disk, falling back to defaults.

    Args:
        home: Sync home directory. Defaults to ``paths.sync_home()``.

    Returns:
        SyncSettings.
    """
    path = config_path(home)
    if not path.exists():
        return SyncSettings()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return SyncSettings(**data)
    except (yaml.YAMLError, ValidationError, TypeError, OSError) as exc:
        logger.warning("Failed to load sync settings from %s: %s", path, exc)
        return SyncSettings()


def save_settings(settings: SyncSettings, home: Optional[Path] = None) -> Path:
    path = config_path(home)
    ensure_dir(path.parent)
    path.write_text(
        yaml.dump(settings.model_dump(mode="json"), default_flow_style=False),
        encoding="utf-8",
    )
    return path
