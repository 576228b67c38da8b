"""
Sync state -- what was last pushed or pulled, and where.

``state.json`` is only ever written after a push or pull has fully
succeeded. A missing, unreadable or future-version file loads as the
default (never-synced) state.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..errors import ErrorCode, StorageError
from ..models import SyncState
from ..paths import sync_home
from ._io import write_json

logger = logging.getLogger("agentsync.storage.state")

STATE_FILENAME = "state.json"


class StateStore:
    """Reads and writes ``state.json`` in the sync home.

    Args:
        home: Sync home directory. Defaults to ``paths.sync_home()``.
    """

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = home or sync_home()
        self.path = self.home / STATE_FILENAME

    def load(self) -> SyncState:
        if not self.path.exists():
            return SyncState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Failed to load sync state: %s", exc)
            return SyncState()
        version = data.get("version") if isinstance(data, dict) else None
        if version != 1:
            logger.warning("Unknown sync state version: %s", version)
            return SyncState()
        try:
            return SyncState.model_validate(data)
        except ValidationError as exc:
            logger.warning("Failed to load sync state: %s", exc)
            return SyncState()

    def save(self, state: SyncState) -> None:
        try:
            write_json(self.path, state.model_dump(mode="json", by_alias=True))
        except OSError as exc:
            raise StorageError(
                f"Cannot write {self.path}: {exc}",
                ErrorCode.STORAGE_WRITE_ERROR,
                {"path": str(self.path)},
            ) from exc

    def record(
        self,
        container_id: str,
        config_hash: str,
        contexts_hash: Optional[str],
        now: Optional[datetime] = None,
    ) -> SyncState:
        """Persist a successful sync.

        Args:
            container_id: Remote container that now holds the payload.
            config_hash: Combined config hash (empty string after a V2 pull).
            contexts_hash: Contexts hash, None when there are no contexts.
            now: Timestamp override for tests.
        """
        state = SyncState(
            last_sync_timestamp=now or datetime.now(timezone.utc),
            remote_container_id=container_id,
            last_config_hash=config_hash,
            last_contexts_hash=contexts_hash,
        )
        self.save(state)
        logger.debug("Recorded sync to %s", container_id)
        return state

    def has_pending_changes(
        self, config_hash: str, contexts_hash: Optional[str]
    ) -> bool:
        state = self.load()
        return (
            state.last_config_hash != config_hash
            or state.last_contexts_hash != contexts_hash
        )

    def format_last_sync(self, now: Optional[datetime] = None) -> str:
        return format_last_sync(self.load().last_sync_timestamp, now)

    def clear(self) -> None:
        self.save(SyncState())


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def format_last_sync(
    last_sync: Optional[datetime], now: Optional[datetime] = None
) -> str:
    """Relative description like ``5 minutes ago`` or ``Never synced``."""
    if last_sync is None:
        return "Never synced"
    if last_sync.tzinfo is None:
        last_sync = last_sync.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = (now - last_sync).total_seconds()

    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return _plural(int(seconds // 60), "minute")
    if seconds < 86400:
        return _plural(int(seconds // 3600), "hour")
    days = int(seconds // 86400)
    if days < 7:
        return _plural(days, "day")
    return last_sync.strftime("%Y-%m-%d")
