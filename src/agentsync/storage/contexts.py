"""
Session context store -- AI session summaries that travel with the config.

Contexts are kept newest first in ``contexts.json``. The store caps both
the number of entries and the size of each summary; the sync engine
itself reads and writes the list wholesale and enforces nothing.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..errors import ErrorCode, StorageError
from ..hashing import fingerprint
from ..models import SessionContext
from ..paths import sync_home
from ._io import write_json

logger = logging.getLogger("agentsync.storage.contexts")

CONTEXTS_FILENAME = "contexts.json"
MAX_CONTEXTS = 20
MAX_CONTEXT_SIZE = 20 * 1024
TRUNCATION_NOTICE = "\n\n[Truncated due to size limit]"


def truncate_summary(summary: str, limit: int = MAX_CONTEXT_SIZE) -> str:
    """Cut a summary to ``limit`` UTF-8 bytes, preferring a sentence boundary.

    The cut falls back to the byte limit when the last sentence break is
    in the first half of the kept text.
    """
    raw = summary.encode("utf-8")
    if len(raw) <= limit:
        return summary
    kept = raw[:limit].decode("utf-8", errors="ignore")
    last_period = kept.rfind(". ")
    if last_period > len(kept) / 2:
        kept = kept[: last_period + 1]
    return kept + TRUNCATION_NOTICE


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


class ContextStore:
    """Reads and writes ``contexts.json`` in the sync home.

    Args:
        home: Sync home directory. Defaults to ``paths.sync_home()``.
    """

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = home or sync_home()
        self.path = self.home / CONTEXTS_FILENAME

    def load(self) -> list[SessionContext]:
        """All contexts, newest first. Unreadable storage loads as empty."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Failed to load contexts: %s", exc)
            return []
        if not isinstance(data, dict) or data.get("version") != 1:
            logger.warning("Unknown contexts version in %s", self.path)
            return []
        try:
            return [SessionContext.model_validate(c) for c in data.get("contexts", [])]
        except ValidationError as exc:
            logger.warning("Failed to load contexts: %s", exc)
            return []

    def save(self, contexts: list[SessionContext]) -> None:
        payload = {"contexts": [_dump(c) for c in contexts], "version": 1}
        try:
            write_json(self.path, payload)
        except OSError as exc:
            raise StorageError(
                f"Cannot write {self.path}: {exc}",
                ErrorCode.STORAGE_WRITE_ERROR,
                {"path": str(self.path)},
            ) from exc

    def hash(self) -> Optional[str]:
        """Fingerprint of the stored list, or None when there are no contexts."""
        return contexts_hash(self.load())

    def add(
        self,
        name: str,
        summary: str,
        session_id: Optional[str] = None,
        project: Optional[str] = None,
    ) -> SessionContext:
        """Save a new context at the front, dropping the oldest past the cap."""
        summary = truncate_summary(summary)
        context = SessionContext(
            id=uuid.uuid4().hex[:12],
            name=name,
            summary=summary,
            created_at=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            project=project,
            size=byte_size(summary),
        )
        contexts = [context, *self.load()][:MAX_CONTEXTS]
        self.save(contexts)
        return context

    def get(self, id_or_name: str) -> Optional[SessionContext]:
        """Look up by id, then exact name, case-insensitive name, partial name."""
        contexts = self.load()
        lowered = id_or_name.lower()
        checks = (
            lambda c: c.id == id_or_name,
            lambda c: c.name == id_or_name,
            lambda c: c.name.lower() == lowered,
            lambda c: lowered in c.name.lower(),
        )
        for check in checks:
            for context in contexts:
                if check(context):
                    return context
        return None

    def delete(self, id_or_name: str) -> bool:
        target = self.get(id_or_name)
        if target is None:
            return False
        self.save([c for c in self.load() if c.id != target.id])
        return True

    def delete_all(self) -> int:
        count = len(self.load())
        self.save([])
        return count

    def search(self, query: str) -> list[SessionContext]:
        q = query.lower()
        return [
            c for c in self.load()
            if q in c.name.lower()
            or q in c.summary.lower()
            or (c.project is not None and q in c.project.lower())
        ]


def _dump(context: SessionContext) -> dict:
    return context.model_dump(by_alias=True, exclude_none=True)


def contexts_hash(contexts: list[SessionContext]) -> Optional[str]:
    """Hash of the compact JSON list, matching what other clients compute."""
    if not contexts:
        return None
    text = json.dumps([_dump(c) for c in contexts], separators=(",", ":"), ensure_ascii=False)
    return fingerprint(text)
