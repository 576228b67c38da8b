"""
MCP server documents -- JSON files with an ``mcpServers`` mapping.

The same shape shows up in three places: the shared ``~/.mcp.json``,
Claude Code's ``~/.claude.json`` and Gemini's ``mcp_config.json``. Only
the ``mcpServers`` key is ever rewritten; every sibling key in the
document is preserved as-is.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from ..errors import ErrorCode, StorageError
from ..models import MCPServerConfig
from ..paths import user_home

logger = logging.getLogger("agentsync.providers.mcp")

MCP_KEY = "mcpServers"
SHARED_MCP_FILENAME = ".mcp.json"


def parse_servers(section: Any, source: str = "") -> list[MCPServerConfig]:
    """Turn an ``mcpServers`` mapping into validated configs.

    Entries that fail validation are logged and skipped.
    """
    servers: list[MCPServerConfig] = []
    if not isinstance(section, dict):
        return servers
    for name, entry in section.items():
        if not isinstance(entry, dict):
            logger.warning("Ignoring malformed MCP server %r in %s", name, source)
            continue
        try:
            servers.append(MCPServerConfig.from_entry(name, entry))
        except ValidationError as exc:
            logger.warning("Ignoring invalid MCP server %r in %s: %s", name, source, exc)
    return servers


class MCPDocument:
    """Read-modify-write access to one JSON document holding ``mcpServers``.

    Args:
        path: Location of the JSON document.
        indent: Indentation used when writing (the owning tool's style).
    """

    def __init__(self, path: Path, indent: int = 2) -> None:
        self.path = path
        self.indent = indent

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> dict[str, Any]:
        """Load the whole document. Missing file is an empty document.

        Raises:
            StorageError: If the file exists but is not a JSON object.
        """
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StorageError(
                f"{self.path} is not valid JSON: {exc}",
                ErrorCode.STORAGE_READ_ERROR,
                {"path": str(self.path)},
            ) from exc
        if not isinstance(data, dict):
            raise StorageError(
                f"{self.path} does not contain a JSON object",
                ErrorCode.STORAGE_READ_ERROR,
                {"path": str(self.path)},
            )
        return data

    def save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=self.indent), encoding="utf-8")

    def servers(self) -> list[MCPServerConfig]:
        """List servers. An unreadable document yields an empty list."""
        try:
            data = self.load()
        except StorageError as exc:
            logger.warning("%s", exc)
            return []
        return parse_servers(data.get(MCP_KEY), str(self.path))

    def upsert(self, server: MCPServerConfig) -> None:
        data = self.load()
        section = data.get(MCP_KEY)
        if not isinstance(section, dict):
            section = {}
        section[server.name] = server.to_entry()
        data[MCP_KEY] = section
        self.save(data)
        logger.info("Set MCP server %s in %s", server.name, self.path)

    def remove(self, name: str) -> bool:
        if not self.path.exists():
            return False
        data = self.load()
        section = data.get(MCP_KEY)
        if not isinstance(section, dict) or name not in section:
            return False
        del section[name]
        self.save(data)
        logger.info("Removed MCP server %s from %s", name, self.path)
        return True

    def replace_servers(self, servers: Iterable[MCPServerConfig]) -> None:
        """Replace the ``mcpServers`` mapping, keeping all sibling keys."""
        data = self.load()
        data[MCP_KEY] = {s.name: s.to_entry() for s in servers}
        self.save(data)

    def merge_section(self, section: Optional[dict[str, Any]]) -> None:
        """Overwrite ``mcpServers`` with a raw mapping, keeping sibling keys."""
        if section is None:
            return
        data = self.load()
        data[MCP_KEY] = section
        self.save(data)


def shared_mcp_document(home: Optional[Path] = None) -> MCPDocument:
    """The cross-assistant ``~/.mcp.json``."""
    return MCPDocument((home or user_home()) / SHARED_MCP_FILENAME, indent=4)
