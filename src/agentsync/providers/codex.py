"""
Codex CLI provider.

MCP servers are declared as ``[mcp_servers.<name>]`` tables in
``config.toml``. That file is synced whole, so servers are read from it
but never rewritten in place: edits raise ``ValueError`` naming the file.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from ..models import MCPServerConfig
from .base import AssistantProvider, ConfigPatterns, ProviderKind
from .mcp import parse_servers

logger = logging.getLogger("agentsync.providers.codex")

CONFIG_FILE = "config.toml"
MCP_TABLE = "mcp_servers"


class CodexProvider(AssistantProvider):
    kind = ProviderKind.CODEX
    name = "Codex"
    patterns = ConfigPatterns(
        main_config=(CONFIG_FILE,),
        skills="skills/**/*.md",
    )
    blocklist = (
        "auth.json",
        "sessions/**",
        "node_modules/**",
        ".git/**",
    )

    @property
    def config_root(self) -> Path:
        override = os.environ.get("CODEX_HOME")
        if override:
            return Path(override).expanduser()
        return self.home / ".codex"

    def list_mcp_servers(self) -> list[MCPServerConfig]:
        path = self.config_root / CONFIG_FILE
        if not path.exists():
            return []
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Cannot parse %s: %s", path, exc)
            return []
        return parse_servers(data.get(MCP_TABLE), str(path))

    def _read_only(self) -> ValueError:
        return ValueError(
            f"Codex MCP servers are edited by hand in {self.config_root / CONFIG_FILE}; nothing changed"
        )

    def upsert_mcp_server(self, server: MCPServerConfig) -> None:
        raise self._read_only()

    def remove_mcp_server(self, name: str) -> bool:
        raise self._read_only()
