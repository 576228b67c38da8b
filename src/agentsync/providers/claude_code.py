"""
Claude Code provider.

Settings, commands, agents and rules live under ``~/.claude`` (or
``$CLAUDE_CONFIG_DIR``). MCP servers live in ``~/.claude.json`` next to
OAuth state, per-project history and UI preferences, so that file is
synced as an auxiliary entry carrying only its ``mcpServers`` key, and
applying it merges that key back without touching anything else.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from ..models import MCPServerConfig
from .base import AssistantProvider, ConfigPatterns, ProviderKind
from .mcp import MCP_KEY, MCPDocument

logger = logging.getLogger("agentsync.providers.claude_code")

CLAUDE_JSON = ".claude.json"


class ClaudeCodeProvider(AssistantProvider):
    kind = ProviderKind.CLAUDE_CODE
    name = "Claude Code"
    patterns = ConfigPatterns(
        main_config=("settings.json", "settings.local.json"),
        commands="commands/**/*.md",
        agents="agents/**/*.md",
        skills="rules/**/*.md",
        instructions="CLAUDE.md",
    )
    blocklist = (
        "projects/**",
        "todos/**",
        "statsig/**",
        "local/**",
        "node_modules/**",
        ".git/**",
        "*.log",
        "*.tmp",
    )

    @property
    def config_root(self) -> Path:
        override = os.environ.get("CLAUDE_CONFIG_DIR")
        if override:
            return Path(override).expanduser()
        return self.home / ".claude"

    @property
    def claude_json(self) -> MCPDocument:
        return MCPDocument(self.home / CLAUDE_JSON, indent=2)

    def auxiliary_files(self) -> dict[str, Path]:
        return {CLAUDE_JSON: self.home / CLAUDE_JSON}

    def read_auxiliary(self, relative_path: str, path: Path) -> Optional[str]:
        data = json.loads(path.read_bytes().decode("utf-8"))
        if not isinstance(data, dict) or not data.get(MCP_KEY):
            return None
        return json.dumps({MCP_KEY: data[MCP_KEY]}, indent=2, ensure_ascii=False)

    def write_auxiliary(self, relative_path: str, path: Path, content: str) -> None:
        synced = json.loads(content)
        section = synced.get(MCP_KEY) if isinstance(synced, dict) else None
        if not section:
            logger.debug("Synced %s carries no MCP servers; leaving it alone", relative_path)
            return
        MCPDocument(path, indent=2).merge_section(section)

    def list_mcp_servers(self) -> list[MCPServerConfig]:
        return self.claude_json.servers()

    def upsert_mcp_server(self, server: MCPServerConfig) -> None:
        self.claude_json.upsert(server)

    def remove_mcp_server(self, name: str) -> bool:
        return self.claude_json.remove(name)
