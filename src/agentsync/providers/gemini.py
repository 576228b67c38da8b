"""Gemini CLI: ``~/.gemini``, MCP servers in ``antigravity/mcp_config.json``."""

from __future__ import annotations

from pathlib import Path

from ..models import MCPServerConfig
from .base import AssistantProvider, ConfigPatterns, ProviderKind
from .mcp import MCPDocument

MCP_CONFIG = "antigravity/mcp_config.json"


class GeminiProvider(AssistantProvider):
    kind = ProviderKind.GEMINI
    name = "Gemini CLI"
    patterns = ConfigPatterns(
        main_config=("settings.json",),
        skills="antigravity/brain/**/*.md",
        instructions="GEMINI.md",
        extra=(MCP_CONFIG,),
    )
    blocklist = (
        "google_accounts.json",
        "oauth_creds.json",
        "code_tracker/**",
        "node_modules/**",
        ".git/**",
    )

    @property
    def config_root(self) -> Path:
        return self.home / ".gemini"

    @property
    def mcp_config(self) -> MCPDocument:
        return MCPDocument(self.config_root / MCP_CONFIG, indent=2)

    def list_mcp_servers(self) -> list[MCPServerConfig]:
        return self.mcp_config.servers()

    def upsert_mcp_server(self, server: MCPServerConfig) -> None:
        self.mcp_config.upsert(server)

    def remove_mcp_server(self, name: str) -> bool:
        return self.mcp_config.remove(name)
