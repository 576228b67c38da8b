"""OpenCode: ``$XDG_CONFIG_HOME/opencode``, MCP servers in the shared ``~/.mcp.json``."""

from __future__ import annotations

from pathlib import Path

from ..models import MCPServerConfig
from ..paths import config_home
from .base import AssistantProvider, ConfigPatterns, PluginConfig, PluginConfigLister, ProviderKind
from .mcp import shared_mcp_document

PLUGIN_CONFIGS = {
    "antigravity.json": "OpenCode Antigravity Auth",
    "dcp.jsonc": "OpenCode DCP",
    "oh-my-opencode.json": "Oh My OpenCode",
    "smart-title.jsonc": "Smart Title",
}


class OpenCodeProvider(AssistantProvider):
    kind = ProviderKind.OPENCODE
    name = "OpenCode"
    patterns = ConfigPatterns(
        main_config=("opencode.json", "opencode.jsonc"),
        commands="command/**/*.md",
        agents="agent/**/*.md",
        skills="skill/**/*",
        instructions="AGENTS.md",
        extra=tuple(PLUGIN_CONFIGS),
    )
    blocklist = (
        "antigravity-accounts.json",
        "package.json",
        "package-lock.json",
        "bun.lock",
        "node_modules/**",
        "logs/**",
        "repos/**",
        ".git/**",
    )
    plugins = PluginConfigLister(PLUGIN_CONFIGS)

    @property
    def config_root(self) -> Path:
        return config_home(self.home) / "opencode"

    def plugin_configs(self) -> list[PluginConfig]:
        return self.plugins.list(self.config_root)

    def list_mcp_servers(self) -> list[MCPServerConfig]:
        return shared_mcp_document(self.home).servers()

    def upsert_mcp_server(self, server: MCPServerConfig) -> None:
        shared_mcp_document(self.home).upsert(server)

    def remove_mcp_server(self, name: str) -> bool:
        return shared_mcp_document(self.home).remove(name)
