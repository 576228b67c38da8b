"""
Provider interface -- one adapter per AI coding assistant.

Assistants keep their settings in different places and shapes. A provider
hides that behind a single contract. It names the config root and the
files worth syncing. A blocklist keeps secrets on the machine, and each
provider knows where its MCP server definitions live. Collection and
apply are shared and live in ``agentsync.collector``; providers only
customize the edges.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..paths import user_home

if TYPE_CHECKING:
    from ..models import CollectedFile, MCPServerConfig, ProviderSnapshot

logger = logging.getLogger("agentsync.providers")


class ProviderKind(str, Enum):
    """Every assistant agentsync knows how to sync."""

    OPENCODE = "opencode"
    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    GEMINI = "gemini"


@dataclass(frozen=True)
class ConfigPatterns:
    """Glob patterns (relative to the config root) that select syncable files."""

    main_config: tuple[str, ...] = ()
    commands: str = ""
    agents: str = ""
    skills: str = ""
    instructions: str = ""
    extra: tuple[str, ...] = field(default_factory=tuple)

    def all(self) -> list[str]:
        ordered = [
            *self.main_config,
            self.commands,
            self.agents,
            self.skills,
            self.instructions,
            *self.extra,
        ]
        return [p for p in ordered if p]


@dataclass(frozen=True)
class PluginConfig:
    file_name: str
    plugin_name: str
    path: Path


class PluginConfigLister:
    """Optional capability: enumerate known plugin config files in a root."""

    def __init__(self, known: dict[str, str]) -> None:
        self.known = dict(known)

    def list(self, root: Path) -> list[PluginConfig]:
        found = []
        for file_name, plugin_name in self.known.items():
            path = root / file_name
            if path.exists():
                found.append(PluginConfig(file_name, plugin_name, path))
        return found


class AssistantProvider(ABC):
    """Uniform capability surface over one assistant's config layout.

    Args:
        home: User home to resolve default locations against. Defaults
            to ``paths.user_home()``.
    """

    kind: ProviderKind
    name: str
    patterns: ConfigPatterns = ConfigPatterns()
    blocklist: tuple[str, ...] = ()
    plugins: Optional[PluginConfigLister] = None

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = home or user_home()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} root={self.config_root}>"

    @property
    def id(self) -> str:
        return self.kind.value

    @property
    @abstractmethod
    def config_root(self) -> Path:
        """Directory all collected relative paths are anchored to."""

    def declared_patterns(self) -> list[str]:
        return self.patterns.all()

    def auxiliary_files(self) -> dict[str, Path]:
        """Syncable files that live outside the config root, keyed by relative path."""
        return {}

    def is_installed(self) -> bool:
        """Pure existence check on the config root or an auxiliary file."""
        if self.config_root.exists():
            return True
        return any(path.exists() for path in self.auxiliary_files().values())

    def is_blocked(self, relative_path: str) -> bool:
        from ..collector import match_pattern

        return any(match_pattern(relative_path, p) for p in self.blocklist)

    def read_auxiliary(self, relative_path: str, path: Path) -> Optional[str]:
        """Return the syncable content of an auxiliary file, or None to skip it."""
        return path.read_bytes().decode("utf-8")

    def write_auxiliary(self, relative_path: str, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.encode("utf-8"))

    def collect(self) -> "ProviderSnapshot":
        from ..collector import collect

        return collect(self)

    def apply(self, files: list["CollectedFile"]) -> int:
        from ..collector import apply_files

        return apply_files(self, files)

    @abstractmethod
    def list_mcp_servers(self) -> list["MCPServerConfig"]:
        """MCP servers this assistant will start."""

    @abstractmethod
    def upsert_mcp_server(self, server: "MCPServerConfig") -> None:
        """Add or replace one MCP server by name.

        Raises:
            ValueError: If this assistant's servers cannot be edited here.
        """

    @abstractmethod
    def remove_mcp_server(self, name: str) -> bool:
        """Remove one MCP server. Returns True if it existed."""
