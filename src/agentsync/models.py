"""
Pydantic models for snapshots, payloads and persisted sync state.

Wire-facing models keep the camelCase field names that other clients
already read and write; Python code uses the snake_case attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .hashing import fingerprint


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class CollectedFile(BaseModel):
    """One syncable file, identified by its provider-root-relative path."""

    model_config = ConfigDict(frozen=True)

    relative_path: str
    content: str
    content_hash: str

    @classmethod
    def from_content(cls, relative_path: str, content: str) -> "CollectedFile":
        return cls(
            relative_path=relative_path,
            content=content,
            content_hash=fingerprint(content),
        )


class ProviderSnapshot(BaseModel):
    """Sorted, hashed state of one provider's config tree."""

    provider_id: str
    config_root: Path
    files: list[CollectedFile] = Field(default_factory=list)
    combined_hash: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.files

    def by_path(self) -> dict[str, CollectedFile]:
        return {f.relative_path: f for f in self.files}


class MultiProviderSnapshot(BaseModel):
    """Snapshots for every collected provider plus a provider-order-free hash."""

    snapshots: dict[str, ProviderSnapshot] = Field(default_factory=dict)
    combined_hash: str = ""

    @property
    def file_count(self) -> int:
        return sum(len(s.files) for s in self.snapshots.values())


# ---------------------------------------------------------------------------
# MCP servers
# ---------------------------------------------------------------------------


class MCPTransport(str, Enum):
    """MCP server transport type."""

    STDIO = "stdio"
    HTTP = "http"
    SSE = "sse"


class MCPServerConfig(BaseModel):
    """A unified MCP server definition.

    ``stdio`` servers need a ``command``; ``http`` and ``sse`` servers
    need a ``url``.
    """

    name: str
    type: MCPTransport = MCPTransport.STDIO
    command: Optional[str] = None
    args: Optional[list[str]] = None
    env: Optional[dict[str, str]] = None
    url: Optional[str] = None
    headers: Optional[dict[str, str]] = None
    cwd: Optional[str] = None
    enabled: bool = True

    @model_validator(mode="after")
    def _check_transport_fields(self) -> "MCPServerConfig":
        if self.type == MCPTransport.STDIO and not self.command:
            raise ValueError(f"MCP server '{self.name}': stdio transport requires 'command'")
        if self.type in (MCPTransport.HTTP, MCPTransport.SSE) and not self.url:
            raise ValueError(f"MCP server '{self.name}': {self.type.value} transport requires 'url'")
        return self

    @classmethod
    def from_entry(cls, name: str, entry: dict[str, Any]) -> "MCPServerConfig":
        """Build from an on-disk ``mcpServers`` entry (``disabled`` flag form)."""
        entry_type = entry.get("type")
        if not entry_type:
            entry_type = "stdio" if entry.get("command") or not entry.get("url") else "http"
        return cls(
            name=name,
            type=entry_type,
            command=entry.get("command"),
            args=entry.get("args"),
            env=entry.get("env"),
            url=entry.get("url"),
            headers=entry.get("headers"),
            cwd=entry.get("cwd"),
            enabled=entry.get("disabled") is not True,
        )

    def to_entry(self) -> dict[str, Any]:
        """Render as an on-disk ``mcpServers`` entry, omitting unset fields."""
        entry: dict[str, Any] = {"type": self.type.value}
        for key in ("command", "args", "env", "url", "headers", "cwd"):
            value = getattr(self, key)
            if value:
                entry[key] = value
        if not self.enabled:
            entry["disabled"] = True
        return entry

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Session contexts
# ---------------------------------------------------------------------------


class SessionContext(BaseModel):
    """A saved AI session summary, synced alongside config files."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    summary: str
    created_at: str = Field(alias="createdAt")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    project: Optional[str] = None
    size: int = 0


# ---------------------------------------------------------------------------
# Sync payload (decrypted wire format)
# ---------------------------------------------------------------------------


class PayloadFile(BaseModel):
    path: str
    content: str


class ProviderPayload(BaseModel):
    files: list[PayloadFile] = Field(default_factory=list)
    hash: str = ""

    def to_collected(self) -> list[CollectedFile]:
        return [CollectedFile.from_content(f.path, f.content) for f in self.files]


class ContextItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    summary: str
    created_at: str = Field(alias="createdAt")
    project: Optional[str] = None


class ContextsBlock(BaseModel):
    items: list[ContextItem] = Field(default_factory=list)
    hash: Optional[str] = None


class PayloadMetaV1(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1] = 1
    updated_at: str = Field(alias="updatedAt")
    source: str = ""


class PayloadMetaV2(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Literal[2] = 2
    updated_at: str = Field(alias="updatedAt")
    source: str = ""


class SyncPayloadV1(BaseModel):
    """Legacy single-provider (OpenCode) payload."""

    config: ProviderPayload
    contexts: ContextsBlock = Field(default_factory=ContextsBlock)
    meta: PayloadMetaV1


class SyncPayloadV2(BaseModel):
    """Multi-provider payload."""

    model_config = ConfigDict(populate_by_name=True)

    providers: dict[str, ProviderPayload] = Field(default_factory=dict)
    mcp_servers: Optional[list[MCPServerConfig]] = Field(default=None, alias="mcpServers")
    contexts: ContextsBlock = Field(default_factory=ContextsBlock)
    meta: PayloadMetaV2

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the camelCase field names shared by all clients."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"mcp_servers"})
        for item in data["contexts"]["items"]:
            if item.get("project") is None:
                item.pop("project", None)
        if self.mcp_servers is not None:
            data["mcpServers"] = [s.to_wire() for s in self.mcp_servers]
        return data


SyncPayload = Union[SyncPayloadV1, SyncPayloadV2]


# ---------------------------------------------------------------------------
# Local state and credentials
# ---------------------------------------------------------------------------


class SyncState(BaseModel):
    """Last successful sync, persisted to ``state.json``."""

    model_config = ConfigDict(populate_by_name=True)

    last_sync_timestamp: Optional[datetime] = Field(default=None, alias="lastSync")
    remote_container_id: Optional[str] = Field(default=None, alias="gistId")
    last_config_hash: Optional[str] = Field(default=None, alias="configHash")
    last_contexts_hash: Optional[str] = Field(default=None, alias="contextsHash")
    version: Literal[1] = 1


class Credentials(BaseModel):
    """Remote token, encryption passphrase and (after first push) container id."""

    remote_token: str
    passphrase: str
    remote_container_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Orchestrator results
# ---------------------------------------------------------------------------


class SyncStatus(str, Enum):
    """Position of the local machine in the container lifecycle."""

    UNSYNCED = "unsynced"
    UP_TO_DATE = "up_to_date"
    LOCAL_AHEAD = "local_ahead"
    REMOTE_AHEAD = "remote_ahead"


@dataclass(frozen=True)
class FileConflict:
    """A file present on both sides with different content."""

    provider_id: str
    path: str
    local_content: str
    remote_content: str


@dataclass
class ProviderPlan:
    """What a pull would do to one provider's tree."""

    provider_id: str
    creates: list[str] = field(default_factory=list)
    updates: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    conflicts: list[FileConflict] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class PushResult:
    """Outcome of a push.

    Attributes:
        pushed: False when the no-change short-circuit fired.
        container_id: Remote container the payload lives in.
        created: True when this push created the container.
        file_counts: Files uploaded per provider id.
        mcp_server_count: Shared MCP servers included.
        context_count: Session contexts included.
        config_hash: Combined hash across all providers.
    """

    pushed: bool
    container_id: Optional[str] = None
    created: bool = False
    file_counts: dict[str, int] = field(default_factory=dict)
    mcp_server_count: int = 0
    context_count: int = 0
    config_hash: str = ""


@dataclass
class PullResult:
    """Outcome of a pull.

    Attributes:
        applied: False when the user declined or conflicts blocked writes.
        payload_version: ``meta.version`` of the remote document.
        plans: Per-provider create/update/conflict breakdown.
        written: Files written per provider id.
        mcp_server_count: Shared MCP servers merged.
        context_count: Session contexts written.
        remote_updated_at: ``meta.updatedAt`` of the remote document.
        remote_ahead: Remote was written after our last recorded sync.
    """

    applied: bool
    payload_version: int = 2
    plans: dict[str, ProviderPlan] = field(default_factory=dict)
    written: dict[str, int] = field(default_factory=dict)
    mcp_server_count: int = 0
    context_count: int = 0
    remote_updated_at: Optional[str] = None
    remote_ahead: bool = False

    @property
    def conflicts(self) -> list[FileConflict]:
        return [c for plan in self.plans.values() for c in plan.conflicts]


@dataclass
class ProviderStatus:
    provider_id: str
    name: str
    config_root: Path
    installed: bool
    file_count: int = 0
    total_size: int = 0
    combined_hash: str = ""


@dataclass
class StatusReport:
    """Local view of sync health, computed without network I/O."""

    configured: bool
    status: SyncStatus
    container_id: Optional[str] = None
    last_sync: Optional[datetime] = None
    providers: list[ProviderStatus] = field(default_factory=list)
    context_count: int = 0
    config_changed: bool = False
    contexts_changed: bool = False
    config_hash: str = ""
