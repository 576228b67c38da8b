"""
Sync engine -- push, pull and status across every provider.

    agentsync push    ->  collect -> hash -> (skip if unchanged) -> encrypt -> upload
    agentsync pull    ->  download -> decrypt -> normalize -> diff -> confirm -> apply
    agentsync status  ->  collect -> compare against state.json (no network)

State is recorded only after the whole operation succeeds, so an
abandoned or failed run leaves ``state.json`` untouched.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from pydantic import ValidationError

from .collector import collect_all, file_stats, is_safe_relative
from .config import SyncSettings, load_settings
from .crypto import Envelope, decrypt_object, encrypt_object
from .errors import (
    AuthError,
    ConflictError,
    DecryptionError,
    ErrorCode,
    SchemaError,
    SyncError,
    TransportError,
    to_sync_error,
)
from .gist import SYNC_FILENAME, GistClient
from .models import (
    ContextItem,
    ContextsBlock,
    Credentials,
    FileConflict,
    MCPServerConfig,
    MultiProviderSnapshot,
    PayloadFile,
    PayloadMetaV2,
    ProviderPayload,
    ProviderPlan,
    ProviderStatus,
    PullResult,
    PushResult,
    SessionContext,
    StatusReport,
    SyncPayload,
    SyncPayloadV1,
    SyncPayloadV2,
    SyncState,
    SyncStatus,
)
from .providers.base import AssistantProvider
from .providers.mcp import shared_mcp_document
from .providers.registry import ProviderRegistry, build_registry
from .storage import ContextStore, CredentialStore, StateStore
from .storage.contexts import byte_size, contexts_hash

logger = logging.getLogger("agentsync.engine")

V1_PROVIDER_ID = "opencode"

ConfirmCallback = Callable[[PullResult], bool]


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def build_payload(
    snapshot: MultiProviderSnapshot,
    mcp_servers: Optional[list[MCPServerConfig]],
    contexts: list[SessionContext],
    now: Optional[datetime] = None,
) -> SyncPayloadV2:
    """Assemble the V2 document for a push."""
    providers = {
        pid: ProviderPayload(
            files=[PayloadFile(path=f.relative_path, content=f.content) for f in snap.files],
            hash=snap.combined_hash,
        )
        for pid, snap in snapshot.snapshots.items()
    }
    items = [
        ContextItem(
            id=c.id,
            name=c.name,
            summary=c.summary,
            created_at=c.created_at,
            project=c.project,
        )
        for c in contexts
    ]
    stamp = (now or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    return SyncPayloadV2(
        providers=providers,
        mcp_servers=mcp_servers,
        contexts=ContextsBlock(items=items, hash=contexts_hash(contexts)),
        meta=PayloadMetaV2(updated_at=stamp, source=sys.platform),
    )


def parse_payload(data: Any) -> SyncPayload:
    """Validate a decrypted document against the schema its version names.

    Raises:
        SchemaError: If ``meta.version`` is missing or unknown, or the
            document does not fit its declared version.
    """
    meta = data.get("meta") if isinstance(data, dict) else None
    version = meta.get("version") if isinstance(meta, dict) else None
    models = {1: SyncPayloadV1, 2: SyncPayloadV2}
    model = models.get(version)
    if model is None:
        raise SchemaError(f"Unsupported sync payload version: {version!r}")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(f"Malformed version {version} payload: {exc}") from exc


def normalize_payload(payload: SyncPayload) -> SyncPayloadV2:
    """Lift a V1 payload into the V2 shape; V2 passes through."""
    if isinstance(payload, SyncPayloadV2):
        return payload
    return SyncPayloadV2(
        providers={V1_PROVIDER_ID: payload.config},
        mcp_servers=None,
        contexts=payload.contexts,
        meta=PayloadMetaV2(
            updated_at=payload.meta.updated_at,
            source=payload.meta.source,
        ),
    )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _local_content(provider: AssistantProvider, relative_path: str) -> Optional[str]:
    auxiliary = provider.auxiliary_files()
    try:
        if relative_path in auxiliary:
            path = auxiliary[relative_path]
            return provider.read_auxiliary(relative_path, path) if path.exists() else None
        path = provider.config_root / relative_path
        if not path.is_file():
            return None
        return path.read_bytes().decode("utf-8")
    except (OSError, ValueError) as exc:
        logger.warning("Cannot read local %s/%s: %s", provider.id, relative_path, exc)
        return None


def plan_provider(provider: AssistantProvider, remote: ProviderPayload) -> ProviderPlan:
    """Compare remote files against what is on disk for one provider.

    Local-only files are not considered: pull never deletes.
    Remote paths that escape the config root or hit the blocklist are
    listed as skipped and never read.
    """
    plan = ProviderPlan(provider_id=provider.id)
    auxiliary = provider.auxiliary_files()
    for file in remote.files:
        if file.path not in auxiliary and (
            not is_safe_relative(file.path) or provider.is_blocked(file.path)
        ):
            logger.warning("Skipping remote %s/%s: unsafe or blocked path", provider.id, file.path)
            plan.skipped.append(file.path)
            continue
        local = _local_content(provider, file.path)
        if local is None:
            plan.creates.append(file.path)
        elif local == file.content:
            plan.unchanged.append(file.path)
        else:
            plan.updates.append(file.path)
            plan.conflicts.append(FileConflict(
                provider_id=provider.id,
                path=file.path,
                local_content=local,
                remote_content=file.content,
            ))
    return plan


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SyncEngine:
    """Drives push, pull and status against one remote container.

    Args:
        registry: Providers to work with. Defaults to every known one.
        sync_dir: Where state, contexts and credentials live.
        settings: Remote and provider-selection settings.
        client: Pre-built remote client (tests). Built from stored
            credentials when omitted.
        home: User home that providers and ``~/.mcp.json`` resolve against.
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        sync_dir: Optional[Path] = None,
        settings: Optional[SyncSettings] = None,
        client: Optional[GistClient] = None,
        home: Optional[Path] = None,
    ):
        self.registry = registry or build_registry(home)
        self.settings = settings or load_settings(sync_dir)
        self.credentials = CredentialStore(sync_dir)
        self.state = StateStore(sync_dir)
        self.contexts = ContextStore(sync_dir)
        self.mcp = shared_mcp_document(home)
        self._client = client

    # -- plumbing -----------------------------------------------------------

    def _require_credentials(self) -> Credentials:
        credentials = self.credentials.load()
        if credentials is None:
            raise AuthError("No stored credentials", ErrorCode.AUTH_NOT_CONFIGURED)
        return credentials

    def _client_for(self, credentials: Credentials) -> GistClient:
        if self._client is None:
            self._client = GistClient(
                credentials.remote_token,
                api_url=self.settings.api_url,
                timeout=self.settings.timeout,
            )
        return self._client

    def _provider_ids(self, provider_ids: Optional[list[str]]) -> Optional[list[str]]:
        return list(provider_ids or self.settings.default_providers) or None

    # -- push ---------------------------------------------------------------

    def push(
        self,
        provider_ids: Optional[list[str]] = None,
        force: bool = False,
    ) -> PushResult:
        """Collect, encrypt and upload local configuration.

        Args:
            provider_ids: Subset of providers to include. Defaults to
                ``settings.default_providers``, then all installed.
            force: Upload even if nothing changed since the last sync.

        Returns:
            PushResult. ``pushed`` is False when nothing changed.

        Raises:
            AuthError: If credentials are missing or rejected.
            TransportError: On network or remote failure.
        """
        credentials = self._require_credentials()
        providers = self.registry.select(self._provider_ids(provider_ids), installed_only=True)
        if not providers:
            raise SyncError("No installed AI assistants found to push")

        snapshot = collect_all(providers)
        contexts = self.contexts.load()
        ctx_hash = contexts_hash(contexts)
        state = self.state.load()

        if (
            not force
            and state.remote_container_id
            and state.last_config_hash == snapshot.combined_hash
            and state.last_contexts_hash == ctx_hash
        ):
            logger.info("No changes since last sync; skipping upload")
            return PushResult(
                pushed=False,
                container_id=state.remote_container_id,
                config_hash=snapshot.combined_hash,
                context_count=len(contexts),
            )

        mcp_servers = self.mcp.servers()
        payload = build_payload(snapshot, mcp_servers, contexts)
        envelope = encrypt_object(payload.to_wire(), credentials.passphrase)
        files = {SYNC_FILENAME: json.dumps(envelope.to_wire(), indent=2)}

        client = self._client_for(credentials)
        container_id = credentials.remote_container_id
        created = False
        try:
            if container_id:
                client.update_container(container_id, self.settings.description, files)
            else:
                container_id = client.create_container(self.settings.description, files).id
                created = True
        except requests.RequestException as exc:
            raise to_sync_error(exc, operation="push", container_id=container_id) from exc

        if created:
            self.credentials.update_container_id(container_id)
        self.state.record(container_id, snapshot.combined_hash, ctx_hash)

        logger.info("Pushed %d file(s) to %s", snapshot.file_count, container_id)
        return PushResult(
            pushed=True,
            container_id=container_id,
            created=created,
            file_counts={pid: len(s.files) for pid, s in snapshot.snapshots.items()},
            mcp_server_count=len(mcp_servers),
            context_count=len(contexts),
            config_hash=snapshot.combined_hash,
        )

    # -- pull ---------------------------------------------------------------

    def fetch_payload(self, credentials: Credentials, container_id: str) -> SyncPayload:
        """Download, decrypt and validate the remote document.

        Raises:
            TransportError: If the container or its sync file is missing.
            DecryptionError: If the passphrase is wrong or data is corrupted.
            SchemaError: If the payload version is not understood.
        """
        client = self._client_for(credentials)
        context = {"operation": "pull", "container_id": container_id}
        try:
            container = client.get_container(container_id)
        except requests.RequestException as exc:
            raise to_sync_error(exc, **context) from exc

        sync_file = container.sync_file()
        if sync_file is None:
            raise TransportError(
                "Sync data not found in gist", ErrorCode.CONTAINER_NOT_FOUND, context,
            )
        filename, content = sync_file
        logger.debug("Reading %s from %s", filename, container_id)

        try:
            envelope = Envelope.model_validate(json.loads(content))
        except ValueError as exc:
            raise DecryptionError(f"Remote envelope is unreadable: {exc}", context=context) from exc
        try:
            data = decrypt_object(envelope, credentials.passphrase)
        except ValueError as exc:
            raise DecryptionError(f"Decrypted payload is not JSON: {exc}", context=context) from exc
        except SyncError as exc:
            raise to_sync_error(exc, **context)
        try:
            return parse_payload(data)
        except SchemaError as exc:
            raise to_sync_error(exc, **context)

    def pull(
        self,
        provider_ids: Optional[list[str]] = None,
        force: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> PullResult:
        """Download the remote document and apply it locally.

        Nothing is written until ``confirm`` approves the plan (or
        ``force`` is set). Files that exist only locally are kept.

        Args:
            provider_ids: Subset of providers to apply.
            force: Overwrite without asking.
            confirm: Called with the planned result before writing.
                Without it, any conflict raises ConflictError.

        Returns:
            PullResult. ``applied`` is False when the user declined.

        Raises:
            ConflictError: If conflicts exist and nobody can confirm.
        """
        credentials = self._require_credentials()
        state = self.state.load()
        container_id = credentials.remote_container_id or state.remote_container_id
        if not container_id:
            raise TransportError(
                "No sync gist recorded; push first or run init",
                ErrorCode.CONTAINER_NOT_FOUND,
                {"operation": "pull"},
            )

        raw = self.fetch_payload(credentials, container_id)
        payload = normalize_payload(raw)
        version = 1 if isinstance(raw, SyncPayloadV1) else 2

        updated_at = _parse_timestamp(payload.meta.updated_at)
        last_sync = state.last_sync_timestamp
        if last_sync is not None and last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=timezone.utc)

        result = PullResult(
            applied=False,
            payload_version=version,
            remote_updated_at=payload.meta.updated_at,
            remote_ahead=bool(updated_at and (last_sync is None or updated_at > last_sync)),
            mcp_server_count=len(payload.mcp_servers or []),
            context_count=len(payload.contexts.items),
        )

        providers = self.registry.select(self._provider_ids(provider_ids))
        targets = [p for p in providers if p.id in payload.providers]
        for provider in targets:
            result.plans[provider.id] = plan_provider(provider, payload.providers[provider.id])

        if not force:
            if result.conflicts and confirm is None:
                raise ConflictError(
                    f"{len(result.conflicts)} file(s) differ locally and remotely",
                    conflicts=result.conflicts,
                    context={"operation": "pull", "container_id": container_id},
                )
            if confirm is not None and not confirm(result):
                logger.info("Pull declined; nothing written")
                return result

        try:
            for provider in targets:
                files = payload.providers[provider.id].to_collected()
                result.written[provider.id] = provider.apply(files)
            if payload.mcp_servers is not None:
                self.mcp.replace_servers(payload.mcp_servers)
            pulled = [
                SessionContext(
                    id=item.id,
                    name=item.name,
                    summary=item.summary,
                    created_at=item.created_at,
                    project=item.project,
                    size=byte_size(item.summary),
                )
                for item in payload.contexts.items
            ]
            self.contexts.save(pulled)
        except OSError as exc:
            raise to_sync_error(exc, operation="pull", container_id=container_id) from exc

        config_hash = raw.config.hash if isinstance(raw, SyncPayloadV1) else ""
        self.state.record(container_id, config_hash, contexts_hash(pulled))
        result.applied = True
        logger.info(
            "Pulled %d file(s) from %s",
            sum(result.written.values()),
            container_id,
        )
        return result

    # -- status -------------------------------------------------------------

    def status(self, provider_ids: Optional[list[str]] = None) -> StatusReport:
        """Summarize local sync health without touching the network."""
        state: SyncState = self.state.load()
        ids = self._provider_ids(provider_ids)
        providers = self.registry.select(ids)
        installed = self.registry.select(ids, installed_only=True)
        snapshot = collect_all(installed)

        rows = []
        for provider in providers:
            snap = snapshot.snapshots.get(provider.id)
            row = ProviderStatus(
                provider_id=provider.id,
                name=provider.name,
                config_root=provider.config_root,
                installed=snap is not None,
            )
            if snap is not None:
                stats = file_stats(snap.files, provider.patterns)
                row.file_count = stats.total
                row.total_size = stats.total_size
                row.combined_hash = snap.combined_hash
            rows.append(row)

        ctx_hash = self.contexts.hash()
        config_changed = state.last_config_hash != snapshot.combined_hash
        contexts_changed = state.last_contexts_hash != ctx_hash

        if not state.remote_container_id:
            status = SyncStatus.UNSYNCED
        elif config_changed or contexts_changed:
            status = SyncStatus.LOCAL_AHEAD
        else:
            status = SyncStatus.UP_TO_DATE

        return StatusReport(
            configured=self.credentials.is_configured(),
            status=status,
            container_id=state.remote_container_id,
            last_sync=state.last_sync_timestamp,
            providers=rows,
            context_count=len(self.contexts.load()),
            config_changed=config_changed,
            contexts_changed=contexts_changed,
            config_hash=snapshot.combined_hash,
        )
