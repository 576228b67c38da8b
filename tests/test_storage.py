"""
Tests for local persistence: sync state, session contexts, credentials
and the optional YAML settings file.
"""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from agentsync.config import SyncSettings, load_settings, save_settings
from agentsync.errors import ErrorCode, SyncError
from agentsync.models import Credentials, SessionContext
from agentsync.storage import ContextStore, CredentialStore, StateStore
from agentsync.storage.contexts import (
    MAX_CONTEXTS,
    TRUNCATION_NOTICE,
    contexts_hash,
    truncate_summary,
)
from agentsync.storage.state import format_last_sync

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class TestStateStore:
    def test_missing_is_default(self, tmp_path: Path):
        state = StateStore(tmp_path).load()
        assert state.remote_container_id is None
        assert state.last_sync_timestamp is None

    def test_record_and_reload(self, tmp_path: Path):
        store = StateStore(tmp_path)
        store.record("g1", "cfg-hash", None, now=NOW)

        state = StateStore(tmp_path).load()
        assert state.remote_container_id == "g1"
        assert state.last_config_hash == "cfg-hash"
        assert state.last_contexts_hash is None
        assert state.last_sync_timestamp == NOW

    def test_wire_names(self, tmp_path: Path):
        StateStore(tmp_path).record("g1", "h", "c", now=NOW)
        data = json.loads((tmp_path / "state.json").read_text())
        assert set(data) == {"lastSync", "gistId", "configHash", "contextsHash", "version"}
        assert data["version"] == 1

    def test_no_temp_file_left_behind(self, tmp_path: Path):
        StateStore(tmp_path).record("g1", "h", None, now=NOW)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]

    @pytest.mark.parametrize("content", [
        "{not json",
        json.dumps({"version": 2, "gistId": "g"}),
        json.dumps(["a", "list"]),
        json.dumps({"version": 1, "lastSync": "not a date"}),
    ])
    def test_unusable_file_loads_default(self, tmp_path: Path, content: str):
        (tmp_path / "state.json").write_text(content)
        assert StateStore(tmp_path).load().remote_container_id is None

    def test_has_pending_changes(self, tmp_path: Path):
        store = StateStore(tmp_path)
        store.record("g1", "h", None, now=NOW)
        assert not store.has_pending_changes("h", None)
        assert store.has_pending_changes("h2", None)
        assert store.has_pending_changes("h", "ctx")

    def test_clear(self, tmp_path: Path):
        store = StateStore(tmp_path)
        store.record("g1", "h", None, now=NOW)
        store.clear()
        assert store.load().remote_container_id is None


class TestFormatLastSync:
    @pytest.mark.parametrize("delta, text", [
        (timedelta(seconds=10), "Just now"),
        (timedelta(minutes=1), "1 minute ago"),
        (timedelta(minutes=5), "5 minutes ago"),
        (timedelta(hours=3), "3 hours ago"),
        (timedelta(days=2), "2 days ago"),
        (timedelta(days=30), "2026-01-30"),
    ])
    def test_relative(self, delta, text):
        assert format_last_sync(NOW - delta, now=NOW) == text

    def test_never(self):
        assert format_last_sync(None) == "Never synced"

    def test_naive_timestamp_is_utc(self):
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert format_last_sync(naive, now=NOW) == "1 hour ago"


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------


class TestContextStore:
    def test_add_puts_newest_first(self, tmp_path: Path):
        store = ContextStore(tmp_path)
        store.add("first", "one")
        store.add("second", "two", project="api")

        names = [c.name for c in store.load()]
        assert names == ["second", "first"]
        assert store.load()[0].project == "api"

    def test_add_caps_count(self, tmp_path: Path):
        store = ContextStore(tmp_path)
        for i in range(MAX_CONTEXTS + 3):
            store.add(f"ctx-{i}", "s")

        contexts = store.load()
        assert len(contexts) == MAX_CONTEXTS
        assert contexts[0].name == f"ctx-{MAX_CONTEXTS + 2}"

    def test_get_lookup_order(self, tmp_path: Path):
        store = ContextStore(tmp_path)
        auth = store.add("Auth refactor", "a")
        store.add("auth", "b")

        assert store.get(auth.id).name == "Auth refactor"
        assert store.get("auth").summary == "b"
        assert store.get("REFACTOR").name == "Auth refactor"
        assert store.get("missing") is None

    def test_delete_and_search(self, tmp_path: Path):
        store = ContextStore(tmp_path)
        store.add("db", "postgres tuning", project="backend")
        store.add("ui", "react hooks")

        assert [c.name for c in store.search("BACKEND")] == ["db"]
        assert store.delete("ui") is True
        assert store.delete("ui") is False
        assert store.delete_all() == 1
        assert store.load() == []

    def test_wire_format(self, tmp_path: Path):
        ContextStore(tmp_path).add("n", "s", session_id="sess-1")
        data = json.loads((tmp_path / "contexts.json").read_text())
        assert data["version"] == 1
        (entry,) = data["contexts"]
        assert {"id", "name", "summary", "createdAt", "sessionId", "size"} <= set(entry)
        assert "project" not in entry

    def test_hash_is_none_when_empty(self, tmp_path: Path):
        assert ContextStore(tmp_path).hash() is None

    def test_hash_matches_module_function(self, tmp_path: Path):
        store = ContextStore(tmp_path)
        store.add("n", "s")
        assert store.hash() == contexts_hash(store.load())

    def test_hash_changes_with_content(self):
        a = SessionContext(id="1", name="n", summary="s", created_at="2026-01-01T00:00:00Z")
        b = a.model_copy(update={"summary": "t"})
        assert contexts_hash([a]) != contexts_hash([b])


class TestTruncateSummary:
    def test_short_is_untouched(self):
        assert truncate_summary("short") == "short"

    def test_prefers_sentence_boundary(self):
        text = "First sentence. " * 10 + "x" * 40
        cut = truncate_summary(text, limit=100)
        assert cut.endswith("." + TRUNCATION_NOTICE)

    def test_falls_back_to_byte_limit(self):
        text = "Tiny. " + "x" * 200
        cut = truncate_summary(text, limit=50)
        assert cut == "Tiny. " + "x" * 44 + TRUNCATION_NOTICE

    def test_never_splits_multibyte_characters(self):
        cut = truncate_summary("é" * 100, limit=51)
        assert cut == "é" * 25 + TRUNCATION_NOTICE


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class TestCredentialStore:
    def test_round_trip(self, tmp_path: Path):
        store = CredentialStore(tmp_path)
        store.save(Credentials(remote_token="ghp_secret", passphrase="pass-phrase"))

        loaded = store.load()
        assert loaded.remote_token == "ghp_secret"
        assert loaded.passphrase == "pass-phrase"
        assert loaded.remote_container_id is None

    def test_token_is_not_stored_in_clear(self, tmp_path: Path):
        CredentialStore(tmp_path).save(Credentials(remote_token="ghp_secret", passphrase="p"))
        raw = (tmp_path / "auth.json").read_text()
        assert "ghp_secret" not in raw
        assert set(json.loads(raw)["encryptedToken"]) == {"ciphertext", "iv", "tag", "salt", "version"}

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path: Path):
        CredentialStore(tmp_path).save(Credentials(remote_token="t", passphrase="p"))
        assert os.stat(tmp_path / "auth.json").st_mode & 0o777 == 0o600

    def test_update_container_id(self, tmp_path: Path):
        store = CredentialStore(tmp_path)
        store.save(Credentials(remote_token="t", passphrase="p"))

        store.update_container_id("g42")

        assert store.load().remote_container_id == "g42"
        assert json.loads((tmp_path / "auth.json").read_text())["gistId"] == "g42"

    def test_update_without_credentials(self, tmp_path: Path):
        with pytest.raises(SyncError) as info:
            CredentialStore(tmp_path).update_container_id("g1")
        assert info.value.code == ErrorCode.AUTH_NOT_CONFIGURED

    def test_corrupt_file_loads_none(self, tmp_path: Path):
        (tmp_path / "auth.json").write_text("{broken")
        assert CredentialStore(tmp_path).load() is None

    def test_tampered_passphrase_loads_none(self, tmp_path: Path):
        store = CredentialStore(tmp_path)
        store.save(Credentials(remote_token="t", passphrase="p"))
        data = json.loads(store.path.read_text())
        data["passphrase"] = "other"
        store.path.write_text(json.dumps(data))
        assert store.load() is None

    def test_clear(self, tmp_path: Path):
        store = CredentialStore(tmp_path)
        store.save(Credentials(remote_token="t", passphrase="p"))
        store.clear()
        assert not store.is_configured()
        store.clear()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults_when_missing(self, tmp_path: Path):
        settings = load_settings(tmp_path)
        assert settings.api_url == "https://api.github.com"
        assert settings.default_providers == []

    def test_save_and_load(self, tmp_path: Path):
        save_settings(SyncSettings(timeout=5, default_providers=["codex"]), tmp_path)
        settings = load_settings(tmp_path)
        assert settings.timeout == 5
        assert settings.default_providers == ["codex"]

    def test_invalid_yaml_falls_back(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("timeout: -1\n")
        assert load_settings(tmp_path).timeout == 30.0

    def test_sync_dir_from_environment(self, sync_dir: Path):
        StateStore().record("g1", "h", None, now=NOW)
        assert (sync_dir / "state.json").exists()
