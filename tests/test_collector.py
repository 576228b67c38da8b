"""
Tests for the collection engine -- matching, walking, hashing and apply.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from agentsync.collector import (
    apply_files,
    collect,
    collect_all,
    file_stats,
    format_size,
    match_pattern,
    multi_hash,
    should_sync,
)
from agentsync.models import CollectedFile
from agentsync.providers.base import AssistantProvider, ConfigPatterns, ProviderKind
from agentsync.providers.opencode import OpenCodeProvider

from conftest import write

needs_symlinks = pytest.mark.skipif(not hasattr(os, "symlink"), reason="no symlink support")


class RootProvider(AssistantProvider):
    """Minimal provider rooted at an arbitrary directory."""

    kind = ProviderKind.OPENCODE
    name = "Test"
    patterns = ConfigPatterns(
        main_config=("settings.json",),
        agents="agents/**/*.md",
        skills="skills/**/*",
    )
    blocklist = ("skills/secrets/**", "*.log", "settings.json.bak")

    def __init__(self, root: Path, provider_id: str = "opencode"):
        super().__init__(home=root.parent)
        self._root = root
        self._id = provider_id

    @property
    def id(self) -> str:
        return self._id

    @property
    def config_root(self) -> Path:
        return self._root

    def list_mcp_servers(self):
        return []

    def upsert_mcp_server(self, server):
        pass

    def remove_mcp_server(self, name):
        return False


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


class TestMatchPattern:
    @pytest.mark.parametrize("path, pattern", [
        ("settings.json", "settings.json"),
        ("agents/a.md", "agents/**/*.md"),
        ("agents/deep/er/a.md", "agents/**/*.md"),
        ("skills/x", "skills/**/*"),
        ("node_modules/pkg/index.js", "node_modules/**"),
        ("debug.log", "*.log"),
    ])
    def test_matches(self, path, pattern):
        assert match_pattern(path, pattern)

    @pytest.mark.parametrize("path, pattern", [
        ("agents/a.txt", "agents/**/*.md"),
        ("other/agents/a.md", "agents/**/*.md"),
        ("logs/debug.log", "*.log"),
        ("skills/.hidden", "skills/**/*"),
        ("skills/.git/config", "skills/**/*"),
    ])
    def test_non_matches(self, path, pattern):
        assert not match_pattern(path, pattern)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


class TestCollect:
    def test_missing_root_is_empty(self, tmp_path: Path):
        snap = collect(RootProvider(tmp_path / "absent"))
        assert snap.files == []
        assert snap.combined_hash == ""

    def test_collects_sorted_with_forward_slashes(self, tmp_path: Path):
        root = tmp_path / "cfg"
        write(root, "skills/zeta/run.sh", "echo")
        write(root, "agents/b.md", "B")
        write(root, "settings.json", "{}")
        write(root, "agents/a.md", "A")
        write(root, "notes.txt", "ignored")

        snap = collect(RootProvider(root))

        assert [f.relative_path for f in snap.files] == [
            "agents/a.md",
            "agents/b.md",
            "settings.json",
            "skills/zeta/run.sh",
        ]
        assert snap.combined_hash

    def test_determinism_across_creation_order(self, tmp_path: Path):
        """Same files and contents give the same hash however they were made."""
        files = {"agents/a.md": "A", "agents/b.md": "B", "settings.json": "{}"}
        first, second = tmp_path / "one", tmp_path / "two"
        for rel in files:
            write(first, rel, files[rel])
        for rel in reversed(list(files)):
            write(second, rel, files[rel])

        assert collect(RootProvider(first)).combined_hash == collect(RootProvider(second)).combined_hash

    def test_content_change_changes_hash(self, tmp_path: Path):
        root = tmp_path / "cfg"
        path = write(root, "agents/a.md", "A")
        before = collect(RootProvider(root)).combined_hash
        path.write_text("A2")
        assert collect(RootProvider(root)).combined_hash != before

    def test_blocklist_beats_include(self, tmp_path: Path):
        root = tmp_path / "cfg"
        write(root, "skills/secrets/token.txt", "s3cret")
        write(root, "skills/public/readme.md", "hi")

        paths = [f.relative_path for f in collect(RootProvider(root)).files]

        assert "skills/public/readme.md" in paths
        assert "skills/secrets/token.txt" not in paths

    def test_unreadable_file_is_skipped(self, tmp_path: Path):
        root = tmp_path / "cfg"
        write(root, "agents/good.md", "ok")
        bad = root / "agents" / "bad.md"
        bad.write_bytes(b"\xff\xfe\x00binary")

        paths = [f.relative_path for f in collect(RootProvider(root)).files]

        assert paths == ["agents/good.md"]

    @needs_symlinks
    def test_follows_symlinked_directory(self, tmp_path: Path):
        shared = tmp_path / "shared-skills"
        write(shared, "lint/SKILL.md", "lint")
        root = tmp_path / "cfg"
        root.mkdir()
        os.symlink(shared, root / "skills", target_is_directory=True)

        files = collect(RootProvider(root)).files

        assert [f.relative_path for f in files] == ["skills/lint/SKILL.md"]
        assert files[0].content == "lint"

    @needs_symlinks
    def test_linked_tree_already_walked_under_its_real_name(self, user_home: Path):
        """A shared tree inside the root is still collected through its link."""
        provider = OpenCodeProvider()
        root = provider.config_root
        write(root, ".shared/skills/review/SKILL.md", "review")
        (root / "skill").mkdir()
        os.symlink(root / ".shared" / "skills", root / "skill" / "shared", target_is_directory=True)

        paths = [f.relative_path for f in provider.collect().files]

        assert paths == ["skill/shared/review/SKILL.md"]

    @needs_symlinks
    def test_same_tree_linked_twice(self, tmp_path: Path):
        shared = tmp_path / "shared"
        write(shared, "x.md", "x")
        root = tmp_path / "cfg"
        (root / "skills").mkdir(parents=True)
        os.symlink(shared, root / "skills" / "a", target_is_directory=True)
        os.symlink(shared, root / "skills" / "b", target_is_directory=True)

        paths = [f.relative_path for f in collect(RootProvider(root)).files]

        assert paths == ["skills/a/x.md", "skills/b/x.md"]

    @needs_symlinks
    def test_symlink_cycle_terminates(self, tmp_path: Path):
        root = tmp_path / "cfg"
        write(root, "skills/a/x.md", "x")
        os.symlink(root / "skills", root / "skills" / "a" / "loop", target_is_directory=True)

        paths = [f.relative_path for f in collect(RootProvider(root)).files]

        assert paths == ["skills/a/x.md"]


class TestCollectAll:
    def test_multi_hash_ignores_provider_order(self, tmp_path: Path):
        a = RootProvider(tmp_path / "a", "opencode")
        b = RootProvider(tmp_path / "b", "gemini")
        write(a.config_root, "settings.json", "{}")
        write(b.config_root, "agents/x.md", "x")

        assert collect_all([a, b]).combined_hash == collect_all([b, a]).combined_hash

    def test_failing_provider_degrades_to_empty(self, tmp_path: Path):
        good = RootProvider(tmp_path / "good", "opencode")
        bad = RootProvider(tmp_path / "bad", "gemini")
        write(good.config_root, "settings.json", "{}")
        real_collect = collect

        def flaky(provider):
            if provider.id == "gemini":
                raise PermissionError("denied")
            return real_collect(provider)

        with patch("agentsync.collector.collect", side_effect=flaky):
            result = collect_all([good, bad])

        assert result.snapshots["gemini"].files == []
        assert len(result.snapshots["opencode"].files) == 1

    def test_multi_hash_empty(self):
        assert multi_hash({}) == multi_hash({})


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


class TestApply:
    def test_writes_and_keeps_local_only_files(self, tmp_path: Path):
        root = tmp_path / "cfg"
        keep = write(root, "agents/local-only.md", "mine")
        provider = RootProvider(root)

        written = apply_files(provider, [
            CollectedFile.from_content("agents/new/deep.md", "remote"),
            CollectedFile.from_content("settings.json", "{\"a\": 1}"),
        ])

        assert written == 2
        assert (root / "agents/new/deep.md").read_text() == "remote"
        assert keep.read_text() == "mine"

    def test_refuses_escaping_paths(self, tmp_path: Path):
        root = tmp_path / "cfg"
        provider = RootProvider(root)

        written = apply_files(provider, [
            CollectedFile.from_content("../evil.md", "x"),
            CollectedFile.from_content("/etc/evil.md", "x"),
        ])

        assert written == 0
        assert not (tmp_path / "evil.md").exists()

    def test_refuses_blocked_paths(self, tmp_path: Path):
        root = tmp_path / "cfg"
        written = apply_files(RootProvider(root), [
            CollectedFile.from_content("skills/secrets/token.txt", "x"),
        ])
        assert written == 0


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class TestStats:
    def test_file_stats_categories(self):
        files = [
            CollectedFile.from_content("opencode.json", "{}"),
            CollectedFile.from_content("agent/a.md", "aa"),
            CollectedFile.from_content("command/c.md", "c"),
            CollectedFile.from_content("skill/s/x.md", "x"),
            CollectedFile.from_content("AGENTS.md", "i"),
            CollectedFile.from_content("dcp.jsonc", "{}"),
        ]
        stats = file_stats(files, OpenCodeProvider.patterns)
        assert (stats.total, stats.configs, stats.agents, stats.commands) == (6, 1, 1, 1)
        assert (stats.skills, stats.instructions, stats.other) == (1, 1, 1)
        assert stats.total_size == 2 + 2 + 1 + 1 + 1 + 2

    @pytest.mark.parametrize("size, text", [
        (512, "512 B"),
        (1536, "1.5 KB"),
        (2 * 1024 * 1024, "2.0 MB"),
    ])
    def test_format_size(self, size, text):
        assert format_size(size) == text

    def test_should_sync(self, user_home: Path):
        provider = OpenCodeProvider()
        assert should_sync(provider, "agent/review.md")
        assert not should_sync(provider, "package.json")
        assert not should_sync(provider, "node_modules/x/agent/a.md")
