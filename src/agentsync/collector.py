"""
Collection engine -- turn a provider's config tree into a snapshot.

Walks the config root following symlinks (a linked-in skills tree counts
as native) and keeps files that match a declared pattern and no blocklist
pattern. Files are fingerprinted and sorted by relative path so the
combined hash is reproducible.

Patterns use the familiar shell-glob dialect. ``*`` and ``?`` stay
within one path segment while ``**`` spans any number of them. Wildcards
never match a leading dot.

Per-file read errors are logged and skipped. A provider whose collection
blows up entirely degrades to an empty snapshot in ``collect_all``
without affecting the others.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Union

from .hashing import fingerprint, fingerprint_many
from .models import CollectedFile, MultiProviderSnapshot, ProviderSnapshot
from .paths import to_posix

if TYPE_CHECKING:
    from .providers.base import AssistantProvider, ConfigPatterns

logger = logging.getLogger("agentsync.collector")


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


def _match_segment(name: str, pattern: str) -> bool:
    if name.startswith(".") and not pattern.startswith("."):
        return False
    return fnmatchcase(name, pattern)


def _match_segments(parts: list[str], pats: list[str]) -> bool:
    if not pats:
        return not parts
    head = pats[0]
    if head == "**":
        if _match_segments(parts, pats[1:]):
            return True
        for i, part in enumerate(parts):
            if part.startswith("."):
                return False
            if _match_segments(parts[i + 1:], pats[1:]):
                return True
        return False
    if not parts:
        return False
    return _match_segment(parts[0], head) and _match_segments(parts[1:], pats[1:])


def match_pattern(relative_path: str, pattern: str) -> bool:
    """Check a forward-slash relative path against a glob pattern.

    >>> match_pattern("agent/review/deep.md", "agent/**/*.md")
    True
    >>> match_pattern(".git/config", "**/*")
    False
    """
    return _match_segments(relative_path.split("/"), pattern.split("/"))


def should_sync(provider: "AssistantProvider", relative_path: str) -> bool:
    """Would ``relative_path`` be collected for ``provider``?"""
    if provider.is_blocked(relative_path):
        return False
    if relative_path in provider.auxiliary_files():
        return True
    return any(match_pattern(relative_path, p) for p in provider.declared_patterns())


# ---------------------------------------------------------------------------
# Walking and reading
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReadFailure:
    """A file that matched but could not be read."""

    relative_path: str
    error: Exception


ReadResult = Union[CollectedFile, ReadFailure]


def _pruned_prefixes(blocklist: Iterable[str]) -> list[str]:
    return [p[:-3] for p in blocklist if p.endswith("/**")]


def walk_files(root: Path, prune: Iterable[str] = ()) -> Iterator[str]:
    """Yield every file under ``root`` as a forward-slash relative path.

    Symlinked directories are followed, so one tree linked in under two
    names is walked under both. A link back to one of its own ancestors
    is a cycle and is not entered.

    Args:
        root: Directory to walk.
        prune: Directory patterns whose subtrees are skipped.
    """
    prune = list(prune)
    ancestors: dict[str, frozenset[str]] = {}

    def on_error(exc: OSError) -> None:
        logger.warning("Cannot list %s: %s", exc.filename, exc.strerror or exc)

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=True):
        real = os.path.realpath(dirpath)
        chain = ancestors.pop(dirpath, frozenset())
        if real in chain:
            logger.debug("Not following symlink cycle at %s", dirpath)
            dirnames[:] = []
            continue
        chain = chain | {real}

        rel_dir = to_posix(Path(dirpath).relative_to(root))
        rel_dir = "" if rel_dir == "." else rel_dir + "/"

        dirnames[:] = sorted(
            d for d in dirnames
            if not any(match_pattern(rel_dir + d, p) for p in prune)
        )
        for d in dirnames:
            ancestors[os.path.join(dirpath, d)] = chain
        for name in sorted(filenames):
            yield rel_dir + name


def read_file(root: Path, relative_path: str) -> ReadResult:
    """Read one matched file, resolving symlinks to their target."""
    full = root / relative_path
    try:
        real = full.resolve(strict=True)
    except (OSError, RuntimeError):
        real = full
    try:
        content = real.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ReadFailure(relative_path, exc)
    return CollectedFile.from_content(relative_path, content)


def _read_auxiliary(provider: "AssistantProvider", relative_path: str, path: Path) -> Optional[ReadResult]:
    if not path.exists():
        return None
    try:
        content = provider.read_auxiliary(relative_path, path)
    except (OSError, ValueError) as exc:
        return ReadFailure(relative_path, exc)
    if content is None:
        return None
    return CollectedFile.from_content(relative_path, content)


def combined_hash(files: list[CollectedFile]) -> str:
    """Hash of ``path:hash`` lines over files already sorted by path."""
    if not files:
        return ""
    return fingerprint("\n".join(f"{f.relative_path}:{f.content_hash}" for f in files))


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


def collect(provider: "AssistantProvider") -> ProviderSnapshot:
    """Snapshot one provider's syncable files.

    A missing config root is not an error: the tree contributes nothing.
    Auxiliary files outside the root are still picked up when present.

    Args:
        provider: Provider to collect.

    Returns:
        ProviderSnapshot with files sorted by relative path.
    """
    root = provider.config_root
    patterns = provider.declared_patterns()
    results: list[ReadResult] = []

    if root.is_dir():
        prune = _pruned_prefixes(provider.blocklist)
        for rel in walk_files(root, prune):
            if not any(match_pattern(rel, p) for p in patterns):
                continue
            if provider.is_blocked(rel):
                continue
            if not (root / rel).exists():
                continue
            results.append(read_file(root, rel))

    for rel, path in provider.auxiliary_files().items():
        result = _read_auxiliary(provider, rel, path)
        if result is not None:
            results.append(result)

    files: dict[str, CollectedFile] = {}
    for result in results:
        if isinstance(result, ReadFailure):
            logger.warning(
                "Skipping %s/%s: %s", provider.id, result.relative_path, result.error
            )
            continue
        files[result.relative_path] = result

    ordered = [files[k] for k in sorted(files)]
    logger.debug("Collected %d file(s) for %s", len(ordered), provider.id)
    return ProviderSnapshot(
        provider_id=provider.id,
        config_root=root,
        files=ordered,
        combined_hash=combined_hash(ordered),
    )


def _collect_isolated(provider: "AssistantProvider") -> ProviderSnapshot:
    try:
        return collect(provider)
    except Exception as exc:
        logger.error("Collection failed for %s, treating as empty: %s", provider.id, exc)
        return ProviderSnapshot(provider_id=provider.id, config_root=provider.config_root)


def multi_hash(snapshots: dict[str, ProviderSnapshot]) -> str:
    """Provider-order-independent hash across snapshots."""
    return fingerprint_many(
        sorted(f"{pid}:{snap.combined_hash}" for pid, snap in snapshots.items())
    )


def collect_all(providers: list["AssistantProvider"]) -> MultiProviderSnapshot:
    """Collect several providers in parallel, isolating failures.

    Args:
        providers: Providers to snapshot.

    Returns:
        MultiProviderSnapshot keyed by provider id.
    """
    if not providers:
        return MultiProviderSnapshot(combined_hash=multi_hash({}))

    with ThreadPoolExecutor(max_workers=len(providers)) as pool:
        snapshots = list(pool.map(_collect_isolated, providers))

    by_id = {s.provider_id: s for s in snapshots}
    return MultiProviderSnapshot(snapshots=by_id, combined_hash=multi_hash(by_id))


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def is_safe_relative(relative_path: str) -> bool:
    path = PurePosixPath(relative_path)
    return bool(relative_path) and not path.is_absolute() and ".." not in path.parts


def apply_files(provider: "AssistantProvider", files: list[CollectedFile]) -> int:
    """Write files into the provider's config root.

    Files missing from ``files`` are left alone. Auxiliary files are
    handed to the provider, which merges rather than overwrites.

    Args:
        provider: Target provider.
        files: Files to write.

    Returns:
        Number of files written.

    Raises:
        OSError: If a write fails.
    """
    root = provider.config_root
    auxiliary = provider.auxiliary_files()
    written = 0

    for file in files:
        rel = file.relative_path
        if rel in auxiliary:
            provider.write_auxiliary(rel, auxiliary[rel], file.content)
            written += 1
            continue
        if not is_safe_relative(rel):
            logger.warning("Refusing to write %s outside %s", rel, root)
            continue
        if provider.is_blocked(rel):
            logger.warning("Refusing to write blocked path %s for %s", rel, provider.id)
            continue

        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(file.content.encode("utf-8"))
        written += 1

    logger.info("Applied %d file(s) to %s", written, provider.id)
    return written


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class FileStats:
    total: int = 0
    configs: int = 0
    commands: int = 0
    agents: int = 0
    skills: int = 0
    instructions: int = 0
    other: int = 0
    total_size: int = 0


def file_stats(files: list[CollectedFile], patterns: "ConfigPatterns") -> FileStats:
    """Count files per pattern category and sum their UTF-8 size."""
    stats = FileStats(total=len(files))
    for file in files:
        rel = file.relative_path
        stats.total_size += len(file.content.encode("utf-8"))
        if any(match_pattern(rel, p) for p in patterns.main_config):
            stats.configs += 1
        elif patterns.commands and match_pattern(rel, patterns.commands):
            stats.commands += 1
        elif patterns.agents and match_pattern(rel, patterns.agents):
            stats.agents += 1
        elif patterns.skills and match_pattern(rel, patterns.skills):
            stats.skills += 1
        elif patterns.instructions and match_pattern(rel, patterns.instructions):
            stats.instructions += 1
        else:
            stats.other += 1
    return stats


def format_size(size: int) -> str:
    """Human-readable byte count: ``512 B``, ``1.5 KB``, ``2.0 MB``."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
