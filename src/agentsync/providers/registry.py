"""
Provider registry -- an explicit value built once per process.

``build_registry`` fills a fresh registry from the static
``PROVIDER_CLASSES`` table; callers pass that registry around instead of
reaching for module-level state.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .base import AssistantProvider, ProviderKind
from .claude_code import ClaudeCodeProvider
from .codex import CodexProvider
from .gemini import GeminiProvider
from .opencode import OpenCodeProvider

logger = logging.getLogger("agentsync.providers.registry")

PROVIDER_CLASSES: dict[ProviderKind, type[AssistantProvider]] = {
    ProviderKind.OPENCODE: OpenCodeProvider,
    ProviderKind.CLAUDE_CODE: ClaudeCodeProvider,
    ProviderKind.CODEX: CodexProvider,
    ProviderKind.GEMINI: GeminiProvider,
}


class ProviderRegistry:
    """Providers keyed by their stable id, in registration order."""

    def __init__(self) -> None:
        self._providers: dict[str, AssistantProvider] = {}

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __iter__(self) -> Iterator[AssistantProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def register(self, provider: AssistantProvider) -> bool:
        """Register a provider. A second registration of the same id is a no-op.

        Returns:
            True if the provider was added.
        """
        if provider.id in self._providers:
            logger.debug("Provider %s already registered", provider.id)
            return False
        self._providers[provider.id] = provider
        return True

    def get(self, provider_id: str) -> Optional[AssistantProvider]:
        return self._providers.get(provider_id)

    def all(self) -> list[AssistantProvider]:
        return list(self._providers.values())

    def ids(self) -> list[str]:
        return list(self._providers)

    def select(
        self,
        ids: Optional[Iterable[str]] = None,
        installed_only: bool = False,
    ) -> list[AssistantProvider]:
        """Pick providers by id and optionally by installation.

        Installation checks touch the filesystem, so they run in
        parallel across providers.

        Args:
            ids: Provider ids to keep. None or empty keeps all.
            installed_only: Drop providers whose config is absent.

        Returns:
            Matching providers in registration order.

        Raises:
            ValueError: If ``ids`` names an unknown provider.
        """
        wanted = list(ids or [])
        unknown = [i for i in wanted if i not in self._providers]
        if unknown:
            raise ValueError(
                f"Unknown provider(s): {', '.join(unknown)}. "
                f"Known: {', '.join(self._providers)}"
            )

        providers = [p for p in self._providers.values() if not wanted or p.id in wanted]
        if not installed_only or not providers:
            return providers

        with ThreadPoolExecutor(max_workers=len(providers)) as pool:
            installed = list(pool.map(lambda p: p.is_installed(), providers))
        return [p for p, ok in zip(providers, installed) if ok]


def build_registry(home: Optional[Path] = None) -> ProviderRegistry:
    """Create a registry holding every known provider.

    Args:
        home: User home the providers resolve against.
    """
    registry = ProviderRegistry()
    for cls in PROVIDER_CLASSES.values():
        registry.register(cls(home))
    return registry
