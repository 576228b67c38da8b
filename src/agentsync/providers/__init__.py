"""Assistant providers and the registry that holds them."""

from .base import AssistantProvider, ConfigPatterns, PluginConfig, PluginConfigLister, ProviderKind
from .claude_code import ClaudeCodeProvider
from .codex import CodexProvider
from .gemini import GeminiProvider
from .opencode import OpenCodeProvider
from .registry import PROVIDER_CLASSES, ProviderRegistry, build_registry

__all__ = [
    "AssistantProvider",
    "ClaudeCodeProvider",
    "CodexProvider",
    "ConfigPatterns",
    "GeminiProvider",
    "OpenCodeProvider",
    "PROVIDER_CLASSES",
    "PluginConfig",
    "PluginConfigLister",
    "ProviderKind",
    "ProviderRegistry",
    "build_registry",
]
