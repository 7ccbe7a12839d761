"""LLM provider registry.

Maps a provider id to its adapter class. Adapters are imported lazily so a
missing vendor SDK only matters when that provider is actually requested.
"""
from __future__ import annotations

import importlib
import logging

from errors import ConfigurationError, ProviderNotImplementedError
from .base import ProviderAdapter, ProviderConfig, ToolCall, ToolResult

log = logging.getLogger("parsec.providers")

# provider id -> (module, class)
_ADAPTERS: dict[str, tuple[str, str]] = {
    "anthropic": ("providers.anthropic_provider", "AnthropicAdapter"),
    "openai": ("providers.openai_provider", "OpenAIAdapter"),
    "mistral": ("providers.mistral_provider", "MistralAdapter"),
    "google": ("providers.google_provider", "GoogleAdapter"),
}

IMPLEMENTED_PROVIDERS = tuple(_ADAPTERS)


def adapter_class(provider: str) -> type[ProviderAdapter]:
    """Return the adapter class registered for *provider*."""
    provider_name = (provider or "").lower().strip()
    try:
        module_name, class_name = _ADAPTERS[provider_name]
    except KeyError:
        raise ProviderNotImplementedError(
            f'Provider "{provider}" is not yet implemented. '
            f"Currently supported: {', '.join(IMPLEMENTED_PROVIDERS)}."
        ) from None
    module = importlib.import_module(module_name)
    return getattr(module, class_name)


def create_provider(config: ProviderConfig) -> ProviderAdapter:
    """Return a ProviderAdapter instance for the given configuration.

    Raises:
        ConfigurationError: api key or model missing.
        ProviderNotImplementedError: no adapter for ``config.provider``.
    """
    if not config.api_key:
        raise ConfigurationError("Missing API key for provider")
    if not config.model:
        raise ConfigurationError("Missing model for provider")

    cls = adapter_class(config.provider)
    log.info("Using %s provider, model: %s", config.provider, config.model)
    return cls(config)


__all__ = [
    "IMPLEMENTED_PROVIDERS",
    "ProviderAdapter",
    "ProviderConfig",
    "ToolCall",
    "ToolResult",
    "adapter_class",
    "create_provider",
]
