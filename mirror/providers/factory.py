"""Build providers from model configs."""

import dataclasses
import logging

from config.config_loader import AppConfig, ModelConfig
from mirror.providers.anthropic import AnthropicProvider
from mirror.providers.base import AIProvider, ProviderError
from mirror.providers.gemini import GeminiProvider
from mirror.providers.mock import MockProvider
from mirror.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def create_provider(
    config: ModelConfig,
    *,
    mock: bool = False,
    model_override: str | None = None,
) -> AIProvider:
    """Instantiate the provider for ``config``.

    ``mock=True`` replaces every backend with a MockProvider keeping its name.

    Raises:
        ProviderError: Unknown sdk or missing API key.
    """
    if mock or config.sdk == "mock":
        return MockProvider(config.name, f"Mock response from {config.name}.")
    if model_override:
        config = dataclasses.replace(config, model=model_override)
    provider_cls = PROVIDER_CLASSES.get(config.sdk)
    if provider_cls is None:
        raise ProviderError(config.name, f"Unsupported sdk: {config.sdk}")
    return provider_cls(config)


def build_all_providers(config: AppConfig, *, mock: bool = False) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    names = config.models if mock else config.available_providers
    providers: dict[str, AIProvider] = {}
    for name in sorted(names):
        try:
            providers[name] = create_provider(config.models[name], mock=mock)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers
