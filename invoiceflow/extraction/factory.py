"""Factory for creating model providers based on configuration.

Implements Factory Pattern for provider selection with registry pattern for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from invoiceflow.extraction.base import ModelProvider
from invoiceflow.extraction.openai_provider import OpenAIModelProvider
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available model providers.

    Maps provider names to their implementation classes and supports
    runtime registration of new providers.
    """

    _providers: dict[str, type[ModelProvider]] = {
        "openai": OpenAIModelProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[ModelProvider]) -> None:
        """Register a new provider.

        Args:
            name: Provider identifier (must match Settings.model_provider)
            provider_class: Provider class implementing ModelProvider
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered model provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[ModelProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown model provider: '{name}'. " f"Available providers: {available}"
            )
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        """List all registered provider names."""
        return list(cls._providers.keys())


def create_model_provider(settings: Settings) -> ModelProvider:
    """Create the model provider named by settings.model_provider.

    Logs a warning if the provider is not available (e.g., missing API key);
    extraction requests will then fail with an extraction error.

    Args:
        settings: Application settings

    Returns:
        Configured model provider instance

    Raises:
        ValueError: If configured provider is unknown
    """
    provider_name = settings.model_provider
    provider = ProviderRegistry.get_provider_class(provider_name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Model provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys)."
        )

    logger.info(f"Created model provider: {provider_name}")
    return provider
