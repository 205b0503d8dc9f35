"""AI provider selection.

``Settings.ai_provider`` names one entry of the provider registry, or
``"none"`` to run the pipeline on heuristics alone. Additional providers can
be registered at runtime without touching the pipeline.
"""

import logging

from invoice_engine.extraction.base import ExtractionProvider
from invoice_engine.extraction.gemini_provider import GeminiExtractionProvider
from invoice_engine.extraction.openai_provider import (
    AzureOpenAIExtractionProvider,
    OpenAIExtractionProvider,
)
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)

NO_PROVIDER = "none"


class ProviderRegistry:
    """Maps AI provider names to ExtractionProvider implementations."""

    _providers: dict[str, type[ExtractionProvider]] = {
        "openai": OpenAIExtractionProvider,
        "azure": AzureOpenAIExtractionProvider,
        "gemini": GeminiExtractionProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[ExtractionProvider]) -> None:
        """Add or replace a provider.

        Args:
            name: Value of APP_AI_PROVIDER that selects this provider
            provider_class: ExtractionProvider subclass
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered extraction provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[ExtractionProvider]:
        """Look up a provider implementation.

        Raises:
            ValueError: If no provider is registered under this name
        """
        try:
            return cls._providers[name]
        except KeyError:
            available = ", ".join(cls._providers)
            raise ValueError(
                f"Unknown extraction provider: '{name}'. Available providers: {available}"
            ) from None

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers)


def create_extraction_provider(settings: Settings) -> ExtractionProvider | None:
    """Instantiate the configured AI provider.

    A provider with missing credentials is still returned; the enhancement
    adapter checks availability on every call and skips the AI pass.

    Args:
        settings: Application settings

    Returns:
        Provider instance, or None when ai_provider is "none"

    Raises:
        ValueError: If ai_provider is not registered
    """
    name = settings.ai_provider
    if name == NO_PROVIDER:
        logger.info("AI enhancement disabled")
        return None

    provider = ProviderRegistry.get_provider_class(name)(settings)
    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{name}' is not fully available; "
            f"AI enhancement will be skipped until credentials are configured"
        )
    else:
        logger.info(f"Created extraction provider: {name}")
    return provider
