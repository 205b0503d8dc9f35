"""OpenAI-based extraction providers.

Uses the OpenAI Chat Completions API in JSON mode. The Azure OpenAI variant
shares the request logic and only differs in client construction and in
addressing a deployment instead of a model.

Includes retry logic with exponential backoff for transient API errors.
"""

import logging
from typing import Any

import openai
from openai import AzureOpenAI, OpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoice_engine.extraction.base import SYSTEM_PROMPT, ExtractionProvider
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)

# Connection errors include timeouts
TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIExtractionProvider(ExtractionProvider):
    """OpenAI extraction provider.

    Requires APP_OPENAI_API_KEY.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        """Model (or deployment) name sent with each request."""
        return self.settings.openai_model

    def is_available(self) -> bool:
        """Check if the OpenAI API key is configured."""
        return bool(self.settings.openai_api_key)

    def _create_client(self) -> OpenAI:
        # Retries are handled by tenacity
        return OpenAI(
            api_key=self.settings.openai_api_key,
            timeout=self.settings.ai_timeout_seconds,
            max_retries=0,
        )

    def _get_client(self) -> OpenAI:
        """Get or create the API client (lazy initialization)."""
        if self._client is None:
            self._client = self._create_client()
            logger.info(f"{self.provider_name} client initialized")
        return self._client

    def _complete(self, prompt: str) -> str:
        response = self._call_with_retry(prompt)
        content = response.choices[0].message.content
        return content or ""

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_with_retry(self, prompt: str) -> Any:
        """Call the Chat Completions API with retry logic for transient errors.

        Args:
            prompt: Extraction prompt for the LLM

        Returns:
            Chat completion response
        """
        client = self._get_client()
        return client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            max_tokens=self.settings.ai_max_tokens,
            temperature=0,  # Deterministic output
        )


class AzureOpenAIExtractionProvider(OpenAIExtractionProvider):
    """Azure OpenAI extraction provider.

    Requires APP_AZURE_API_KEY, APP_AZURE_ENDPOINT and APP_AZURE_DEPLOYMENT_NAME.
    """

    @property
    def provider_name(self) -> str:
        return "azure"

    @property
    def model(self) -> str:
        return self.settings.azure_deployment_name

    def is_available(self) -> bool:
        """Check if key, endpoint and deployment are all configured."""
        return bool(
            self.settings.azure_api_key
            and self.settings.azure_endpoint
            and self.settings.azure_deployment_name
        )

    def _create_client(self) -> AzureOpenAI:
        return AzureOpenAI(
            api_key=self.settings.azure_api_key,
            azure_endpoint=self.settings.azure_endpoint,
            api_version=self.settings.azure_api_version,
            timeout=self.settings.ai_timeout_seconds,
            max_retries=0,
        )
