"""Gemini-based extraction provider.

Calls the Generative Language REST API (generateContent) directly over httpx
and requests a JSON response body.

See: https://ai.google.dev/api/generate-content
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoice_engine.extraction.base import SYSTEM_PROMPT, ExtractionProvider
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)


def _is_transient(error: BaseException) -> bool:
    """Retry on network failures, rate limiting and server-side errors only."""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return False


class GeminiExtractionProvider(ExtractionProvider):
    """Google Gemini extraction provider.

    Requires APP_GEMINI_API_KEY.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Gemini extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.gemini_model
        self._client = httpx.Client(timeout=settings.ai_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "gemini"

    def is_available(self) -> bool:
        """Check if the Gemini API key is configured."""
        return bool(self.settings.gemini_api_key)

    def _complete(self, prompt: str) -> str:
        payload = self._call_gemini_with_retry(prompt)
        candidates = payload.get("candidates") or []
        if not candidates:
            raise ValueError("Gemini response contained no candidates")
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_gemini_with_retry(self, prompt: str) -> dict:
        """Call the generateContent endpoint with retry logic for transient errors.

        Args:
            prompt: Extraction prompt for the LLM

        Returns:
            Decoded JSON response body

        Raises:
            httpx.HTTPError: After all retry attempts exhausted, or immediately
                for non-retryable status codes
        """
        response = self._client.post(
            f"{self._base_url}/models/{self._model}:generateContent",
            headers={"x-goog-api-key": self.settings.gemini_api_key},
            json={
                "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": 0,  # Deterministic output
                    "maxOutputTokens": self.settings.ai_max_tokens,
                    "responseMimeType": "application/json",
                },
            },
        )
        response.raise_for_status()
        result: dict = response.json()
        return result
