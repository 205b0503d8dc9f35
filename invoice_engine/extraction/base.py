"""Abstract base class for AI extraction providers.

Enables switching between different AI providers (OpenAI, Azure OpenAI,
Gemini) while the enhancement adapter depends only on the structured
extraction capability.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any

from invoice_engine.shared.config import Settings
from invoice_engine.shared.exceptions import EnhancementError

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = "You are an expert invoice parser."


def strip_code_fences(response_text: str) -> str:
    """Remove markdown code-fence wrapping from an LLM response.

    Args:
        response_text: Raw LLM response

    Returns:
        Fence content if a fenced block is present, else the stripped text
    """
    match = _FENCED_BLOCK.search(response_text)
    if match:
        return match.group(1).strip()
    return response_text.strip()


def parse_json_response(response_text: str) -> dict[str, Any]:
    """Extract and parse a JSON object from an LLM response.

    Handles common LLM quirks like markdown code blocks and chatter around
    the object.

    Args:
        response_text: Raw LLM response

    Returns:
        Parsed JSON dict

    Raises:
        json.JSONDecodeError: If no valid JSON found
        ValueError: If the JSON is not an object
    """
    text = strip_code_fences(response_text)
    try:
        result = json.loads(text)
    except json.JSONDecodeError:
        # Try to find JSON object directly
        match = _JSON_OBJECT.search(text)
        if not match:
            raise
        result = json.loads(match.group(0))

    if not isinstance(result, dict):
        raise ValueError(f"Expected a JSON object, got {type(result).__name__}")
    return result


class ExtractionProvider(ABC):
    """Abstract base class for AI extraction providers.

    Concrete providers only implement the transport (`_complete`); response
    cleanup and JSON parsing are shared here.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'gemini')
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured (credentials, endpoint).

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @abstractmethod
    def _complete(self, prompt: str) -> str:
        """Send the prompt to the provider and return the raw model text.

        Raises:
            Exception: On transport failure or non-2xx response
        """
        pass

    def generate_structured_extraction(self, prompt: str) -> dict[str, Any]:
        """Run the prompt and parse the model output as a JSON object.

        Args:
            prompt: Structured extraction prompt

        Returns:
            Parsed JSON object

        Raises:
            EnhancementError: If the provider call fails
            ValueError: If the response is not a JSON object
        """
        try:
            response_text = self._complete(prompt)
        except Exception as e:
            raise EnhancementError(self.provider_name, str(e)) from e
        return parse_json_response(response_text)
