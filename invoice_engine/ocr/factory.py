"""Factory for creating text-acquisition services based on configuration.

Implements Factory Pattern for OCR provider selection. The "auto" strategy
tries the OCR.space API first and falls back to local Tesseract.
"""

import logging
from pathlib import Path
from typing import Protocol

from invoice_engine.extraction.schema import AcquisitionResult
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)


class TextAcquisitionService(Protocol):
    """Protocol for text-acquisition services."""

    provider_name: str

    def extract_text(self, path: Path) -> AcquisitionResult:
        """Extract text from a document."""
        ...

    def is_available(self) -> bool:
        """Check if the service is available."""
        ...


class FallbackTextAcquisition:
    """Tries a primary strategy and falls back to a secondary one on failure."""

    def __init__(
        self, primary: TextAcquisitionService, fallback: TextAcquisitionService
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.provider_name = f"{primary.provider_name}+{fallback.provider_name}"

    def is_available(self) -> bool:
        return self.primary.is_available() or self.fallback.is_available()

    def extract_text(self, path: Path) -> AcquisitionResult:
        """Extract text with the primary strategy, falling back on failure.

        Args:
            path: Path to the document

        Returns:
            The first successful result, else the fallback's failure with both errors
        """
        if self.primary.is_available():
            result = self.primary.extract_text(path)
            if result.success:
                return result
            primary_error = result.error
            logger.warning(
                f"{self.primary.provider_name} failed ({primary_error}); "
                f"falling back to {self.fallback.provider_name}"
            )
        else:
            primary_error = f"{self.primary.provider_name} not available"

        result = self.fallback.extract_text(path)
        if not result.success:
            result.error = f"{primary_error}; {result.error}"
        return result


def create_text_acquisition(settings: Settings) -> TextAcquisitionService:
    """Factory function to create the text-acquisition service.

    Args:
        settings: Application settings with ocr_provider field

    Returns:
        Configured text-acquisition service

    Raises:
        ValueError: If configured provider is unknown
    """
    provider = settings.ocr_provider

    if provider == "ocrspace":
        from invoice_engine.ocr.ocrspace_service import OCRSpaceService

        logger.info("Created text acquisition: ocrspace")
        return OCRSpaceService(settings)

    elif provider == "tesseract":
        from invoice_engine.ocr.service import TesseractService

        logger.info("Created text acquisition: tesseract")
        return TesseractService(settings)

    elif provider == "auto":
        from invoice_engine.ocr.ocrspace_service import OCRSpaceService
        from invoice_engine.ocr.service import TesseractService

        logger.info("Created text acquisition: ocrspace with tesseract fallback")
        return FallbackTextAcquisition(OCRSpaceService(settings), TesseractService(settings))

    else:
        available = ["ocrspace", "tesseract", "auto"]
        raise ValueError(f"Unknown OCR provider: '{provider}'. Available: {', '.join(available)}")
