"""Server-side text acquisition using the OCR.space API.

Besides the text, this strategy pre-parses the invoice with the heuristic
parser and reports a side-channel signal: an upstream confidence, whether the
source looks image-only and whether an AI pass is recommended.

See: https://ocr.space/ocrapi
"""

import logging
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoice_engine.extraction.schema import AcquisitionMetadata, AcquisitionResult
from invoice_engine.parsing.confidence import TRUSTED_THRESHOLD, heuristic_score
from invoice_engine.parsing.parser import parse_invoice_text
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)

# Shorter OCR output usually means a scan with little recognizable text
MIN_TEXT_LENGTH = 200
MIN_PARSED_FIELDS = 3

_FILE_TYPES = {
    ".pdf": "PDF",
    ".png": "PNG",
    ".jpg": "JPG",
    ".jpeg": "JPG",
    ".gif": "GIF",
    ".bmp": "BMP",
    ".tif": "TIF",
    ".tiff": "TIF",
}


def build_metadata(text: str) -> AcquisitionMetadata:
    """Compute side-channel metadata for acquired text.

    Args:
        text: Raw OCR text

    Returns:
        Metadata with the heuristic pre-parse and its confidence
    """
    parsed = parse_invoice_text(text)
    confidence = heuristic_score(parsed)
    is_image_only = len(text) < MIN_TEXT_LENGTH or confidence < TRUSTED_THRESHOLD
    return AcquisitionMetadata(
        is_image_only_pdf=is_image_only,
        requires_ai_enhancement=is_image_only or parsed.non_empty_count() < MIN_PARSED_FIELDS,
        confidence=confidence,
        parsed_data=parsed,
    )


def _error_message(payload: dict[str, Any]) -> str:
    message = payload.get("ErrorMessage") or "OCR processing failed"
    if isinstance(message, list):
        return "; ".join(str(part) for part in message)
    return str(message)


class OCRSpaceService:
    """Server-side OCR strategy backed by the OCR.space parse endpoint."""

    provider_name = "ocrspace"

    def __init__(self, settings: Settings) -> None:
        """Initialize OCR.space service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._client = httpx.Client(timeout=settings.ocrspace_timeout_seconds)

    def is_available(self) -> bool:
        """Check if an API key and endpoint are configured."""
        return bool(self.settings.ocrspace_api_key and self.settings.ocrspace_url)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _post_with_retry(self, path: Path) -> dict[str, Any]:
        """Upload the document to OCR.space, retrying on network errors.

        Raises:
            httpx.HTTPError: After all retry attempts exhausted or on non-2xx status
        """
        file_type = _FILE_TYPES.get(path.suffix.lower(), "PDF")
        with path.open("rb") as handle:
            response = self._client.post(
                self.settings.ocrspace_url,
                data={
                    "apikey": self.settings.ocrspace_api_key,
                    "language": self.settings.tesseract_language,
                    "filetype": file_type,
                    "detectOrientation": "true",
                    "isTable": "true",
                    "scale": "true",
                    "OCREngine": "2",
                },
                files={"file": (path.name, handle)},
            )
        response.raise_for_status()
        result: dict[str, Any] = response.json()
        return result

    def extract_text(self, path: Path) -> AcquisitionResult:
        """Extract text from a document and compute side-channel metadata.

        Args:
            path: Path to the document

        Returns:
            AcquisitionResult with text and metadata, or error information
        """
        try:
            if not path.exists():
                return AcquisitionResult(
                    text="",
                    success=False,
                    error=f"File not found: {path}",
                    provider=self.provider_name,
                )

            payload = self._post_with_retry(path)
            if payload.get("IsErroredOnProcessing"):
                return AcquisitionResult(
                    text="",
                    success=False,
                    error=_error_message(payload),
                    provider=self.provider_name,
                )

            results = payload.get("ParsedResults") or []
            text = "\n".join(result.get("ParsedText") or "" for result in results)
            if not text.strip():
                return AcquisitionResult(
                    text="",
                    success=False,
                    error="No text could be extracted from the document",
                    provider=self.provider_name,
                )

            logger.info(f"OCR.space extracted {len(text)} characters")
            metadata = build_metadata(text)
            logger.info(
                f"OCR.space metadata: confidence={metadata.confidence} "
                f"image_only={metadata.is_image_only_pdf} "
                f"requires_ai={metadata.requires_ai_enhancement}"
            )
            return AcquisitionResult(
                text=text,
                success=True,
                metadata=metadata,
                provider=self.provider_name,
            )

        except Exception as e:
            return AcquisitionResult(
                text="",
                success=False,
                error=f"OCR.space request failed: {str(e)}",
                provider=self.provider_name,
            )
