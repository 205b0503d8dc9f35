"""Local text acquisition using Tesseract.

Images are read with Pillow; PDFs are rasterized page by page with
pdf2image (Poppler) before recognition. This strategy produces text only,
without side-channel metadata.

Based on pytesseract documentation:
https://github.com/madmaze/pytesseract
"""

import logging
import os
import shutil
from pathlib import Path

import pytesseract
from pdf2image import convert_from_path
from PIL import Image

from invoice_engine.extraction.schema import AcquisitionResult
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)

PDF_DPI = 300
MAX_PDF_PAGES = 5


class TesseractService:
    """Client-side OCR strategy backed by the Tesseract engine."""

    provider_name = "tesseract"

    def __init__(self, settings: Settings) -> None:
        """Initialize Tesseract service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._configure_tesseract()

    def _configure_tesseract(self) -> None:
        """Configure Tesseract command path from environment.

        Allows overriding default Tesseract path via TESSERACT_CMD environment variable.
        """
        tesseract_cmd = os.getenv("TESSERACT_CMD")
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def is_available(self) -> bool:
        """Check if the tesseract binary can be found."""
        return shutil.which(pytesseract.pytesseract.tesseract_cmd) is not None

    def _load_pages(self, path: Path) -> list[Image.Image]:
        if path.suffix.lower() == ".pdf":
            return convert_from_path(str(path), dpi=PDF_DPI, first_page=1, last_page=MAX_PDF_PAGES)
        return [Image.open(path)]

    def extract_text(self, path: Path) -> AcquisitionResult:
        """Extract text from an image or PDF file.

        Args:
            path: Path to the document

        Returns:
            AcquisitionResult with extracted text or error information
        """
        try:
            if not path.exists():
                return AcquisitionResult(
                    text="",
                    success=False,
                    error=f"File not found: {path}",
                    provider=self.provider_name,
                )

            pages = self._load_pages(path)
            texts = [
                pytesseract.image_to_string(page, lang=self.settings.tesseract_language)
                for page in pages
            ]
            text = "\n".join(texts)
            logger.info(f"Tesseract extracted {len(text)} characters from {len(pages)} page(s)")

            if not text.strip():
                return AcquisitionResult(
                    text="",
                    success=False,
                    error="No text could be extracted from the document",
                    provider=self.provider_name,
                )
            return AcquisitionResult(text=text, success=True, provider=self.provider_name)

        except Exception as e:
            return AcquisitionResult(
                text="",
                success=False,
                error=f"OCR processing failed: {str(e)}",
                provider=self.provider_name,
            )
