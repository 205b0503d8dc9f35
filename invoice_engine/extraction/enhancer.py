"""AI enhancement of heuristic invoice extraction.

Builds the structured-extraction prompt, dispatches it to the configured
provider, normalizes the JSON it returns into ExtractedFields and merges the
result over the heuristic baseline.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from invoice_engine.extraction.base import ExtractionProvider
from invoice_engine.extraction.factory import create_extraction_provider
from invoice_engine.extraction.schema import ExtractedFields, LineItem
from invoice_engine.parsing.amounts import parse_amount
from invoice_engine.parsing.selectors import parse_date
from invoice_engine.shared.config import Settings

logger = logging.getLogger(__name__)

RESPONSE_SCHEMA = (
    '{"invoiceNumber": string|null, "date": string|null (YYYY-MM-DD), '
    '"vendor": string|null, "totalAmount": number|null, '
    '"lineItems": [{"description": string, "quantity": number, '
    '"unitPrice": number, "total": number}], '
    '"currency": string|null, "subtotal": number|null, "tax": number|null, '
    '"taxRate": string|null, "dueDate": string|null, "customerInfo": string|null}'
)

IMAGE_ONLY_GUIDANCE = """The text comes from OCR of a scanned or image-only document and may be noisy:
- The invoice number may follow markers such as "Invoice #", "Inv No", "No.", "Ref" or "Bill No"
- Dates may be written as MM/DD/YYYY, DD/MM/YYYY, "15 Jan 2024" or "January 15, 2024"
- The vendor name is usually one of the first lines at the top of the document
- The total may be labelled "Total", "Amount Due", "Balance Due", "Grand Total" or "Gross worth"
- Ignore OCR artifacts such as stray characters or broken words
"""


def build_extraction_prompt(ocr_text: str, is_image_only: bool = False) -> str:
    """Build the structured-extraction prompt.

    Args:
        ocr_text: Raw OCR text
        is_image_only: Add guidance for degraded OCR of scanned documents

    Returns:
        Formatted prompt string
    """
    guidance = f"\n{IMAGE_ONLY_GUIDANCE}" if is_image_only else ""
    return f"""Extract invoice information from the OCR text below and return ONLY a valid JSON object.

SCHEMA (required keys: invoiceNumber, date, vendor, totalAmount, lineItems; \
use null for missing values and [] when there are no line items):
{RESPONSE_SCHEMA}

INSTRUCTIONS:
- Convert dates to YYYY-MM-DD
- Convert European decimals: 211,77 -> 211.77
- Amounts are plain numbers without currency symbols
- currency is an ISO 4217 code such as USD or EUR
- Return ONLY JSON, no explanation
{guidance}
INVOICE TEXT:
{ocr_text}
"""


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    return parse_amount(str(value))


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_date(value: Any) -> str | None:
    text = _to_str(value)
    if text is None:
        return None
    return parse_date(text) or text


def _normalize_line_items(raw_items: Any) -> list[LineItem]:
    if not isinstance(raw_items, list):
        return []

    items: list[LineItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        description = _to_str(raw.get("description"))
        total = _to_float(raw.get("total")) or 0.0
        if not description or total <= 0:
            continue

        unit_price = raw.get("unitPrice", raw.get("price"))
        try:
            item = LineItem(
                description=description,
                quantity=_to_float(raw.get("quantity")) or 0.0,
                unit_price=_to_float(unit_price) or 0.0,
                total=total,
            )
        except ValidationError as e:
            logger.debug(f"Dropping AI line item {description!r}: {e.error_count()} errors")
            continue
        items.append(item)
    return items


def normalize_ai_fields(payload: dict[str, Any]) -> ExtractedFields:
    """Normalize a provider JSON object into ExtractedFields.

    Dates become ``YYYY-MM-DD`` when parseable and stay raw otherwise; amounts
    are parsed to floats; line items without a description or positive total,
    or whose arithmetic does not add up, are dropped.

    Args:
        payload: JSON object returned by the provider

    Returns:
        Normalized fields
    """
    values: dict[str, Any] = {
        "invoice_number": _to_str(payload.get("invoiceNumber")),
        "date": _normalize_date(payload.get("date")),
        "vendor": _to_str(payload.get("vendor")),
        "total_amount": _to_float(payload.get("totalAmount")),
        "subtotal": _to_float(payload.get("subtotal")),
        "tax": _to_float(payload.get("tax")),
        "tax_rate": _to_str(payload.get("taxRate")),
        "line_items": _normalize_line_items(payload.get("lineItems")),
        "due_date": _normalize_date(payload.get("dueDate")),
        "customer_info": payload.get("customerInfo") or None,
    }

    currency = _to_str(payload.get("currency"))
    if currency:
        # Only set when reported so the merge can tell it apart from the default
        values["currency"] = currency.upper()

    if not isinstance(values["customer_info"], str | dict):
        values["customer_info"] = None

    return ExtractedFields(**values)


def merge_fields(baseline: ExtractedFields, ai: ExtractedFields) -> ExtractedFields:
    """Merge AI fields over the baseline.

    Each AI value wins when it is non-empty; otherwise the baseline value is
    kept. Line items are replaced wholesale only when the AI list is
    non-empty.

    Args:
        baseline: Heuristic (or side-channel) fields
        ai: Normalized AI fields

    Returns:
        Merged fields
    """
    merged = baseline.model_copy(deep=True)
    for name in (
        "invoice_number",
        "date",
        "vendor",
        "total_amount",
        "subtotal",
        "tax",
        "tax_rate",
        "due_date",
        "customer_info",
    ):
        value = getattr(ai, name)
        if value:
            setattr(merged, name, value)

    if "currency" in ai.model_fields_set and ai.currency:
        merged.currency = ai.currency

    if ai.line_items:
        merged.line_items = [item.model_copy() for item in ai.line_items]

    return merged


class AIEnhancementAdapter:
    """Runs the optional AI pass over OCR text.

    Returns None whenever enhancement is not possible (no provider, empty
    text, missing credentials, unparseable response). Transport failures are
    raised as EnhancementError for the caller to log.
    """

    def __init__(self, settings: Settings, provider: ExtractionProvider | None = None) -> None:
        """Initialize the adapter.

        Args:
            settings: Application settings
            provider: Explicit provider; created from settings.ai_provider if omitted
        """
        self.settings = settings
        if provider is None and settings.ai_provider != "none":
            provider = create_extraction_provider(settings)
        self._provider = provider

    @property
    def provider_name(self) -> str:
        if self._provider is None:
            return "none"
        return self._provider.provider_name

    def is_enabled(self) -> bool:
        """Check if an AI provider is configured (credentials may still be missing)."""
        return self._provider is not None

    def enhance(self, ocr_text: str, is_image_only: bool = False) -> ExtractedFields | None:
        """Extract invoice fields with the configured AI provider.

        Args:
            ocr_text: Raw OCR text
            is_image_only: Source is a scan; adds degraded-OCR guidance to the prompt

        Returns:
            Normalized AI fields, or None if enhancement is unavailable

        Raises:
            EnhancementError: On provider transport failure or non-2xx response
        """
        if self._provider is None:
            return None
        if not ocr_text or not ocr_text.strip():
            logger.debug("Skipping AI enhancement: empty OCR text")
            return None
        if not self._provider.is_available():
            logger.warning(
                f"AI provider '{self.provider_name}' is not configured; skipping enhancement"
            )
            return None

        prompt = build_extraction_prompt(ocr_text, is_image_only)
        try:
            payload = self._provider.generate_structured_extraction(prompt)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to parse JSON from {self.provider_name} response: {e}")
            return None

        fields = normalize_ai_fields(payload)
        logger.info(
            f"AI enhancement via {self.provider_name}: "
            f"{fields.non_empty_count()} fields, {len(fields.line_items)} line items"
        )
        return fields
