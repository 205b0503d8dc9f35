"""Heuristic invoice parser.

Produces the baseline ExtractedFields from raw OCR text without any AI
assistance: candidate generation, per-field selection, line items and the
summary amounts.
"""

import logging

from invoice_engine.extraction.schema import ExtractedFields, ExtractionCandidate, FieldType
from invoice_engine.parsing.amounts import (
    detect_currency,
    extract_subtotal,
    extract_tax,
    extract_tax_rate,
)
from invoice_engine.parsing.candidates import clean_text, extract_candidates, patterns_for
from invoice_engine.parsing.line_items import extract_line_items
from invoice_engine.parsing.selectors import (
    select_best_date,
    select_best_invoice_number,
    select_best_total,
    select_best_vendor,
)

logger = logging.getLogger(__name__)


def parse_invoice_text(text: str) -> ExtractedFields:
    """Parse OCR text into heuristic baseline fields.

    Args:
        text: Raw OCR text

    Returns:
        ExtractedFields with every field the heuristics could find
    """
    cleaned = clean_text(text)

    def candidates(field_type: FieldType) -> list[ExtractionCandidate]:
        return extract_candidates(cleaned, patterns_for(field_type), field_type)

    fields = ExtractedFields(
        invoice_number=select_best_invoice_number(candidates(FieldType.INVOICE_NUMBER)),
        date=select_best_date(candidates(FieldType.DATE)),
        vendor=select_best_vendor(candidates(FieldType.VENDOR)),
        total_amount=select_best_total(candidates(FieldType.TOTAL), text_length=len(cleaned)),
        currency=detect_currency(text),
        subtotal=extract_subtotal(cleaned),
        tax=extract_tax(cleaned),
        tax_rate=extract_tax_rate(cleaned),
        line_items=extract_line_items(text),
    )

    logger.info(
        f"Heuristic parse: invoice_number={fields.invoice_number!r} date={fields.date!r} "
        f"vendor={fields.vendor!r} total={fields.total_amount!r} "
        f"line_items={len(fields.line_items)}"
    )
    return fields
