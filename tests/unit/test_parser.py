"""Unit tests for the heuristic invoice parser."""

import pytest

from invoice_engine.extraction.schema import LINE_ITEM_TOLERANCE
from invoice_engine.parsing.confidence import score_confidence
from invoice_engine.parsing.parser import parse_invoice_text

SAMPLE_INVOICE = """ACME Supplies Inc.
123 Main Street
Invoice Number: INV-2024-001
Date: 01/15/2024
Widget 3 $10.00 $30.00
Gadget 2 $25.00 $50.00
Subtotal: $80.00
Tax (10%): $8.00
Total: $88.00
"""


@pytest.fixture
def parsed():
    return parse_invoice_text(SAMPLE_INVOICE)


def test_core_fields(parsed) -> None:
    """Invoice number, date and total are selected from labelled values."""
    assert parsed.invoice_number == "INV-2024-001"
    assert parsed.date == "2024-01-15"
    assert parsed.total_amount == 88.0
    assert parsed.vendor is not None
    assert parsed.vendor.startswith("ACME Supplies")


def test_summary_fields(parsed) -> None:
    assert parsed.currency == "USD"
    assert parsed.subtotal == 80.0
    assert parsed.tax == 8.0
    assert parsed.tax_rate == "10%"


def test_line_items(parsed) -> None:
    assert [item.description for item in parsed.line_items] == ["Widget", "Gadget"]
    for item in parsed.line_items:
        assert abs(item.total - item.quantity * item.unit_price) <= LINE_ITEM_TOLERANCE


def test_complete_invoice_confidence_is_capped(parsed) -> None:
    assert score_confidence(parsed).overall == 95


def test_short_example() -> None:
    fields = parse_invoice_text("Invoice Number: INV-2024-001 Total: $150.00")

    assert fields.invoice_number == "INV-2024-001"
    assert fields.total_amount == 150.0
    assert fields.line_items == []


def test_european_invoice() -> None:
    text = (
        "Invoice no: 84652373 Date of issue: 02/23/2021\n"
        "SUMMARY Net worth VAT Gross worth 211,77 21,18 232,95\n"
        "Total € 232,95"
    )
    fields = parse_invoice_text(text)

    assert fields.invoice_number == "84652373"
    assert fields.currency == "EUR"
    assert fields.total_amount == 232.95


def test_empty_text() -> None:
    fields = parse_invoice_text("")

    assert fields.non_empty_count() == 0
    assert fields.currency == "USD"


def test_out_of_window_date_is_dropped() -> None:
    """A year-first date outside 2000-2030 yields no date at all."""
    fields = parse_invoice_text("Invoice Date: 2031-01-02\nTotal: $10.00")

    assert fields.date is None
