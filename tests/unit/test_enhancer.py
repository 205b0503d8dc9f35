"""Unit tests for the AI enhancement adapter.

Tests cover:
- Prompt construction
- Normalization of provider JSON
- Merge precedence
- Adapter no-op and failure semantics
"""

import json
from unittest.mock import MagicMock

import pytest

from invoice_engine.extraction.enhancer import (
    AIEnhancementAdapter,
    build_extraction_prompt,
    merge_fields,
    normalize_ai_fields,
)
from invoice_engine.extraction.schema import LINE_ITEM_TOLERANCE, ExtractedFields, LineItem
from invoice_engine.shared.config import Settings
from invoice_engine.shared.exceptions import EnhancementError


def _provider(payload: dict | None = None, available: bool = True) -> MagicMock:
    provider = MagicMock()
    provider.provider_name = "stub"
    provider.is_available.return_value = available
    provider.generate_structured_extraction.return_value = payload or {}
    return provider


@pytest.fixture
def settings() -> Settings:
    return Settings(ai_provider="openai", openai_api_key="sk-test")


class TestBuildExtractionPrompt:
    """Test prompt construction."""

    def test_contains_schema_and_text(self) -> None:
        prompt = build_extraction_prompt("Invoice #123 Total $5.00")

        for key in ("invoiceNumber", "date", "vendor", "totalAmount", "lineItems"):
            assert key in prompt
        for key in ("currency", "subtotal", "tax", "taxRate", "dueDate", "customerInfo"):
            assert key in prompt
        assert "Invoice #123 Total $5.00" in prompt
        assert "scanned" not in prompt

    def test_image_only_guidance(self) -> None:
        prompt = build_extraction_prompt("text", is_image_only=True)

        assert "scanned or image-only" in prompt
        assert "Amount Due" in prompt


class TestNormalizeAIFields:
    """Test post-parse normalization."""

    def test_full_payload(self) -> None:
        fields = normalize_ai_fields(
            {
                "invoiceNumber": "INV-7",
                "date": "01/15/2024",
                "vendor": "  ACME Inc  ",
                "totalAmount": "1,100.00",
                "currency": "eur",
                "subtotal": 1000,
                "tax": "100.00",
                "taxRate": 10,
                "dueDate": "February 15, 2024",
                "customerInfo": {"name": "Globex"},
                "lineItems": [
                    {"description": "Widget", "quantity": "2", "unitPrice": "500", "total": 1000}
                ],
            }
        )

        assert fields.invoice_number == "INV-7"
        assert fields.date == "2024-01-15"
        assert fields.vendor == "ACME Inc"
        assert fields.total_amount == 1100.0
        assert fields.currency == "EUR"
        assert fields.subtotal == 1000.0
        assert fields.tax == 100.0
        assert fields.tax_rate == "10"
        assert fields.due_date == "2024-02-15"
        assert fields.customer_info == {"name": "Globex"}
        assert fields.line_items == [
            LineItem(description="Widget", quantity=2, unit_price=500, total=1000)
        ]

    def test_unparseable_date_kept_raw(self) -> None:
        fields = normalize_ai_fields({"date": "sometime in spring"})

        assert fields.date == "sometime in spring"

    def test_missing_values_are_none(self) -> None:
        fields = normalize_ai_fields({"invoiceNumber": None, "totalAmount": "n/a"})

        assert fields.invoice_number is None
        assert fields.total_amount is None
        assert fields.line_items == []
        assert "currency" not in fields.model_fields_set

    def test_line_items_filtered(self) -> None:
        """Items need a description, a positive total and consistent arithmetic."""
        fields = normalize_ai_fields(
            {
                "lineItems": [
                    {"description": "", "quantity": 1, "unitPrice": 5, "total": 5},
                    {"description": "Free sample", "quantity": 1, "unitPrice": 0, "total": 0},
                    {"description": "Cable", "quantity": 4, "price": 2.5, "total": 10},
                    {"description": "Mismatch", "quantity": 2, "unitPrice": 5, "total": 99},
                    {"description": "Broken", "quantity": "abc", "unitPrice": 5, "total": 5},
                    "not an object",
                ]
            }
        )

        assert [item.description for item in fields.line_items] == ["Cable"]
        for item in fields.line_items:
            assert abs(item.total - item.quantity * item.unit_price) <= LINE_ITEM_TOLERANCE


class TestMergeFields:
    """Test merge precedence."""

    def test_ai_value_wins_when_non_empty(self) -> None:
        baseline = ExtractedFields(invoice_number="HEUR-1", vendor="Heuristic Co", total_amount=10)
        ai = ExtractedFields(invoice_number="AI-1", vendor=None, total_amount=12.5)

        merged = merge_fields(baseline, ai)

        assert merged.invoice_number == "AI-1"
        assert merged.vendor == "Heuristic Co"
        assert merged.total_amount == 12.5

    def test_empty_string_and_zero_keep_baseline(self) -> None:
        baseline = ExtractedFields(vendor="Heuristic Co", total_amount=10)
        ai = ExtractedFields(vendor="", total_amount=0)

        merged = merge_fields(baseline, ai)

        assert merged.vendor == "Heuristic Co"
        assert merged.total_amount == 10

    def test_line_items_replaced_only_when_ai_has_items(self) -> None:
        heuristic_items = [LineItem(description="Widget", quantity=1, unit_price=5, total=5)]
        ai_items = [LineItem(description="Gadget", quantity=2, unit_price=5, total=10)]
        baseline = ExtractedFields(line_items=heuristic_items)

        assert merge_fields(baseline, ExtractedFields()).line_items == heuristic_items
        assert merge_fields(baseline, ExtractedFields(line_items=ai_items)).line_items == ai_items

    def test_currency_only_overrides_when_reported(self) -> None:
        baseline = ExtractedFields(currency="EUR")

        assert merge_fields(baseline, ExtractedFields()).currency == "EUR"
        assert merge_fields(baseline, ExtractedFields(currency="GBP")).currency == "GBP"

    def test_baseline_not_mutated(self) -> None:
        baseline = ExtractedFields(invoice_number="HEUR-1")
        merge_fields(baseline, ExtractedFields(invoice_number="AI-1"))

        assert baseline.invoice_number == "HEUR-1"


class TestAIEnhancementAdapter:
    """Test adapter semantics."""

    def test_provider_none_returns_none(self) -> None:
        adapter = AIEnhancementAdapter(Settings(ai_provider="none"))

        assert adapter.is_enabled() is False
        assert adapter.provider_name == "none"
        assert adapter.enhance("Invoice #1 Total $5.00") is None

    def test_empty_text_returns_none(self, settings: Settings) -> None:
        provider = _provider()
        adapter = AIEnhancementAdapter(settings, provider=provider)

        assert adapter.enhance("   ") is None
        provider.generate_structured_extraction.assert_not_called()

    def test_missing_credentials_returns_none(self, settings: Settings) -> None:
        provider = _provider(available=False)
        adapter = AIEnhancementAdapter(settings, provider=provider)

        assert adapter.enhance("Invoice #1") is None
        provider.generate_structured_extraction.assert_not_called()

    def test_parse_failure_returns_none(self, settings: Settings) -> None:
        provider = _provider()
        provider.generate_structured_extraction.side_effect = json.JSONDecodeError("bad", "x", 0)
        adapter = AIEnhancementAdapter(settings, provider=provider)

        assert adapter.enhance("Invoice #1") is None

    def test_transport_failure_raises(self, settings: Settings) -> None:
        provider = _provider()
        provider.generate_structured_extraction.side_effect = EnhancementError("stub", "timeout")
        adapter = AIEnhancementAdapter(settings, provider=provider)

        with pytest.raises(EnhancementError):
            adapter.enhance("Invoice #1")

    def test_successful_enhancement(self, settings: Settings) -> None:
        provider = _provider({"invoiceNumber": "AI-42", "totalAmount": 99.5})
        adapter = AIEnhancementAdapter(settings, provider=provider)

        fields = adapter.enhance("Invoice AI-42 Total 99.50", is_image_only=True)

        assert fields is not None
        assert fields.invoice_number == "AI-42"
        assert fields.total_amount == 99.5
        prompt = provider.generate_structured_extraction.call_args.args[0]
        assert "image-only" in prompt

    def test_provider_created_from_settings(self, settings: Settings) -> None:
        adapter = AIEnhancementAdapter(settings)

        assert adapter.is_enabled() is True
        assert adapter.provider_name == "openai"
