"""Unit tests for the invoice processing pipeline.

Tests cover:
- Heuristic-only processing when no AI provider is configured
- Side-channel baseline and trusted confidence
- AI enhancement decisions, merge and failure recovery
- Failure, timeout and cancellation handling
- Persistence failures
"""

import asyncio
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from invoice_engine.extraction.enhancer import AIEnhancementAdapter
from invoice_engine.extraction.schema import (
    AcquisitionMetadata,
    AcquisitionResult,
    Confidence,
    ExtractedFields,
    Invoice,
    InvoiceStatus,
    LogType,
)
from invoice_engine.parsing.confidence import score_confidence
from invoice_engine.parsing.parser import parse_invoice_text
from invoice_engine.pipeline.aggregator import InvoiceAggregator, create_aggregator
from invoice_engine.shared.config import Settings
from invoice_engine.shared.exceptions import EnhancementError, PersistenceError
from invoice_engine.storage.memory import InMemoryDocumentStore

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

SHORT_INVOICE = "Invoice Number: INV-2024-001 Total: $150.00"


def _acquirer(result: AcquisitionResult) -> MagicMock:
    acquirer = MagicMock()
    acquirer.provider_name = "stub-ocr"
    acquirer.extract_text.return_value = result
    return acquirer


def _provider(payload: dict) -> MagicMock:
    provider = MagicMock()
    provider.provider_name = "stub-ai"
    provider.is_available.return_value = True
    provider.generate_structured_extraction.return_value = payload
    return provider


@pytest.fixture
def settings() -> Settings:
    return Settings(ai_provider="none", storage_enabled=False, processing_timeout_seconds=5)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def file_path(tmp_path: Path) -> Path:
    return tmp_path / "invoice.pdf"


def _aggregator(
    settings: Settings,
    store: InMemoryDocumentStore,
    result: AcquisitionResult,
    provider: MagicMock | None = None,
) -> InvoiceAggregator:
    return InvoiceAggregator(
        settings=settings,
        acquirer=_acquirer(result),
        store=store,
        enhancer=AIEnhancementAdapter(settings, provider=provider),
    )


class TestHeuristicProcessing:
    """Test processing without an AI provider."""

    @pytest.mark.asyncio
    async def test_result_equals_heuristic_baseline(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text=SHORT_INVOICE, success=True)
        )

        invoice = await aggregator.process(file_path)

        expected = parse_invoice_text(SHORT_INVOICE)
        assert invoice.status == InvoiceStatus.COMPLETED
        assert invoice.extracted_fields == expected
        assert invoice.confidence == score_confidence(expected)
        assert invoice.ocr_text == SHORT_INVOICE
        assert invoice.file_name == "invoice.pdf"

    @pytest.mark.asyncio
    async def test_completed_invoice_is_stored_and_logged(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text=SAMPLE_INVOICE, success=True)
        )

        invoice = await aggregator.process(file_path, file_name="acme.pdf")

        stored = store.get_invoice(invoice.id)
        assert stored is not None
        assert stored.status == InvoiceStatus.COMPLETED
        assert stored.file_name == "acme.pdf"
        assert invoice.confidence.overall == 95

        logs = store.list_logs(invoice_id=invoice.id)
        assert logs[0].message == "Processing completed with 95% confidence"
        assert logs[0].type == LogType.SUCCESS
        assert logs[-1].message == "Processing started for acme.pdf"

    @pytest.mark.asyncio
    async def test_uses_existing_invoice(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text=SAMPLE_INVOICE, success=True)
        )
        created = aggregator.create_invoice("upload.pdf")

        invoice = await aggregator.process(file_path, invoice=created)

        assert invoice.id == created.id
        assert len(store.list_invoices()) == 1

    @pytest.mark.asyncio
    async def test_log_store_failure_does_not_interrupt(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text=SAMPLE_INVOICE, success=True)
        )

        with patch.object(
            store, "append_log", side_effect=PersistenceError("append_log", "down")
        ):
            invoice = await aggregator.process(file_path)

        assert invoice.status == InvoiceStatus.COMPLETED


class TestSideChannelBaseline:
    """Test use of acquisition metadata."""

    def test_trusted_side_channel_adopted(
        self, settings: Settings, store: InMemoryDocumentStore
    ) -> None:
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))
        parsed = ExtractedFields(
            invoice_number="INV-9", date="2024-03-01", vendor="Side Channel Ltd"
        )
        metadata = AcquisitionMetadata(confidence=85, parsed_data=parsed)

        fields, confidence, upstream = aggregator.build_baseline(SAMPLE_INVOICE, metadata)

        assert fields == parsed
        assert upstream == 85
        assert confidence.overall == 85
        assert confidence.fields["invoice_number"] == 90
        assert confidence.fields["total_amount"] == 0

    def test_sparse_side_channel_ignored(
        self, settings: Settings, store: InMemoryDocumentStore
    ) -> None:
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))
        metadata = AcquisitionMetadata(
            confidence=40, parsed_data=ExtractedFields(invoice_number="INV-9", vendor="X Ltd")
        )

        fields, confidence, upstream = aggregator.build_baseline(SAMPLE_INVOICE, metadata)

        assert fields == parse_invoice_text(SAMPLE_INVOICE)
        assert upstream is None
        assert confidence.overall == 95


class TestShouldEnhance:
    """Test the AI pass decision."""

    @pytest.mark.parametrize(
        "metadata,overall,expected",
        [
            (None, 95, False),
            (None, 89, True),
            (AcquisitionMetadata(requires_ai_enhancement=True), 95, True),
            (AcquisitionMetadata(is_image_only_pdf=True), 95, True),
            (AcquisitionMetadata(confidence=95), 90, False),
        ],
    )
    def test_with_provider(
        self,
        settings: Settings,
        store: InMemoryDocumentStore,
        metadata: AcquisitionMetadata | None,
        overall: int,
        expected: bool,
    ) -> None:
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text="", success=True), provider=_provider({})
        )

        assert aggregator.should_enhance(metadata, Confidence(overall=overall)) is expected

    def test_never_without_provider(
        self, settings: Settings, store: InMemoryDocumentStore
    ) -> None:
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))
        metadata = AcquisitionMetadata(requires_ai_enhancement=True, is_image_only_pdf=True)

        assert aggregator.should_enhance(metadata, Confidence(overall=0)) is False


class TestEnhancement:
    """Test the AI pass inside the pipeline."""

    @pytest.mark.asyncio
    async def test_ai_fields_merged(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        provider = _provider(
            {
                "invoiceNumber": "INV-2024-001",
                "vendor": "ACME Supplies Inc",
                "date": "01/15/2024",
                "totalAmount": "150.00",
            }
        )
        aggregator = _aggregator(
            settings,
            store,
            AcquisitionResult(text=SHORT_INVOICE, success=True),
            provider=provider,
        )

        invoice = await aggregator.process(file_path)

        fields = invoice.extracted_fields
        assert fields is not None
        assert fields.vendor == "ACME Supplies Inc"
        assert fields.date == "2024-01-15"
        assert fields.total_amount == 150.0
        assert invoice.confidence.overall == 85
        messages = [entry.message for entry in store.list_logs(invoice_id=invoice.id)]
        assert "AI enhancement applied" in messages

    @pytest.mark.asyncio
    async def test_image_only_hint_passed_to_prompt(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        provider = _provider({"invoiceNumber": "INV-1"})
        metadata = AcquisitionMetadata(is_image_only_pdf=True, requires_ai_enhancement=True)
        aggregator = _aggregator(
            settings,
            store,
            AcquisitionResult(text=SHORT_INVOICE, success=True, metadata=metadata),
            provider=provider,
        )

        await aggregator.process(file_path)

        prompt = provider.generate_structured_extraction.call_args.args[0]
        assert "scanned or image-only" in prompt

    @pytest.mark.asyncio
    async def test_enhancement_error_falls_back_to_baseline(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        provider = _provider({})
        provider.generate_structured_extraction.side_effect = EnhancementError(
            "stub-ai", "connection refused"
        )
        aggregator = _aggregator(
            settings,
            store,
            AcquisitionResult(text=SHORT_INVOICE, success=True),
            provider=provider,
        )

        invoice = await aggregator.process(file_path)

        assert invoice.status == InvoiceStatus.COMPLETED
        assert invoice.extracted_fields == parse_invoice_text(SHORT_INVOICE)
        warnings = [
            entry
            for entry in store.list_logs(invoice_id=invoice.id)
            if entry.type == LogType.WARNING
        ]
        assert len(warnings) == 1

    @pytest.mark.asyncio
    async def test_unparseable_response_falls_back_to_baseline(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        provider = _provider({})
        provider.generate_structured_extraction.side_effect = ValueError("not JSON")
        aggregator = _aggregator(
            settings,
            store,
            AcquisitionResult(text=SHORT_INVOICE, success=True),
            provider=provider,
        )

        invoice = await aggregator.process(file_path)

        assert invoice.status == InvoiceStatus.COMPLETED
        assert invoice.extracted_fields == parse_invoice_text(SHORT_INVOICE)


class TestFailures:
    """Test terminal failure handling."""

    @pytest.mark.asyncio
    async def test_acquisition_failure(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(
            settings,
            store,
            AcquisitionResult(text="", success=False, error="OCR processing failed: bad file"),
        )

        invoice = await aggregator.process(file_path)

        assert invoice.status == InvoiceStatus.FAILED
        assert invoice.extracted_fields is None
        assert invoice.confidence.overall == 0
        assert "Text acquisition failed" in (invoice.error or "")
        stored = store.get_invoice(invoice.id)
        assert stored is not None
        assert stored.status == InvoiceStatus.FAILED
        assert store.list_logs(invoice_id=invoice.id)[0].type == LogType.ERROR

    @pytest.mark.asyncio
    async def test_unexpected_error(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))
        aggregator.acquirer.extract_text.side_effect = RuntimeError("boom")

        invoice = await aggregator.process(file_path)

        assert invoice.status == InvoiceStatus.FAILED
        assert invoice.error == "boom"

    @pytest.mark.asyncio
    async def test_timeout(self, store: InMemoryDocumentStore, file_path: Path) -> None:
        settings = Settings(ai_provider="none", processing_timeout_seconds=0.05)
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))

        def slow_extract(path: Path) -> AcquisitionResult:
            time.sleep(0.5)
            return AcquisitionResult(text=SAMPLE_INVOICE, success=True)

        aggregator.acquirer.extract_text.side_effect = slow_extract

        invoice = await aggregator.process(file_path)

        assert invoice.status == InvoiceStatus.FAILED
        assert invoice.extracted_fields is None
        assert "timed out" in (invoice.error or "")

    @pytest.mark.asyncio
    async def test_cancellation_persists_failed_state(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))

        def slow_extract(path: Path) -> AcquisitionResult:
            time.sleep(0.5)
            return AcquisitionResult(text=SAMPLE_INVOICE, success=True)

        aggregator.acquirer.extract_text.side_effect = slow_extract
        created = aggregator.create_invoice("invoice.pdf")

        task = asyncio.create_task(aggregator.process(file_path, invoice=created))
        await asyncio.sleep(0.1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        stored = store.get_invoice(created.id)
        assert stored is not None
        assert stored.status == InvoiceStatus.FAILED
        assert stored.error == "Processing cancelled"

    @pytest.mark.asyncio
    async def test_persistence_failure_carries_invoice(
        self, settings: Settings, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text=SAMPLE_INVOICE, success=True)
        )
        created = aggregator.create_invoice("invoice.pdf")

        with patch.object(
            store, "save_invoice", side_effect=PersistenceError("save_invoice", "down")
        ):
            with pytest.raises(PersistenceError) as exc_info:
                await aggregator.process(file_path, invoice=created)

        computed = exc_info.value.invoice
        assert computed is not None
        assert computed.status == InvoiceStatus.COMPLETED
        assert computed.confidence.overall == 95


class SlowSaveStore(InMemoryDocumentStore):
    """In-memory store whose invoice writes block once enabled."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay
        self.slow = False

    def save_invoice(self, invoice: Invoice) -> None:
        if self.slow:
            time.sleep(self.delay)
        super().save_invoice(invoice)


class TestConcurrency:
    """Test that pipelines do not block each other or leak logs."""

    @pytest.mark.asyncio
    async def test_slow_store_does_not_serialize_pipelines(
        self, settings: Settings, file_path: Path
    ) -> None:
        store = SlowSaveStore(delay=0.5)
        aggregator = _aggregator(
            settings, store, AcquisitionResult(text=SAMPLE_INVOICE, success=True)
        )
        first = aggregator.create_invoice("first.pdf")
        second = aggregator.create_invoice("second.pdf")
        store.slow = True

        start = time.perf_counter()
        results = await asyncio.gather(
            aggregator.process(file_path, invoice=first),
            aggregator.process(file_path, invoice=second),
        )
        elapsed = time.perf_counter() - start

        assert [invoice.status for invoice in results] == [InvoiceStatus.COMPLETED] * 2
        assert elapsed < 0.9

    @pytest.mark.asyncio
    async def test_timed_out_run_stops_logging(
        self, store: InMemoryDocumentStore, file_path: Path
    ) -> None:
        settings = Settings(ai_provider="none", processing_timeout_seconds=0.05)
        aggregator = _aggregator(settings, store, AcquisitionResult(text="", success=True))

        def slow_extract(path: Path) -> AcquisitionResult:
            time.sleep(0.3)
            return AcquisitionResult(text=SAMPLE_INVOICE, success=True)

        aggregator.acquirer.extract_text.side_effect = slow_extract

        invoice = await aggregator.process(file_path)
        # Let the abandoned worker thread finish
        await asyncio.sleep(0.5)

        messages = [entry.message for entry in store.list_logs(invoice_id=invoice.id)]
        assert messages[0].startswith("Processing failed: Processing timed out")
        assert not any(message.startswith("Extracted") for message in messages)
        stored = store.get_invoice(invoice.id)
        assert stored is not None
        assert stored.status == InvoiceStatus.FAILED


def test_create_aggregator_defaults() -> None:
    """Factory wires in-memory storage and no AI provider by default."""
    aggregator = create_aggregator(Settings(ai_provider="none", storage_enabled=False))

    assert isinstance(aggregator.store, InMemoryDocumentStore)
    assert aggregator.enhancer.is_enabled() is False
