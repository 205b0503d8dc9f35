"""Invoice processing pipeline.

Drives one uploaded document through text acquisition, heuristic parsing,
the optional AI pass and persistence. An invoice moves from ``processing``
to either ``completed`` or ``failed``; a failed invoice never carries
extracted fields.

Blocking collaborators (OCR, AI providers, object storage) run in worker
threads so that many invoices can be processed concurrently by one event
loop.
"""

import asyncio
import logging
import threading
import time
from datetime import UTC, datetime
from pathlib import Path

from invoice_engine.extraction.enhancer import AIEnhancementAdapter, merge_fields
from invoice_engine.extraction.schema import (
    AcquisitionMetadata,
    AcquisitionResult,
    Confidence,
    ExtractedFields,
    Invoice,
    InvoiceStatus,
    LogType,
    ProcessingLog,
)
from invoice_engine.ocr.factory import TextAcquisitionService, create_text_acquisition
from invoice_engine.parsing.confidence import is_trusted, score_confidence
from invoice_engine.parsing.parser import parse_invoice_text
from invoice_engine.shared import metrics
from invoice_engine.shared.config import Settings
from invoice_engine.shared.exceptions import (
    AcquisitionError,
    EnhancementError,
    PersistenceError,
)
from invoice_engine.storage.base import DocumentStore
from invoice_engine.storage.factory import create_document_store

logger = logging.getLogger(__name__)

# Below this overall confidence the AI pass is attempted even without a side-channel request
ENHANCEMENT_CONFIDENCE_THRESHOLD = 90
MIN_SIDE_CHANNEL_FIELDS = 3


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InvoiceAggregator:
    """Orchestrates the extraction pipeline for uploaded invoices."""

    def __init__(
        self,
        settings: Settings,
        acquirer: TextAcquisitionService,
        store: DocumentStore,
        enhancer: AIEnhancementAdapter,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings
            acquirer: Text-acquisition strategy
            store: Document store for invoices and processing logs
            enhancer: AI enhancement adapter
        """
        self.settings = settings
        self.acquirer = acquirer
        self.store = store
        self.enhancer = enhancer

    def log(
        self, message: str, log_type: LogType = LogType.INFO, invoice_id: str | None = None
    ) -> None:
        """Append a user-facing processing log entry.

        A store failure here is reported but does not interrupt processing.
        """
        try:
            self.store.append_log(
                ProcessingLog(message=message, type=log_type, invoice_id=invoice_id)
            )
        except PersistenceError as e:
            logger.warning(f"Could not append processing log for {invoice_id}: {e}")

    def _step_log(
        self,
        message: str,
        log_type: LogType,
        invoice_id: str,
        abandoned: threading.Event | None,
    ) -> None:
        # Worker threads of timed-out or cancelled runs stop logging
        if abandoned is not None and abandoned.is_set():
            logger.debug(f"Dropping log for abandoned invoice {invoice_id}: {message}")
            return
        self.log(message, log_type, invoice_id)

    def create_invoice(self, file_name: str) -> Invoice:
        """Create and persist a new invoice in the processing state.

        Raises:
            PersistenceError: If the invoice cannot be stored
        """
        invoice = Invoice(file_name=file_name)
        self.store.save_invoice(invoice)
        logger.info(f"Created invoice {invoice.id} for {file_name}")
        self.log(f"Processing started for {file_name}", LogType.INFO, invoice.id)
        return invoice

    def acquire_text(self, file_path: Path, file_name: str) -> AcquisitionResult:
        """Obtain OCR text for a document.

        Raises:
            AcquisitionError: If no text could be obtained
        """
        result = self.acquirer.extract_text(file_path)
        if not result.success or not result.text.strip():
            raise AcquisitionError(file_name, result.error or "no text extracted")
        return result

    def build_baseline(
        self, text: str, metadata: AcquisitionMetadata | None
    ) -> tuple[ExtractedFields, Confidence, int | None]:
        """Build the pre-AI field set and its confidence.

        A side-channel parse with at least three populated fields replaces the
        heuristic parse wholesale. A side-channel confidence of 70 or more is
        reported as-is instead of the heuristic score.

        Args:
            text: OCR text
            metadata: Optional side-channel metadata from text acquisition

        Returns:
            Tuple of (fields, confidence, trusted upstream confidence or None)
        """
        fields = parse_invoice_text(text)

        upstream: int | None = None
        if metadata is not None:
            parsed = metadata.parsed_data
            if parsed is not None and parsed.non_empty_count() >= MIN_SIDE_CHANNEL_FIELDS:
                logger.info("Using side-channel parse as baseline")
                fields = parsed.model_copy(deep=True)
            if is_trusted(metadata.confidence):
                upstream = metadata.confidence

        return fields, score_confidence(fields, upstream), upstream

    def should_enhance(
        self, metadata: AcquisitionMetadata | None, confidence: Confidence
    ) -> bool:
        """Decide whether to run the AI pass."""
        if not self.enhancer.is_enabled():
            return False
        if metadata is not None and (
            metadata.requires_ai_enhancement or metadata.is_image_only_pdf
        ):
            return True
        return confidence.overall < ENHANCEMENT_CONFIDENCE_THRESHOLD

    def enhance(
        self,
        invoice_id: str,
        text: str,
        fields: ExtractedFields,
        is_image_only: bool,
        abandoned: threading.Event | None = None,
    ) -> ExtractedFields:
        """Run the AI pass and merge it over the baseline.

        Enhancement failures are logged and the baseline is returned unchanged.
        Processing logs are suppressed once ``abandoned`` is set.
        """
        provider = self.enhancer.provider_name
        self._step_log(
            f"Running AI enhancement with {provider}", LogType.INFO, invoice_id, abandoned
        )
        try:
            ai_fields = self.enhancer.enhance(text, is_image_only=is_image_only)
        except EnhancementError as e:
            logger.warning(f"AI enhancement failed for {invoice_id}: {e}")
            metrics.ai_enhancements_total.labels(provider=provider, status="failed").inc()
            self._step_log(
                "AI enhancement failed; using heuristic extraction",
                LogType.WARNING,
                invoice_id,
                abandoned,
            )
            return fields

        if ai_fields is None:
            metrics.ai_enhancements_total.labels(provider=provider, status="empty").inc()
            self._step_log(
                "AI enhancement unavailable; using heuristic extraction",
                LogType.WARNING,
                invoice_id,
                abandoned,
            )
            return fields

        metrics.ai_enhancements_total.labels(provider=provider, status="applied").inc()
        self._step_log("AI enhancement applied", LogType.SUCCESS, invoice_id, abandoned)
        return merge_fields(fields, ai_fields)

    def _run(
        self, invoice: Invoice, file_path: Path, abandoned: threading.Event | None = None
    ) -> Invoice:
        self._step_log("Extracting text", LogType.INFO, invoice.id, abandoned)
        result = self.acquire_text(file_path, invoice.file_name)
        self._step_log(
            f"Extracted {len(result.text)} characters via {result.provider or 'ocr'}",
            LogType.SUCCESS,
            invoice.id,
            abandoned,
        )

        metadata = result.metadata
        fields, confidence, upstream = self.build_baseline(result.text, metadata)

        abandoned_now = abandoned is not None and abandoned.is_set()
        if not abandoned_now and self.should_enhance(metadata, confidence):
            is_image_only = metadata.is_image_only_pdf if metadata is not None else False
            fields = self.enhance(invoice.id, result.text, fields, is_image_only, abandoned)
            confidence = score_confidence(fields, upstream)

        return invoice.model_copy(
            update={
                "status": InvoiceStatus.COMPLETED,
                "extracted_fields": fields,
                "confidence": confidence,
                "ocr_text": result.text,
                "error": None,
                "updated_at": _utcnow(),
            }
        )

    def _fail(self, invoice: Invoice, reason: str) -> Invoice:
        failed = invoice.model_copy(
            update={
                "status": InvoiceStatus.FAILED,
                "extracted_fields": None,
                "confidence": Confidence(),
                "error": reason,
                "updated_at": _utcnow(),
            }
        )
        metrics.invoices_processed_total.labels(status="failed").inc()
        self.log(f"Processing failed: {reason}", LogType.ERROR, invoice.id)
        self._save(failed)
        return failed

    def _complete(self, completed: Invoice) -> None:
        self._save(completed)
        metrics.invoices_processed_total.labels(status="completed").inc()
        metrics.extraction_confidence.observe(completed.confidence.overall)
        self.log(
            f"Processing completed with {completed.confidence.overall}% confidence",
            LogType.SUCCESS,
            completed.id,
        )
        logger.info(f"Invoice {completed.id} completed: confidence={completed.confidence.overall}")

    def _save(self, invoice: Invoice) -> None:
        try:
            self.store.save_invoice(invoice)
        except PersistenceError as e:
            e.invoice = invoice
            raise

    async def process(
        self,
        file_path: Path,
        file_name: str | None = None,
        invoice: Invoice | None = None,
    ) -> Invoice:
        """Process a document into a completed or failed invoice.

        Every store access runs in a worker thread, so a slow or retrying
        document store never stalls other invoices on the event loop.

        Args:
            file_path: Path to the uploaded document
            file_name: Original file name (defaults to the path's name)
            invoice: Invoice already created for this upload, if any

        Returns:
            The terminal invoice (completed or failed)

        Raises:
            PersistenceError: If the terminal invoice cannot be stored; the
                computed invoice is available as ``error.invoice``
            asyncio.CancelledError: After the invoice has been stored as failed
        """
        if invoice is None:
            invoice = await asyncio.to_thread(self.create_invoice, file_name or file_path.name)

        timeout = self.settings.processing_timeout_seconds
        abandoned = threading.Event()
        start_time = time.perf_counter()
        try:
            completed = await asyncio.wait_for(
                asyncio.to_thread(self._run, invoice, file_path, abandoned), timeout=timeout
            )
        except asyncio.TimeoutError:
            abandoned.set()
            logger.error(f"Processing of invoice {invoice.id} timed out after {timeout}s")
            return await asyncio.to_thread(
                self._fail, invoice, f"Processing timed out after {timeout:g} seconds"
            )
        except asyncio.CancelledError:
            abandoned.set()
            logger.warning(f"Processing of invoice {invoice.id} was cancelled")
            # Shielded so a second cancellation cannot interrupt storing the failed state
            await asyncio.shield(asyncio.to_thread(self._fail, invoice, "Processing cancelled"))
            raise
        except Exception as e:
            logger.exception(f"Processing of invoice {invoice.id} failed")
            return await asyncio.to_thread(self._fail, invoice, str(e))
        finally:
            metrics.invoice_processing_duration_seconds.observe(time.perf_counter() - start_time)

        await asyncio.to_thread(self._complete, completed)
        return completed


def create_aggregator(settings: Settings) -> InvoiceAggregator:
    """Wire the pipeline from configuration.

    Args:
        settings: Application settings

    Returns:
        InvoiceAggregator with configured acquisition, storage and AI adapter
    """
    return InvoiceAggregator(
        settings=settings,
        acquirer=create_text_acquisition(settings),
        store=create_document_store(settings),
        enhancer=AIEnhancementAdapter(settings),
    )
