"""In-process document store.

Used when object storage is disabled and in tests. Records are copied on the
way in and out so callers never share mutable state with the store.
"""

import threading

from invoice_engine.extraction.schema import Invoice, ProcessingLog
from invoice_engine.storage.base import DEFAULT_LOG_LIMIT


class InMemoryDocumentStore:
    """Thread-safe dictionary-backed document store."""

    def __init__(self) -> None:
        self._invoices: dict[str, Invoice] = {}
        self._logs: list[ProcessingLog] = []
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return True

    def health_check(self) -> bool:
        return True

    def save_invoice(self, invoice: Invoice) -> None:
        with self._lock:
            self._invoices[invoice.id] = invoice.model_copy(deep=True)

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            return invoice.model_copy(deep=True) if invoice else None

    def list_invoices(self) -> list[Invoice]:
        with self._lock:
            invoices = [invoice.model_copy(deep=True) for invoice in self._invoices.values()]
        return sorted(invoices, key=lambda invoice: invoice.upload_date, reverse=True)

    def append_log(self, entry: ProcessingLog) -> None:
        with self._lock:
            self._logs.append(entry.model_copy())

    def list_logs(
        self, invoice_id: str | None = None, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[ProcessingLog]:
        with self._lock:
            entries = list(reversed(self._logs))
        if invoice_id is not None:
            entries = [entry for entry in entries if entry.invoice_id == invoice_id]
        return [entry.model_copy() for entry in entries[:limit]]
