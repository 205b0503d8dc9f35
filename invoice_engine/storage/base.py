"""Document store interface for invoices and processing logs."""

from typing import Protocol

from invoice_engine.extraction.schema import Invoice, ProcessingLog

DEFAULT_LOG_LIMIT = 100


class DocumentStore(Protocol):
    """Protocol for invoice and processing-log persistence.

    Implementations raise PersistenceError when the backend fails.
    """

    def save_invoice(self, invoice: Invoice) -> None:
        """Insert or replace an invoice record (last write wins)."""
        ...

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        """Fetch an invoice by id, or None if unknown."""
        ...

    def list_invoices(self) -> list[Invoice]:
        """List all invoices, newest upload first."""
        ...

    def append_log(self, entry: ProcessingLog) -> None:
        """Append a processing log entry."""
        ...

    def list_logs(
        self, invoice_id: str | None = None, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[ProcessingLog]:
        """List log entries, newest first, optionally for one invoice."""
        ...

    def is_available(self) -> bool:
        """Check if the backend is configured."""
        ...

    def health_check(self) -> bool:
        """Check if the backend is reachable."""
        ...
