"""Custom exceptions for the invoice engine.

Exception Hierarchy:
    InvoiceEngineError (base)
    ├── AcquisitionError
    ├── EnhancementError
    └── PersistenceError

Malformed extraction candidates are not errors: they are dropped by the
selectors and the line-item validator.
"""

from typing import Any


class InvoiceEngineError(Exception):
    """Base exception for all invoice engine errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class AcquisitionError(InvoiceEngineError):
    """Raised when no text can be obtained for a document."""

    def __init__(self, file_name: str, reason: str | None = None) -> None:
        message = f"Text acquisition failed for: {file_name}"
        super().__init__(message, {"file_name": file_name, "reason": reason})


class EnhancementError(InvoiceEngineError):
    """Raised when the AI provider call fails (transport or non-2xx response)."""

    def __init__(self, provider: str, reason: str | None = None) -> None:
        message = f"AI enhancement failed with provider '{provider}'"
        super().__init__(message, {"provider": provider, "reason": reason})


class PersistenceError(InvoiceEngineError):
    """Raised when the document store cannot persist or load a record.

    Attributes:
        invoice: In-memory invoice computed before the failure, if any.
    """

    def __init__(self, operation: str, reason: str | None = None, invoice: Any = None) -> None:
        message = f"Document store operation failed: {operation}"
        super().__init__(message, {"operation": operation, "reason": reason})
        self.invoice = invoice


__all__ = [
    "InvoiceEngineError",
    "AcquisitionError",
    "EnhancementError",
    "PersistenceError",
]
