"""Invoice data models for structured extraction.

Covers the ephemeral extraction candidates, the extracted field set with its
line items, the confidence model and the persisted invoice and log records.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

# Maximum allowed difference between a line total and quantity * unit price
LINE_ITEM_TOLERANCE = 0.02


class FieldType(str, Enum):
    """Field a candidate value is hypothesized to represent."""

    INVOICE_NUMBER = "invoice_number"
    DATE = "date"
    VENDOR = "vendor"
    TOTAL = "total"


class InvoiceStatus(str, Enum):
    """Lifecycle state of an invoice."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LogType(str, Enum):
    """Severity of a user-facing processing log entry."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ExtractionCandidate(BaseModel):
    """A regex match hypothesized to represent a field value.

    Attributes:
        value: Captured value (stripped)
        full_match: Entire matched substring, used for context scoring
        position: Character offset of the match in the scanned text
        field_type: Field the candidate was extracted for
    """

    value: str
    full_match: str
    position: int
    field_type: FieldType


class LineItem(BaseModel):
    """A single validated invoice row."""

    description: str = Field(..., min_length=1, description="Item description")
    quantity: float = Field(..., gt=0, le=1000, description="Quantity ordered")
    unit_price: float = Field(..., gt=0, le=10000, description="Price per unit")
    total: float = Field(..., gt=0, le=50000, description="Line total")

    @model_validator(mode="after")
    def _check_arithmetic(self) -> "LineItem":
        if abs(self.total - self.quantity * self.unit_price) > LINE_ITEM_TOLERANCE:
            raise ValueError(
                f"line total {self.total} does not match "
                f"{self.quantity} x {self.unit_price}"
            )
        return self


class ExtractedFields(BaseModel):
    """Structured invoice fields extracted from OCR text."""

    invoice_number: str | None = Field(None, description="Invoice identifier")
    date: str | None = Field(None, description="Invoice date (YYYY-MM-DD)")
    vendor: str | None = Field(None, description="Vendor/company name")
    total_amount: float | None = Field(None, description="Total amount including tax")
    currency: str = Field("USD", description="Currency code (ISO 4217)")
    subtotal: float | None = Field(None, description="Subtotal before tax")
    tax: float | None = Field(None, description="Tax amount")
    tax_rate: str | None = Field(None, description="Tax rate as printed, e.g. '10%'")
    line_items: list[LineItem] = Field(default_factory=list)

    # Only the AI pass fills these
    due_date: str | None = Field(None, description="Payment due date")
    customer_info: str | dict[str, Any] | None = Field(None, description="Billed customer")

    def non_empty_count(self) -> int:
        """Count populated fields, ignoring the always-present currency."""
        values = [
            self.invoice_number,
            self.date,
            self.vendor,
            self.total_amount,
            self.subtotal,
            self.tax,
            self.tax_rate,
        ]
        count = sum(1 for value in values if value)
        if self.line_items:
            count += 1
        return count


class Confidence(BaseModel):
    """Completeness/trust score of an extraction."""

    overall: int = Field(0, ge=0, le=100)
    fields: dict[str, int] = Field(default_factory=dict)


class AcquisitionMetadata(BaseModel):
    """Side-channel signal produced by a text-acquisition strategy.

    Attributes:
        is_image_only_pdf: Source looks like a scan with little usable text
        requires_ai_enhancement: Acquisition step recommends the AI pass
        confidence: Upstream extraction confidence (0-100)
        parsed_data: Fields pre-parsed by the acquisition step, if any
    """

    is_image_only_pdf: bool = False
    requires_ai_enhancement: bool = False
    confidence: int = Field(0, ge=0, le=100)
    parsed_data: ExtractedFields | None = None


class AcquisitionResult(BaseModel):
    """Result of a text-acquisition operation.

    Attributes:
        text: Extracted text content
        success: Whether operation succeeded
        error: Error message if operation failed
        metadata: Optional side-channel metadata
        provider: Strategy that produced the text
    """

    text: str
    success: bool
    error: str | None = None
    metadata: AcquisitionMetadata | None = None
    provider: str = ""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class Invoice(BaseModel):
    """An uploaded invoice and its extraction outcome."""

    id: str = Field(default_factory=_new_id)
    file_name: str
    upload_date: datetime = Field(default_factory=_utcnow)
    status: InvoiceStatus = InvoiceStatus.PROCESSING
    extracted_fields: ExtractedFields | None = None
    confidence: Confidence = Field(default_factory=Confidence)
    ocr_text: str | None = None
    error: str | None = None
    updated_at: datetime | None = None


class ProcessingLog(BaseModel):
    """User-facing processing log entry."""

    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utcnow)
    message: str
    type: LogType = LogType.INFO
    invoice_id: str | None = None
