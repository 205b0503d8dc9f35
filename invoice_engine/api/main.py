"""FastAPI application for invoice upload and history.

Production-ready API with:
- Health and readiness checks for Kubernetes
- File upload validation
- Async invoice processing (OCR, heuristics, optional AI pass)
- Invoice history and processing logs
- Prometheus metrics for monitoring

Run with: uvicorn invoice_engine.api.main:app

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import tempfile
import time
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from pydantic import BaseModel

from invoice_engine.extraction.schema import Invoice, ProcessingLog
from invoice_engine.pipeline.aggregator import create_aggregator
from invoice_engine.shared import metrics
from invoice_engine.shared.config import get_settings
from invoice_engine.shared.exceptions import PersistenceError
from invoice_engine.storage.base import DEFAULT_LOG_LIMIT

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Invoice Engine",
    description="Invoice field extraction API with heuristic parsing and optional AI enhancement",
    version=settings.service_version,
)

aggregator = create_aggregator(settings)

SUPPORTED_SUFFIXES = {".pdf", ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff"}


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str
    ai_provider: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        service=settings.service_name,
        ai_provider=settings.ai_provider,
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    Returns:
        Readiness status (document store reachable)
    """
    return ReadinessResponse(ready=aggregator.store.health_check())


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


def _is_supported(file: UploadFile) -> bool:
    content_type = file.content_type or ""
    if content_type == "application/pdf" or content_type.startswith("image/"):
        return True
    return Path(file.filename or "").suffix.lower() in SUPPORTED_SUFFIXES


@app.post("/api/v1/invoices", response_model=Invoice, tags=["Invoices"])
async def upload_invoice(
    file: UploadFile = File(..., description="Invoice PDF or image"),  # noqa: B008
) -> Invoice:
    """Upload an invoice and extract its fields.

    The document goes through OCR, heuristic field extraction and, when
    configured and needed, an AI enhancement pass. The returned invoice is
    either ``completed`` with extracted fields and confidence, or ``failed``
    with an error message.

    ```bash
    curl -X POST "http://localhost:8000/api/v1/invoices" -F "file=@invoice.pdf"
    ```

    Raises:
        HTTPException: 400 for invalid uploads, 503 if the document store fails
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")

    if not _is_supported(file):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type: {file.content_type}. Only PDF and images are supported.",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large: {len(content)} bytes (max {settings.max_upload_size_bytes})",
        )

    metrics.document_upload_size_bytes.observe(len(content))

    with tempfile.NamedTemporaryFile(delete=False, suffix=Path(file.filename).suffix) as tmp:
        tmp.write(content)
        tmp_path = Path(tmp.name)

    try:
        return await aggregator.process(tmp_path, file_name=file.filename)
    except PersistenceError as e:
        logger.error(f"Could not persist invoice for {file.filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Document store unavailable: {e.message}",
        ) from e
    finally:
        # Clean up temp file
        if tmp_path.exists():
            tmp_path.unlink()


@app.get("/api/v1/invoices", response_model=list[Invoice], tags=["Invoices"])
def list_invoices() -> list[Invoice]:
    """List processed invoices, newest first."""
    try:
        return aggregator.store.list_invoices()
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message
        ) from e


@app.get("/api/v1/invoices/{invoice_id}", response_model=Invoice, tags=["Invoices"])
def get_invoice(invoice_id: str) -> Invoice:
    """Fetch a single invoice by id."""
    try:
        invoice = aggregator.store.get_invoice(invoice_id)
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message
        ) from e
    if invoice is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Invoice not found: {invoice_id}"
        )
    return invoice


@app.get("/api/v1/logs", response_model=list[ProcessingLog], tags=["Invoices"])
def list_logs(
    invoice_id: str | None = Query(None, description="Only entries for this invoice"),
    limit: int = Query(DEFAULT_LOG_LIMIT, ge=1, le=1000, description="Maximum entries"),
) -> list[ProcessingLog]:
    """List processing log entries, newest first."""
    try:
        return aggregator.store.list_logs(invoice_id=invoice_id, limit=limit)
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message
        ) from e
