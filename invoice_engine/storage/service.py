"""S3-compatible document store using MinIO.

Invoices are stored as JSON objects under ``invoices/<id>.json`` and
processing logs under ``logs/<timestamp>-<id>.json``; the timestamp prefix
makes lexical key order chronological.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging

from minio import Minio
from minio.error import S3Error
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoice_engine.extraction.schema import Invoice, ProcessingLog
from invoice_engine.shared.config import Settings
from invoice_engine.shared.exceptions import PersistenceError
from invoice_engine.storage.base import DEFAULT_LOG_LIMIT

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "invoices/"
LOG_PREFIX = "logs/"
JSON_CONTENT_TYPE = "application/json"

# Sortable UTC timestamp used in log object keys
_LOG_KEY_TIME_FORMAT = "%Y%m%dT%H%M%S%fZ"

_retry_s3 = retry(
    retry=retry_if_exception_type(S3Error),
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=1, max=10),
    reraise=True,
)


def invoice_object_name(invoice_id: str) -> str:
    return f"{INVOICE_PREFIX}{invoice_id}.json"


def log_object_name(entry: ProcessingLog) -> str:
    return f"{LOG_PREFIX}{entry.timestamp.strftime(_LOG_KEY_TIME_FORMAT)}-{entry.id}.json"


class MinioDocumentStore:
    """Document store backed by an S3-compatible bucket.

    Provides invoice history with data sovereignty support through
    on-premises MinIO deployment.
    """

    def __init__(self, settings: Settings, client: Minio | None = None) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
            client: Preconfigured MinIO client (created lazily if omitted)
        """
        self.settings = settings
        self.bucket = settings.storage_bucket
        self._client = client
        self._bucket_ready = False

    def _get_client(self) -> Minio:
        """Return the MinIO client, creating it on first use.

        Raises:
            ValueError: If APP_STORAGE_ACCESS_KEY or APP_STORAGE_SECRET_KEY is empty
        """
        if self._client is not None:
            return self._client

        missing = [
            name
            for name, value in (
                ("APP_STORAGE_ACCESS_KEY", self.settings.storage_access_key),
                ("APP_STORAGE_SECRET_KEY", self.settings.storage_secret_key),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Storage credentials missing; set {', '.join(missing)}")

        self._client = Minio(
            endpoint=self.settings.storage_endpoint,
            access_key=self.settings.storage_access_key,
            secret_key=self.settings.storage_secret_key,
            secure=self.settings.storage_secure,
        )
        logger.info(f"MinIO client created for {self.settings.storage_endpoint}/{self.bucket}")
        return self._client

    def is_available(self) -> bool:
        """Storage is used only when enabled and both credentials are set."""
        return self.settings.storage_enabled and bool(
            self.settings.storage_access_key and self.settings.storage_secret_key
        )

    def health_check(self) -> bool:
        """Check the bucket; any error counts as unhealthy."""
        if not self.is_available():
            return False

        try:
            self._get_client().bucket_exists(self.bucket)
        except Exception as e:
            logger.warning(f"Document store unreachable: {e}")
            return False
        return True

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return

        client = self._get_client()
        if not client.bucket_exists(self.bucket):
            client.make_bucket(self.bucket)
            logger.info(f"Created bucket: {self.bucket}")

        self._bucket_ready = True

    @_retry_s3
    def _put_json(self, object_name: str, payload: str) -> None:
        client = self._get_client()
        self._ensure_bucket()
        data = payload.encode("utf-8")
        client.put_object(
            bucket_name=self.bucket,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=JSON_CONTENT_TYPE,
        )
        logger.debug(f"Stored {object_name} in {self.bucket} ({len(data)} bytes)")

    @_retry_s3
    def _get_json(self, object_name: str) -> bytes | None:
        client = self._get_client()
        try:
            response = client.get_object(bucket_name=self.bucket, object_name=object_name)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                return None
            raise
        try:
            data: bytes = response.read()
        finally:
            response.close()
            response.release_conn()
        return data

    @_retry_s3
    def _list_names(self, prefix: str) -> list[str]:
        client = self._get_client()
        if not client.bucket_exists(self.bucket):
            return []
        objects = client.list_objects(self.bucket, prefix=prefix, recursive=True)
        return [obj.object_name for obj in objects if obj.object_name]

    def save_invoice(self, invoice: Invoice) -> None:
        object_name = invoice_object_name(invoice.id)
        try:
            self._put_json(object_name, invoice.model_dump_json())
        except Exception as e:
            logger.error(f"Error saving invoice {invoice.id}: {e}")
            raise PersistenceError("save_invoice", str(e), invoice=invoice) from e

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        try:
            data = self._get_json(invoice_object_name(invoice_id))
        except Exception as e:
            logger.error(f"Error reading invoice {invoice_id}: {e}")
            raise PersistenceError("get_invoice", str(e)) from e
        if data is None:
            return None
        return Invoice.model_validate_json(data)

    def list_invoices(self) -> list[Invoice]:
        try:
            names = self._list_names(INVOICE_PREFIX)
            invoices = []
            for name in names:
                data = self._get_json(name)
                if data is not None:
                    invoices.append(Invoice.model_validate_json(data))
        except Exception as e:
            logger.error(f"Error listing invoices: {e}")
            raise PersistenceError("list_invoices", str(e)) from e
        return sorted(invoices, key=lambda invoice: invoice.upload_date, reverse=True)

    def append_log(self, entry: ProcessingLog) -> None:
        try:
            self._put_json(log_object_name(entry), entry.model_dump_json())
        except Exception as e:
            logger.error(f"Error appending log entry {entry.id}: {e}")
            raise PersistenceError("append_log", str(e)) from e

    def list_logs(
        self, invoice_id: str | None = None, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[ProcessingLog]:
        entries: list[ProcessingLog] = []
        try:
            for name in sorted(self._list_names(LOG_PREFIX), reverse=True):
                if len(entries) >= limit:
                    break
                data = self._get_json(name)
                if data is None:
                    continue
                entry = ProcessingLog.model_validate_json(data)
                if invoice_id is None or entry.invoice_id == invoice_id:
                    entries.append(entry)
        except Exception as e:
            logger.error(f"Error listing logs: {e}")
            raise PersistenceError("list_logs", str(e)) from e
        return entries
