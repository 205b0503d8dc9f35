"""Factory for creating the document store based on configuration."""

import logging

from invoice_engine.shared.config import Settings
from invoice_engine.storage.base import DocumentStore
from invoice_engine.storage.memory import InMemoryDocumentStore
from invoice_engine.storage.service import MinioDocumentStore

logger = logging.getLogger(__name__)


def create_document_store(settings: Settings) -> DocumentStore:
    """Create the MinIO store when storage is enabled and configured, else in-memory.

    Args:
        settings: Application settings with storage configuration

    Returns:
        Configured document store
    """
    store = MinioDocumentStore(settings)
    if store.is_available():
        logger.info(f"Created document store: minio (bucket={settings.storage_bucket})")
        return store

    if settings.storage_enabled:
        logger.warning("Storage enabled but credentials missing; using in-memory document store")
    else:
        logger.info("Created document store: in-memory")
    return InMemoryDocumentStore()
