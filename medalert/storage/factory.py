"""
Chooses the storage backend once, from settings.
"""
import logging

from ..config import Settings
from ..exceptions import DatabaseError, ErrorCode
from .base import StorageAdapter
from .flat_store import FlatStoreAdapter, FileBlobStore, MemoryBlobStore
from .relational import RelationalAdapter
from .store import ValidatingRetryingStore

# Set up logging
logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("relational", "flat")


def create_adapter(settings: Settings) -> StorageAdapter:
    """
    Build the adapter named by `settings.storage_backend`.

    Args:
        settings: Application settings

    Returns:
        StorageAdapter: Uninitialized adapter

    Raises:
        DatabaseError: PLATFORM_NOT_SUPPORTED for an unknown backend name
    """
    backend = settings.storage_backend.strip().lower()

    if backend == "relational":
        logger.info(f"Using relational storage at {settings.database_path}")
        return RelationalAdapter(settings.database_path, seed_on_init=settings.seed_data)

    if backend == "flat":
        if settings.flat_store_dir:
            logger.info(f"Using flat storage in {settings.flat_store_dir}")
            blob_store = FileBlobStore(settings.flat_store_dir)
        else:
            logger.info("Using in-memory flat storage")
            blob_store = MemoryBlobStore()
        return FlatStoreAdapter(blob_store, seed_on_init=settings.seed_data)

    raise DatabaseError(
        ErrorCode.PLATFORM_NOT_SUPPORTED,
        f"Storage backend '{settings.storage_backend}' is not supported",
        "create_adapter",
        {"supported": list(SUPPORTED_BACKENDS)}
    )


def create_store(settings: Settings) -> ValidatingRetryingStore:
    """Build the store wrapper around the configured adapter."""
    return ValidatingRetryingStore(
        create_adapter(settings),
        retry_attempts=settings.retry_attempts,
        retry_delay=settings.retry_delay,
        init_timeout=settings.init_timeout,
    )
