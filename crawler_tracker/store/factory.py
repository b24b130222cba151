import logging

from crawler_tracker.config import Settings
from crawler_tracker.store.azure_blob import AzureBlobEventStore
from crawler_tracker.store.base import EventStore, StoreError
from crawler_tracker.store.memory import InMemoryEventStore


logger = logging.getLogger(__name__)


def get_store(settings: Settings) -> EventStore:
    """Build the store named by ``settings.store_backend``."""
    backend = settings.store_backend
    if backend == "memory":
        logger.info("Using in-memory event store; events are lost on restart")
        return InMemoryEventStore()
    if backend == "azure":
        return AzureBlobEventStore(
            account_name=settings.azure_account_name or "",
            account_key=settings.azure_account_key or "",
            container=settings.azure_container,
        )
    raise StoreError(f"Unsupported store backend: {backend}")
