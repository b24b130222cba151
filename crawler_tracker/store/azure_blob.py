import logging
import time
from typing import Callable, List, Optional

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContainerClient, ContentSettings

from crawler_tracker.store.base import EventStore, StoreError


logger = logging.getLogger(__name__)

EXPIRES_AT_METADATA = "expires_at"


def _is_expired(metadata: Optional[dict], now: float) -> bool:
    if not metadata:
        return False
    raw = metadata.get(EXPIRES_AT_METADATA)
    if raw is None:
        return False
    try:
        return float(raw) <= now
    except ValueError:
        return False


class AzureBlobEventStore(EventStore):
    """One blob per key in a single container.

    Blob storage has no per-object TTL, so the expiry instant is written as
    blob metadata and expired blobs are hidden from reads and listings.
    Physical removal is left to the container's lifecycle management rule.
    """

    def __init__(
        self,
        account_name: str = "",
        account_key: str = "",
        container: str = "crawler-logs",
        container_client: Optional[ContainerClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._account_name = account_name
        self._account_key = account_key
        self._container = container
        self._client = container_client
        self._clock = clock

    @property
    def backend_type(self) -> str:
        return "azure"

    def _container_client(self) -> ContainerClient:
        if self._client is not None:
            return self._client
        if not self._account_name:
            raise StoreError("AZURE_STORAGE_ACCOUNT_NAME is required")
        if not self._account_key:
            raise StoreError("AZURE_STORAGE_ACCOUNT_KEY is required")
        account_url = f"https://{self._account_name}.blob.core.windows.net"
        service = BlobServiceClient(account_url=account_url, credential=self._account_key)
        client = service.get_container_client(self._container)
        try:
            client.create_container()
        except ResourceExistsError:
            pass
        except AzureError as exc:
            raise StoreError(f"Unable to prepare container {self._container}") from exc
        self._client = client
        return client

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        client = self._container_client()
        expires_at = int(self._clock() + ttl_seconds)
        try:
            client.upload_blob(
                name=key,
                data=value.encode("utf-8"),
                overwrite=False,
                metadata={EXPIRES_AT_METADATA: str(expires_at)},
                content_settings=ContentSettings(content_type="application/json"),
            )
        except AzureError as exc:
            raise StoreError(f"Failed to upload blob {key}") from exc

    def list_keys(self, prefix: str, limit: int) -> List[str]:
        client = self._container_client()
        now = self._clock()
        keys: List[str] = []
        try:
            for blob in client.list_blobs(name_starts_with=prefix, include=["metadata"]):
                if _is_expired(blob.metadata, now):
                    continue
                keys.append(blob.name)
                if len(keys) >= limit:
                    break
        except AzureError as exc:
            raise StoreError(f"Failed to list blobs under {prefix}") from exc
        return keys

    def get(self, key: str) -> Optional[str]:
        client = self._container_client()
        blob_client = client.get_blob_client(key)
        try:
            downloader = blob_client.download_blob()
            if _is_expired(downloader.properties.metadata, self._clock()):
                logger.debug("Blob %s has expired", key)
                return None
            return downloader.readall().decode("utf-8")
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise StoreError(f"Failed to download blob {key}") from exc
