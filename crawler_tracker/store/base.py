"""
Abstract key-value capability the tracker is written against.

The store only has to put with an expiry, list keys by prefix, and read a
single key. It is not expected to sort or query; callers must not rely on
listing order being chronological.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class StoreError(Exception):
    """Raised when the underlying store cannot complete an operation."""


class EventStore(ABC):
    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return the backend identifier (e.g. 'memory', 'azure')."""

    @abstractmethod
    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """
        Store ``value`` under ``key``.

        The key becomes unreadable roughly ``ttl_seconds`` after the write.

        Raises:
            StoreError: If the write fails.
        """

    @abstractmethod
    def list_keys(self, prefix: str, limit: int) -> List[str]:
        """
        Return up to ``limit`` live keys starting with ``prefix``.

        Ordering is backend-defined.

        Raises:
            StoreError: If the listing fails.
        """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Return the value for ``key``, or None if it expired or never existed.

        Raises:
            StoreError: If the read fails for any other reason.
        """
