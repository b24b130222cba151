import time
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from crawler_tracker.store.base import EventStore


class InMemoryEventStore(EventStore):
    """Process-local store with per-key expiry.

    Values live in a plain dict; nothing survives a restart. Listing is
    lexicographic, the way KV namespaces list, so with more live keys than
    ``limit`` the oldest keys are the ones returned.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._items: Dict[str, Tuple[str, float]] = {}

    @property
    def backend_type(self) -> str:
        return "memory"

    def _purge_locked(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._items.items() if expires_at <= now]
        for key in expired:
            del self._items[key]

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._items[key] = (value, self._clock() + ttl_seconds)

    def list_keys(self, prefix: str, limit: int) -> List[str]:
        with self._lock:
            self._purge_locked(self._clock())
            keys = sorted(key for key in self._items if key.startswith(prefix))
        return keys[:limit]

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= self._clock():
                del self._items[key]
                return None
            return value

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked(self._clock())
            return len(self._items)
