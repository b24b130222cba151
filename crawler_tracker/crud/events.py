import asyncio
import logging
import uuid
from threading import Lock
from typing import List, Optional

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from crawler_tracker.config import LOG_KEY_PREFIX, RETENTION_SECONDS
from crawler_tracker.models.event import Event
from crawler_tracker.schemas.event import EventRecord
from crawler_tracker.store.base import EventStore


logger = logging.getLogger(__name__)

_key_lock = Lock()
_last_key_ms = 0


def make_record_key(now_ms: int, prefix: str = LOG_KEY_PREFIX) -> str:
    """Return ``<prefix><ms>:<uuid4>``.

    The millisecond part never goes backwards within the process, so keys
    sort by coarse recency; the uuid keeps same-millisecond keys apart.
    """
    global _last_key_ms
    with _key_lock:
        now_ms = max(now_ms, _last_key_ms)
        _last_key_ms = now_ms
    return f"{prefix}{now_ms}:{uuid.uuid4()}"


def serialize_event(event: Event) -> str:
    return EventRecord.from_event(event).to_json()


def record_event(
    store: EventStore,
    event: Event,
    key: str,
    ttl_seconds: int = RETENTION_SECONDS,
) -> bool:
    """Write ``event`` under ``key``; never raises.

    Returns whether the write went through. The result is for diagnostics
    only; a dropped beacon event is not retried.
    """
    try:
        store.put(key, serialize_event(event), ttl_seconds)
    except Exception:
        logger.exception("Failed to record event %s", key)
        return False
    logger.debug("Recorded %s ua=%s", key, event.user_agent)
    return True


def clamp_limit(raw: Optional[str], default: int = 200, maximum: int = 1000) -> int:
    try:
        limit = int(raw) if raw is not None else default
    except ValueError:
        limit = default
    return max(1, min(limit, maximum))


def parse_record(key: str, raw: Optional[str]) -> Optional[EventRecord]:
    if raw is None:
        logger.debug("Skipping %s: value absent", key)
        return None
    try:
        return EventRecord.model_validate_json(raw)
    except ValidationError:
        logger.warning("Skipping %s: malformed stored value", key)
        return None


async def _fetch(store: EventStore, key: str) -> Optional[str]:
    try:
        return await run_in_threadpool(store.get, key)
    except Exception:
        logger.warning("Failed to fetch %s", key, exc_info=True)
        return None


async def list_recent_events(
    store: EventStore,
    limit: int,
    prefix: str = LOG_KEY_PREFIX,
) -> List[EventRecord]:
    """Return up to ``limit`` stored events, newest first.

    Listing failures propagate. Anything that goes wrong for a single key
    (expired between list and get, read error, bad JSON) drops that record.
    """
    keys = await run_in_threadpool(store.list_keys, prefix, limit)
    values = await asyncio.gather(*(_fetch(store, key) for key in keys))
    records = [
        record
        for record in (parse_record(key, raw) for key, raw in zip(keys, values))
        if record is not None
    ]
    records.sort(key=lambda record: record.sort_key, reverse=True)
    return records
