"""
Client-side snapshot of the last successful post listing.

A single record is persisted under a fixed key:

    {"data": [...posts...], "timestamp": <epoch millis>, "userId": "<filter>"}

``userId`` is omitted when no filter was active. The record answers a read
only for the filter it was written with. Storage problems never reach the
caller: they are logged and treated as a miss (reads) or a no-op (writes).
"""

import json
import logging
import time
from typing import Any, Callable, NamedTuple, Optional

from django.conf import settings
from django.core.cache import caches

logger = logging.getLogger(__name__)

DEFAULT_KEY = "posts_cache"
DEFAULT_TTL = 5 * 60  # seconds


class CacheError(Exception):
    """Storage unavailable or record corrupt."""


class CacheHit(NamedTuple):
    data: list[dict[str, Any]]
    is_stale: bool
    captured_at: int  # epoch millis


def normalize_filter(filter_key: Any) -> Optional[str]:
    """Map a raw filter to its cache form: ``None`` or a stripped string."""
    if filter_key is None:
        return None
    value = str(filter_key).strip()
    return value or None


def _is_post_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class LocalCache:
    """TTL snapshot store over any Django cache backend (``get``/``set``)."""

    def __init__(
        self,
        key: str = DEFAULT_KEY,
        backend=None,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            key: Storage key holding the single record
            backend: Django cache backend, defaults to caches["browser"]
            ttl: Seconds after which a record is stale (still returned)
            clock: Returns the current time in seconds since the epoch
        """
        self.key = key
        self.backend = backend if backend is not None else caches["browser"]
        self.ttl_ms = int(ttl * 1000)
        self._clock = clock

    @classmethod
    def from_settings(cls, **kwargs) -> "LocalCache":
        kwargs.setdefault("key", settings.BROWSER_CACHE_KEY)
        kwargs.setdefault("backend", caches[settings.BROWSER_CACHE_ALIAS])
        kwargs.setdefault("ttl", settings.BROWSER_CACHE_TTL)
        return cls(**kwargs)

    def now_ms(self) -> int:
        return round(self._clock() * 1000)

    def read(self, filter_key: Any = None) -> Optional[CacheHit]:
        try:
            record = self._load()
        except CacheError as e:
            logger.warning("Ignoring cached posts (key=%s): %s", self.key, e)
            return None
        if record is None:
            return None

        if record.get("userId") != normalize_filter(filter_key):
            return None

        captured_at = record["timestamp"]
        return CacheHit(
            data=list(record["data"]),
            is_stale=(self.now_ms() - captured_at) > self.ttl_ms,
            captured_at=captured_at,
        )

    def write(self, data: list[dict[str, Any]], filter_key: Any = None) -> bool:
        """Replace the stored record. Returns False if storage refused it."""
        record = {"data": list(data), "timestamp": self.now_ms()}
        user_id = normalize_filter(filter_key)
        if user_id is not None:
            record["userId"] = user_id

        try:
            payload = json.dumps(record)
            self.backend.set(self.key, payload, timeout=None)
        except Exception as e:
            # persistence is best-effort; the in-memory view is authoritative
            logger.warning("Failed to persist posts cache (key=%s): %s", self.key, e)
            return False
        return True

    def _load(self) -> Optional[dict[str, Any]]:
        try:
            payload = self.backend.get(self.key)
        except Exception as e:
            raise CacheError(f"storage unavailable: {e}") from e
        if payload is None:
            return None

        try:
            record = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise CacheError(f"corrupt payload: {e}") from e

        if (
            not isinstance(record, dict)
            or not isinstance(record.get("data"), list)
            or not isinstance(record.get("timestamp"), (int, float))
            or not isinstance(record.get("userId", ""), str)
        ):
            raise CacheError("unexpected record shape")
        for entry in record["data"]:
            if not isinstance(entry, dict) or not _is_post_id(entry.get("id")):
                raise CacheError("post entry without an integer id")
        return record
