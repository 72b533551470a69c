"""TTL cache for provider responses, keyed by request signature."""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from keyword_intel.errors import CacheCorruption

logger = logging.getLogger(__name__)


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.lower().split())
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in sorted(value.items())}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def make_cache_key(service: str, operation: str, **arguments: Any) -> str:
    """Build a stable signature for (service, operation, normalized arguments).

    Examples:
        >>> make_cache_key("dataforseo", "metrics", keywords=["CRM Tool "]) == \\
        ...     make_cache_key("dataforseo", "metrics", keywords=["crm tool"])
        True
    """
    raw = json.dumps(_normalize(arguments), sort_keys=True, default=str)
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return f"{service}:{operation}:{digest}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class ResultCache:
    """In-memory TTL cache with lazy eviction and an optional size bound.

    Usage::

        cache = ResultCache(default_ttl=1800)
        key = make_cache_key("dataforseo", "suggestions", seed="crm", limit=20)
        cache.set(key, records)
        hit = cache.get(key)
        if hit is MISS:
            ...
    """

    def __init__(
        self,
        default_ttl: float = 1800.0,
        max_size: Optional[int] = 1000,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._default_ttl = default_ttl
        self._max_size = max_size
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _decode(key: str, entry: Any) -> CacheEntry:
        if not isinstance(entry, CacheEntry):
            raise CacheCorruption(key, f"unexpected entry type {type(entry).__name__}")
        if entry.key != key:
            raise CacheCorruption(key, f"entry stored under foreign key {entry.key!r}")
        if not isinstance(entry.ttl, (int, float)) or entry.ttl < 0:
            raise CacheCorruption(key, f"invalid ttl {entry.ttl!r}")
        return entry

    def get(self, key: str) -> Any:
        """Return the cached payload, or ``MISS`` when absent, stale or corrupt."""
        with self._lock:
            raw = self._entries.get(key)
            if raw is None:
                self._misses += 1
                return MISS
            try:
                entry = self._decode(key, raw)
            except CacheCorruption as exc:
                logger.warning("%s; treating as miss", exc)
                del self._entries[key]
                self._misses += 1
                return MISS
            if entry.expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                logger.debug("Cache entry expired: %s", key)
                return MISS
            self._hits += 1
            logger.debug("Cache hit: %s", key)
            return entry.payload

    def set(self, key: str, payload: Any, ttl: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            if (
                self._max_size
                and key not in self._entries
                and len(self._entries) >= self._max_size
            ):
                oldest_key = min(
                    self._entries,
                    key=lambda k: getattr(self._entries[k], "inserted_at", float("-inf")),
                )
                del self._entries[oldest_key]
            self._entries[key] = CacheEntry(key, payload, self._clock(), ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
                "default_ttl_seconds": self._default_ttl,
                "max_size": self._max_size,
            }
