"""In-memory TTL cache for read-heavy query results.

Entries live in process memory only. Each uvicorn worker holds its own
instance and nothing survives a restart, which is why the server runs with
a single worker (see Settings.workers).

Expiry is checked lazily on every read, so ``get`` never returns a stale
value. ``cleanup`` reclaims entries that are written once and never read
again; it is driven by ``core.cleanup.CacheSweeper``.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from core.logging import get_logger, log_cache_operation

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """A cached value with its insertion time and time-to-live (seconds)."""

    value: Any
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class TTLCache:
    """Thread-safe key/value cache with per-entry TTL."""

    def __init__(self, default_ttl: float = 60.0, name: str = "cache",
                 clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Insert or overwrite ``key``."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock(), ttl=ttl)
        log_cache_operation(logger, "set", key, cache=self.name, ttl=ttl)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss.

        An entry found past its TTL is evicted and reported as a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1

        log_cache_operation(logger, "get", key, hit=entry is not None, cache=self.name)
        return default if entry is None else entry.value

    def delete(self, key: str) -> bool:
        with self._lock:
            deleted = self._entries.pop(key, None) is not None
        log_cache_operation(logger, "delete", key, cache=self.name, deleted=deleted)
        return deleted

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key containing ``pattern``. A trailing ``*`` is ignored."""
        needle = pattern.rstrip("*")
        with self._lock:
            doomed = [key for key in self._entries if needle in key]
            for key in doomed:
                del self._entries[key]
        log_cache_operation(logger, "delete_pattern", pattern, cache=self.name, deleted=len(doomed))
        return len(doomed)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        log_cache_operation(logger, "clear", "*", cache=self.name, deleted=count)
        return count

    def cleanup(self) -> int:
        """Evict every entry whose age exceeds its TTL. Returns the count."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Expired cache entries evicted", cache=self.name, count=len(expired))
        return len(expired)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "default_ttl": self.default_ttl,
            }

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
