import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from fpl_insights.config import MODEL_CONFIG

logger = logging.getLogger("fpl_insights")

_MISSING = object()


class ExpiringCache:
    """
    Generic key -> (value, valid_until) cache.

    Expired or missing entries are plain misses. get_or_compute holds a
    per-key lock while computing so concurrent callers asking for the same
    missing key wait for the first caller's result instead of recomputing.
    """

    def __init__(self, default_ttl: float = None, clock: Callable[[], datetime] = datetime.now):
        self.default_ttl = default_ttl if default_ttl is not None else MODEL_CONFIG["cache"].default_ttl
        self.clock = clock
        self._entries: Dict[Hashable, Tuple[Any, datetime, float]] = {}
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self._lock = threading.Lock()

    def _is_valid(self, stored_at: datetime, ttl: float) -> bool:
        return (self.clock() - stored_at).total_seconds() <= ttl

    def _lookup(self, key: Hashable) -> Any:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        value, stored_at, ttl = entry
        if not self._is_valid(stored_at, ttl):
            return _MISSING
        return value

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: Hashable, value: Any, ttl: float = None):
        """Store value; last writer wins."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (value, self.clock(), ttl)

    def get_or_compute(self, key: Hashable, ttl: Optional[float], fn: Callable[[], Any]) -> Any:
        """Return a valid cached value for key, else compute it with fn (at most once in flight)."""
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        try:
            with key_lock:
                # Another caller may have filled it while we waited
                value = self._lookup(key)
                if value is not _MISSING:
                    return value
                value = fn()
                self.set(key, value, ttl)
                return value
        finally:
            # Waiters already hold a reference; later callers hit the entry
            with self._lock:
                if self._key_locks.get(key) is key_lock:
                    del self._key_locks[key]

    def invalidate(self, key: Hashable = None):
        """Drop one key, or everything when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
                self._key_locks.clear()
            else:
                self._entries.pop(key, None)
                self._key_locks.pop(key, None)

    def purge_expired(self) -> int:
        """Remove expired entries to keep memory bounded. Returns count removed."""
        now = self.clock()
        with self._lock:
            stale = [
                key for key, (_, stored_at, ttl) in self._entries.items()
                if (now - stored_at).total_seconds() > ttl
            ]
            for key in stale:
                del self._entries[key]
                self._key_locks.pop(key, None)
        if stale:
            logger.debug(f"Purged {len(stale)} expired cache entries")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SnapshotStore:
    """Holds the current projection snapshot; swaps the reference under a lock."""

    def __init__(self, max_age: float = None, clock: Callable[[], datetime] = datetime.now):
        self.max_age = max_age if max_age is not None else MODEL_CONFIG["cache"].snapshot_max_age
        self.clock = clock
        self._snapshot = None
        self._last_update: Optional[datetime] = None
        self._lock = threading.Lock()

    def get(self):
        with self._lock:
            return self._snapshot

    def swap(self, snapshot):
        """Install a new snapshot. Returns the previous one."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
            self._last_update = self.clock()
        return previous

    @property
    def last_update(self) -> Optional[datetime]:
        return self._last_update

    def is_stale(self) -> bool:
        return self._last_update is None or (self.clock() - self._last_update).total_seconds() > self.max_age


cache = ExpiringCache()
snapshot_store = SnapshotStore()
