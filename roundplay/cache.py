"""Thread-safe TTL cache for session snapshots and available-number sets."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional

from cachetools import TTLCache

from .config import CacheSettings

SNAPSHOT = "snapshot"
AVAILABLE = "available"
NAMESPACES = (SNAPSHOT, AVAILABLE)


class SessionCache:
    """Short-lived read cache keyed by ``(namespace, session_id)``.

    Writers must call :meth:`invalidate_session` after every committed change
    that a cached value covers. An invalidation that lands while a load for
    the same session is in flight bumps that session's generation, and
    :meth:`get_or_set` refuses to store a value whose load started before the
    latest invalidation, so a slow reader cannot put a pre-commit value back
    into the cache. Load locks and generations are dropped as soon as a
    session has no load in flight.
    """

    def __init__(
        self,
        ttl_seconds: float = 5.0,
        max_entries: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=timer)
        self._lock = threading.Lock()
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self._generations: Dict[str, int] = {}
        self._inflight: Dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "SessionCache":
        return cls(ttl_seconds=settings.ttl_seconds, max_entries=settings.max_entries)

    def _get_key_lock(self, key: Hashable) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def get(self, namespace: str, session_id: str) -> Optional[Any]:
        with self._lock:
            return self._cache.get((namespace, session_id))

    def set(self, namespace: str, session_id: str, value: Any) -> None:
        with self._lock:
            self._cache[(namespace, session_id)] = value

    def get_or_set(self, namespace: str, session_id: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value or load, cache and return it.

        ``None`` results are returned but never cached.
        """

        key = (namespace, session_id)
        with self._lock:
            if key in self._cache:
                self.hits += 1
                return self._cache[key]

        with self._get_key_lock(key):
            with self._lock:
                if key in self._cache:
                    self.hits += 1
                    return self._cache[key]
                self.misses += 1
                self._inflight[session_id] = self._inflight.get(session_id, 0) + 1
                generation = self._generations.get(session_id, 0)

            value = None
            try:
                value = loader()
            finally:
                with self._lock:
                    if value is not None and self._generations.get(session_id, 0) == generation:
                        self._cache[key] = value
                    self._finish_load(session_id)
            return value

    def _finish_load(self, session_id: str) -> None:
        left = self._inflight[session_id] - 1
        if left:
            self._inflight[session_id] = left
            return
        del self._inflight[session_id]
        self._generations.pop(session_id, None)
        for namespace in NAMESPACES:
            self._key_locks.pop((namespace, session_id), None)

    def invalidate_session(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._inflight:
                self._generations[session_id] = self._generations.get(session_id, 0) + 1
            for namespace in NAMESPACES:
                self._cache.pop((namespace, session_id), None)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "ttl": self._cache.ttl,
                "hits": self.hits,
                "misses": self.misses,
                "loading": len(self._inflight),
            }


__all__ = ["AVAILABLE", "SNAPSHOT", "SessionCache"]
