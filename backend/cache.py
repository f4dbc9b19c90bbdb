# cache.py — Short-lived in-process cache for owner-scoped list queries
import copy
import json
import time
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Request

from config import QUERY_CACHE_MAX_ENTRIES, QUERY_CACHE_TTL

logger = logging.getLogger("pr-board.cache")


class QueryCache:
    """TTL cache keyed by ``namespace:owner:filters``.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the cache. A TTL of zero disables caching.

    Each owner prefix carries a generation that ``invalidate`` bumps. A
    reader takes ``generation(prefix)`` before querying and passes it to
    ``set``; if a write invalidated the prefix in between, the result is
    dropped instead of cached.
    """

    def __init__(
        self,
        ttl_seconds: float = QUERY_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = QUERY_CACHE_MAX_ENTRIES,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._generations: Dict[str, int] = {}

    @staticmethod
    def make_key(namespace: str, owner_id: str, **filters: Any) -> str:
        present = {k: v for k, v in filters.items() if v is not None}
        return f"{namespace}:{owner_id}:{json.dumps(present, sort_keys=True)}"

    @staticmethod
    def owner_prefix(namespace: str, owner_id: str) -> str:
        return f"{namespace}:{owner_id}:"

    @staticmethod
    def _prefix_of(key: str) -> str:
        # namespace and owner id never contain ":"
        namespace, owner_id, _ = key.split(":", 2)
        return f"{namespace}:{owner_id}:"

    def generation(self, prefix: str) -> int:
        return self._generations.get(prefix, 0)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, generation: Optional[int] = None) -> bool:
        """Store ``value``. Returns False when caching is off or the read went stale."""
        if self.ttl_seconds <= 0:
            return False
        if generation is not None and generation != self.generation(self._prefix_of(key)):
            logger.debug("cache set skipped, prefix invalidated key=%s", key)
            return False
        now = self._clock()
        self._prune(now)
        self._entries[key] = (now, copy.deepcopy(value))
        return True

    def _prune(self, now: float) -> None:
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        # Oldest first once the size cap is reached
        overflow = len(self._entries) - self.max_entries + 1
        if overflow > 0:
            oldest = sorted(self._entries, key=lambda k: self._entries[k][0])[:overflow]
            for k in oldest:
                del self._entries[k]

    def invalidate(self, prefix: str) -> int:
        self._generations[prefix] = self.generation(prefix) + 1
        stale = [k for k in self._entries if k.startswith(prefix)]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("cache invalidated prefix=%s entries=%d", prefix, len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def get_query_cache(request: Request) -> QueryCache:
    return request.app.state.context.cache
