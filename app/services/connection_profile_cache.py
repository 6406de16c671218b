from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable, Hashable, TypeVar

from cachetools import TTLCache

from app.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class ConnectionProfileReadCache:
    """In-process TTL cache for read-only connection profile queries.

    Cached values must be immutable snapshots (pydantic read models), never ORM
    rows bound to a session. Any write through the profile service clears the
    whole cache.
    """

    def __init__(self, *, maxsize: int, ttl: int, enabled: bool = True) -> None:
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = Lock()
        self.enabled = enabled

    def get_or_load(
        self,
        key: Hashable,
        loader: Callable[[], T],
        *,
        skip_cache: bool = False,
    ) -> tuple[T, str]:
        """Return ``(value, source)`` where source is cache, database or database-forced."""
        if skip_cache or not self.enabled:
            value = loader()
            if self.enabled:
                self._store(key, value)
            return value, "database-forced" if skip_cache else "database"

        with self._lock:
            cached: Any = self._cache.get(key, _MISSING)
        if cached is not _MISSING:
            logger.debug("Connection profile cache hit for %s", key)
            return cached, "cache"

        value = loader()
        self._store(key, value)
        return value, "database"

    def invalidate(self) -> None:
        with self._lock:
            if self._cache:
                logger.debug("Clearing %d cached connection profile queries", len(self._cache))
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _store(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = value


def _build_default_cache() -> ConnectionProfileReadCache:
    settings = get_settings()
    return ConnectionProfileReadCache(
        maxsize=settings.profile_cache_max_entries,
        ttl=settings.profile_cache_ttl_seconds,
        enabled=settings.profile_cache_enabled,
    )


profile_read_cache = _build_default_cache()


__all__ = ["ConnectionProfileReadCache", "profile_read_cache"]
