# -*- coding: utf-8 -*-
"""Location: ./saasgateway/cache/cache_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Backend Cache Implementation.
Per-session store for slow-changing backend data, such as the AlertSite user
directory scanned on every lookup by email. Each ``GatewayServer`` owns one
instance and hands it to its clients through ``get_cache()``; it is dropped when
the session closes, so cached data never crosses sessions.

- Entries expire CACHE_TTL seconds after they were stored (per-entry override allowed)
- At CACHE_MAX_SIZE entries the least recently read or written one is evicted
- CACHE_ENABLED=false turns every instance into an always-empty cache

Examples:
    >>> cache = CacheService(enabled=True, max_size=2, ttl=60)
    >>> cache.set('a', 1)
    >>> cache.set('b', 2)
    >>> cache.get('a')
    1
    >>> cache.set('c', 3)  # 'b' is the stalest entry
    >>> 'b' in cache, len(cache)
    (False, 2)
    >>> disabled = CacheService(enabled=False)
    >>> disabled.set('a', 1)
    >>> disabled.get('a') is None
    True
"""

# Standard
from collections import OrderedDict
import time
from typing import Any, Awaitable, Callable, Optional, Tuple

# First-Party
from saasgateway.config import settings
from saasgateway.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)


class CacheService:
    """Bounded TTL cache with least-recently-used eviction.

    Attributes:
        enabled: Whether values are stored at all
        ttl: Default time-to-live in seconds
        max_size: Maximum number of entries
    """

    def __init__(self, enabled: Optional[bool] = None, ttl: Optional[float] = None, max_size: Optional[int] = None):
        """Initialize cache.

        Args:
            enabled: Store values; defaults to CACHE_ENABLED
            ttl: Time-to-live in seconds; defaults to CACHE_TTL
            max_size: Maximum number of entries; defaults to CACHE_MAX_SIZE
        """
        self.enabled = settings.cache_enabled if enabled is None else enabled
        self.ttl = settings.cache_ttl if ttl is None else ttl
        self.max_size = settings.cache_max_size if max_size is None else max_size
        # key -> (deadline, value), oldest access first
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def is_enabled(self) -> bool:
        """Return True when the cache stores values."""
        return self.enabled

    def get(self, key: str) -> Optional[Any]:
        """Return a live value and mark it as recently used.

        Args:
            key: Cache key

        Returns:
            The value, or None when missing or expired

        Examples:
            >>> cache = CacheService(enabled=True, ttl=-1)
            >>> cache.set('a', 1)
            >>> cache.get('a') is None
            True
        """
        item = self._entries.get(key)
        if item is None:
            return None
        deadline, value = item
        if time.monotonic() >= deadline:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, evicting the stalest entry when full.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live for this entry; the cache default otherwise
        """
        if not self.enabled:
            return
        self._entries.pop(key, None)
        while self._entries and len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cache entry {evicted}")
        self._entries[key] = (time.monotonic() + (self.ttl if ttl is None else ttl), value)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]], ttl: Optional[float] = None) -> Any:
        """Return the cached value, or await ``loader`` and cache what it returns.

        Args:
            key: Cache key
            loader: Coroutine function producing the value on a miss
            ttl: Time-to-live for a freshly loaded value

        Returns:
            The cached or freshly loaded value

        Examples:
            >>> import asyncio
            >>> cache = CacheService(enabled=True)
            >>> async def load():
            ...     return ["ada"]
            >>> asyncio.run(cache.get_or_load("users", load))
            ['ada']
            >>> cache.get("users")
            ['ada']
        """
        value = self.get(key)
        if value is None:
            value = await loader()
            self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        """Drop one entry; unknown keys are ignored.

        Args:
            key: Cache key
        """
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()
