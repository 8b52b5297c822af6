# jurisdiction/services/cache.py
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Hashable, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class ScopeCache:
    """
    Read-through cache for node lookups.

    Built once at startup and handed to the services that need it. Entries for
    a node are dropped on every write to that node; anything else ages out
    after ``ttl_seconds``. Derivation and authorization never read from here.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._entries = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=timer)

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = value

    def has(self, key: Hashable) -> bool:
        return key in self._entries

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def expire(self) -> int:
        """Drops expired entries and returns how many were removed."""
        return len(self._entries.expire())

    async def get_or_set(
        self, key: Hashable, factory: Callable[[], Awaitable[Any]]
    ) -> Optional[Any]:
        value = self.get(key)
        if value is not None:
            return value
        value = await factory()
        # Misses are not cached so a newly created record shows up at once.
        if value is not None:
            self.set(key, value)
        return value

    async def run_sweeper(self, interval_seconds: float = 60) -> None:
        logger.info(f"Cache sweeper started (every {interval_seconds}s)")
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.expire()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")
