"""Per-owner vector store cache.

Stores are built lazily on first use and stay resident until explicitly
invalidated. There is no TTL or size bound.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from noterag.observability.metrics import CACHE_LOOKUPS, CACHED_STORES
from noterag.rag.vector_store import VectorStore

logger = logging.getLogger(__name__)

StoreBuilder = Callable[[], Awaitable[VectorStore]]


class StoreCache:
    """Maps owner id to a built VectorStore.

    Concurrent first access for the same owner is serialized with a
    per-owner lock, so each owner is built at most once until invalidated.
    """

    def __init__(self):
        self._stores: dict[str, VectorStore] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self._stores

    def get(self, owner_id: str) -> VectorStore | None:
        """Return the cached store for owner_id, if any."""
        return self._stores.get(owner_id)

    async def get_or_build(self, owner_id: str, builder: StoreBuilder) -> VectorStore:
        """Return the cached store, building it with ``builder`` on a miss.

        A failing build caches nothing; the exception propagates.
        """
        store = self._stores.get(owner_id)
        if store is not None:
            CACHE_LOOKUPS.labels(result="hit").inc()
            logger.debug(f"[StoreCache] Using cached store for owner {owner_id}")
            return store

        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        async with lock:
            # Another task may have finished the build while we waited
            store = self._stores.get(owner_id)
            if store is not None:
                CACHE_LOOKUPS.labels(result="hit").inc()
                return store

            CACHE_LOOKUPS.labels(result="miss").inc()
            logger.info(f"[StoreCache] Building store for owner {owner_id}")
            store = await builder()
            self._stores[owner_id] = store
            CACHED_STORES.inc()
            return store

    def invalidate(self, owner_id: str) -> bool:
        """Drop the cached store so the next access rebuilds it.

        Returns:
            True if a store was cached for owner_id
        """
        removed = self._stores.pop(owner_id, None) is not None
        lock = self._locks.get(owner_id)
        if lock is not None and not lock.locked():
            del self._locks[owner_id]
        if removed:
            CACHED_STORES.dec()
            logger.info(f"[StoreCache] Invalidated store for owner {owner_id}")
        return removed

    def clear(self) -> None:
        """Drop every cached store."""
        CACHED_STORES.dec(len(self._stores))
        self._stores.clear()
        self._locks = {k: v for k, v in self._locks.items() if v.locked()}

