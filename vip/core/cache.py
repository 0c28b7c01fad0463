"""
Variant Cache - the layer in front of the pipeline

Resolves a CacheKey to an ImagePayload, calling the supplied compute
function only on a miss:
- In-process LRU bounded by total payload bytes
- Request coalescing: concurrent misses for one key share one computation
- Optional Redis tier shared between processes (TTL-based expiration)

Failed computations are never cached.
"""

import asyncio
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional

from vip.core.logging import get_logger
from vip.core.metrics import memory_cache_bytes, record_cache_hit, record_cache_miss
from vip.modules.imagery.models import CacheKey, ImagePayload

logger = get_logger(__name__)

ComputeFn = Callable[[CacheKey], Awaitable[ImagePayload]]


class ImageCache:
    """
    Read-through cache for image variants.

    Usage:
        cache = ImageCache(max_bytes=64 * 1024 * 1024, redis_client=redis)
        payload = await cache.resolve(key, fetcher.compute)
    """

    def __init__(
        self,
        max_bytes: int,
        redis_client=None,
        ttl_seconds: int = 3600,
        prefix: str = "vip",
    ):
        self.max_bytes = max_bytes
        self._redis = redis_client
        self._ttl = ttl_seconds
        self._prefix = prefix

        self._entries: "OrderedDict[CacheKey, ImagePayload]" = OrderedDict()
        self._size = 0
        self._inflight: Dict[CacheKey, asyncio.Task] = {}

    async def resolve(self, key: CacheKey, compute: ComputeFn) -> ImagePayload:
        """Return the payload for ``key``, computing it at most once concurrently."""
        payload = self._get_local(key)
        if payload is not None:
            record_cache_hit("memory")
            return payload
        record_cache_miss("memory")

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, compute))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("variant_coalesced", image=str(key))

        # Shielded so a cancelled waiter does not cancel the shared load
        return await asyncio.shield(task)

    async def _load(self, key: CacheKey, compute: ComputeFn) -> ImagePayload:
        payload = await self._get_shared(key)
        if payload is None:
            payload = await compute(key)
            await self._set_shared(key, payload)

        self._add_local(key, payload)
        return payload

    def _forget(self, key: CacheKey, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]

    # =========================================================================
    # In-process LRU
    # =========================================================================

    def _get_local(self, key: CacheKey) -> Optional[ImagePayload]:
        payload = self._entries.get(key)
        if payload is not None:
            self._entries.move_to_end(key)
        return payload

    def _add_local(self, key: CacheKey, payload: ImagePayload):
        if payload.size > self.max_bytes:
            logger.debug("variant_too_large_to_cache", image=str(key), size=payload.size)
            return

        previous = self._entries.pop(key, None)
        if previous is not None:
            self._size -= previous.size

        self._entries[key] = payload
        self._size += payload.size

        while self._size > self.max_bytes:
            evicted_key, evicted = self._entries.popitem(last=False)
            self._size -= evicted.size
            logger.debug("variant_evicted", image=str(evicted_key), size=evicted.size)

        memory_cache_bytes.set(self._size)

    # =========================================================================
    # Shared Redis tier
    # =========================================================================

    async def _get_shared(self, key: CacheKey) -> Optional[ImagePayload]:
        if self._redis is None:
            return None
        try:
            data = await self._redis.get(key.redis_key(self._prefix))
        except Exception as e:
            logger.warning("redis_cache_lookup_failed", image=str(key), error=str(e))
            return None

        if not data:
            record_cache_miss("redis")
            return None

        record_cache_hit("redis")
        return ImagePayload.from_bytes(data)

    async def _set_shared(self, key: CacheKey, payload: ImagePayload):
        if self._redis is None:
            return
        try:
            await self._redis.setex(key.redis_key(self._prefix), self._ttl, payload.data)
        except Exception as e:
            logger.warning("redis_cache_write_failed", image=str(key), error=str(e))

    # =========================================================================
    # Introspection
    # =========================================================================

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> int:
        """Drop all in-process entries. Returns count cleared."""
        count = len(self._entries)
        self._entries.clear()
        self._size = 0
        memory_cache_bytes.set(0)
        return count

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "bytes": self._size,
            "max_bytes": self.max_bytes,
            "inflight": len(self._inflight),
            "shared_tier": self._redis is not None,
        }
