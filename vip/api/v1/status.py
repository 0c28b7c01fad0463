"""
Status Endpoint - Cache Introspection

GET /api/v1/status/cache - In-process cache and write-back statistics
DELETE /api/v1/status/cache - Drop the in-process variant cache
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vip.api.dependencies import get_image_cache, get_write_back_pool
from vip.core.background import WriteBackPool
from vip.core.cache import ImageCache
from vip.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class CacheStatusResponse(BaseModel):
    """Variant cache status."""
    entries: int
    bytes: int
    max_bytes: int
    inflight: int
    shared_tier: bool
    write_back_pending: int


@router.get("/cache", response_model=CacheStatusResponse)
async def cache_status(
    cache: ImageCache = Depends(get_image_cache),
    write_back: WriteBackPool = Depends(get_write_back_pool),
):
    """Current cache occupancy and outstanding background writes."""
    return CacheStatusResponse(
        **cache.stats(),
        write_back_pending=write_back.pending,
    )


class CacheClearResponse(BaseModel):
    """Result of dropping the in-process variant cache."""
    cleared: int


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(cache: ImageCache = Depends(get_image_cache)):
    """
    Drop every in-process variant.

    Persisted variants and the shared Redis tier are left alone, so the
    next request for a dropped key is served from one of those or recomputed.
    """
    cleared = cache.clear()
    logger.info("variant_cache_cleared", cleared=cleared)
    return CacheClearResponse(cleared=cleared)
