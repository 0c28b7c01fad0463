"""
FastAPI Dependencies

Provides dependency injection for the long-lived objects created in the
application lifespan and kept on app.state:
- Object store
- Variant cache (in-process LRU + optional Redis tier)
- Image fetcher (read-through orchestrator)
- Write-back pool
"""

from fastapi import Request

from vip.core.background import WriteBackPool
from vip.core.cache import ImageCache
from vip.core.storage import IImageStore
from vip.pipeline.orchestrator import ImageFetcher


def get_image_store(request: Request) -> IImageStore:
    """Returns the object store the app was started with."""
    return request.app.state.storage


def get_image_cache(request: Request) -> ImageCache:
    """Returns the process-wide variant cache."""
    return request.app.state.image_cache


def get_image_fetcher(request: Request) -> ImageFetcher:
    """Returns the orchestrator invoked by the cache on a miss."""
    return request.app.state.fetcher


def get_write_back_pool(request: Request) -> WriteBackPool:
    """Returns the background write-back pool."""
    return request.app.state.write_back
