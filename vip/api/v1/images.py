"""
Images Endpoint - Variant Delivery

GET /api/v1/images/{bucket_id}/{image_id}?s=<width>&c=<crop>

- s: target width in pixels (clamped to MAX_WIDTH, non-numeric means original width)
- c: "true" (any case) center-crops the result to a square
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from vip.api.dependencies import get_image_cache, get_image_fetcher
from vip.core.cache import ImageCache
from vip.core.config import settings
from vip.core.exceptions import ObjectNotFoundError
from vip.core.logging import get_logger
from vip.modules.imagery.models import CacheKey
from vip.pipeline.orchestrator import ImageFetcher

logger = get_logger(__name__)
router = APIRouter()


def _escapes_bucket(bucket_id: str, image_id: str) -> bool:
    """Reject names that could climb out of the bucket once joined into a path."""
    if bucket_id in ("", ".", "..") or "/" in bucket_id or "\\" in bucket_id:
        return True
    if image_id.startswith("/"):
        return True
    return ".." in image_id.replace("\\", "/").split("/")


@router.get(
    "/{bucket_id}/{image_id:path}",
    response_class=Response,
    responses={200: {"content": {"image/jpeg": {}, "image/png": {}, "image/gif": {}}}},
)
async def get_image(
    bucket_id: str,
    image_id: str,
    s: Optional[str] = Query(default=None, description="Target width in pixels"),
    c: Optional[str] = Query(default=None, description="Center-crop to a square when 'true'"),
    cache: ImageCache = Depends(get_image_cache),
    fetcher: ImageFetcher = Depends(get_image_fetcher),
):
    """
    Serve a variant of a stored image.

    Flow:
    1. Reduce the request to a CacheKey
    2. Resolve it through the variant cache
    3. On a miss the fetcher computes it (and persists it in the background)
    """
    if _escapes_bucket(bucket_id, image_id):
        logger.warning("image_path_rejected", bucket=bucket_id, image_id=image_id)
        raise ObjectNotFoundError(bucket_id, image_id)

    key = CacheKey.from_request(
        image_id=image_id,
        bucket=bucket_id,
        width=s,
        crop=c,
        max_width=settings.MAX_WIDTH,
    )

    payload = await cache.resolve(key, fetcher.compute)

    return Response(
        content=payload.data,
        media_type=payload.content_type,
        headers={"Cache-Control": f"public, max-age={settings.RESPONSE_MAX_AGE_SECONDS}"},
    )
