"""
Read-through Fetch Orchestrator

Computes a variant on a cache miss:
1. Head lookup on the original (non-fatal)
2. GIFs are served as stored
3. A persisted modified variant is served as stored
4. Otherwise the original is fetched and transformed
5. The result is written back to the store in the background

Request coalescing lives in the cache in front of this class; compute()
itself takes no locks.
"""

import asyncio

from vip.core.background import WriteBackPool
from vip.core.exceptions import ObjectNotFoundError, StorageError
from vip.core.logging import LogContext, get_logger
from vip.core.metrics import record_cache_hit, record_cache_miss, track_stage_latency
from vip.core.storage import IImageStore
from vip.modules.imagery.models import CacheKey, ImageFormat, ImagePayload
from vip.pipeline.transforms import DEFAULT_JPEG_QUALITY, transform

logger = get_logger(__name__)


class ImageFetcher:
    """Produces variant bytes for a CacheKey from the object store."""

    def __init__(
        self,
        storage: IImageStore,
        writer: WriteBackPool,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ):
        self.storage = storage
        self.writer = writer
        self.jpeg_quality = jpeg_quality

    async def compute(self, key: CacheKey) -> ImagePayload:
        """
        Compute the variant for ``key``.

        Raises:
            ObjectNotFoundError: No modified variant and no original
            StorageError: The original could not be read
            ImageDecodeError, UnsupportedFormatError, TransformError:
                The original could not be turned into the variant
        """
        with LogContext(image=str(key)):
            if await self._is_gif(key):
                # Re-encoding would drop animation frames
                with track_stage_latency("read_original"):
                    data = await self.storage.read_original(key.bucket, key.image_id)
                logger.info("gif_served_as_original", size=len(data))
                return ImagePayload(data=data, format=ImageFormat.GIF)

            modified = await self._read_modified(key)
            if modified is not None:
                logger.info("modified_variant_served", size=modified.size)
                return modified

            with track_stage_latency("read_original"):
                original = await self.storage.read_original(key.bucket, key.image_id)

            if key.needs_transform:
                payload = await asyncio.to_thread(transform, original, key, self.jpeg_quality)
            else:
                payload = ImagePayload.from_bytes(original)

            self.writer.submit(
                "write_modified",
                lambda: self.storage.write_modified(payload.data, key.bucket, key.image_id, key),
                image=str(key),
            )

            logger.info("variant_computed", size=payload.size, format=payload.format.value)
            return payload

    async def _is_gif(self, key: CacheKey) -> bool:
        try:
            with track_stage_latency("head"):
                metadata = await self.storage.head(key.bucket, key.image_id)
        except StorageError as e:
            # Missing metadata must not block the fetch attempt
            logger.warning("head_lookup_failed", error=e.message)
            return False

        return metadata.format is ImageFormat.GIF

    async def _read_modified(self, key: CacheKey):
        try:
            with track_stage_latency("read_modified"):
                data = await self.storage.read_modified(key.bucket, key.image_id, key)
        except ObjectNotFoundError:
            record_cache_miss("modified")
            return None
        except StorageError as e:
            logger.warning("modified_lookup_failed", error=e.message)
            record_cache_miss("modified")
            return None

        record_cache_hit("modified")
        return ImagePayload.from_bytes(data)
