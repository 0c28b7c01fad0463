"""
Storage Abstraction Layer - The Bridge Pattern

Provides the object store interface the variant pipeline reads originals
from and persists modified variants to, with LocalImageStore (development)
and S3ImageStore (production).
"""

import asyncio
import mimetypes
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vip.core.config import settings
from vip.core.exceptions import ObjectNotFoundError, StorageError
from vip.core.logging import get_logger
from vip.modules.imagery.models import CacheKey, ImageFormat, ObjectMetadata

logger = get_logger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


class IImageStore(ABC):
    """Interface for object store operations - The Bridge"""

    @abstractmethod
    async def head(self, bucket: str, image_id: str) -> ObjectMetadata:
        """
        Look up metadata of an original without reading it.

        Raises:
            ObjectNotFoundError: The original does not exist
            StorageError: The lookup failed
        """
        pass

    @abstractmethod
    async def read_original(self, bucket: str, image_id: str) -> bytes:
        """
        Read the original object.

        Raises:
            ObjectNotFoundError: The original does not exist
            StorageError: The read failed
        """
        pass

    @abstractmethod
    async def read_modified(self, bucket: str, image_id: str, key: CacheKey) -> bytes:
        """
        Read a previously persisted variant for ``key``.

        Raises:
            ObjectNotFoundError: No variant was persisted for this key
            StorageError: The read failed
        """
        pass

    @abstractmethod
    async def write_modified(
        self,
        data: bytes,
        bucket: str,
        image_id: str,
        key: CacheKey
    ) -> None:
        """Persist a computed variant under the key-derived object name."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the backend is reachable."""
        pass


def _content_type_for(data: bytes, name: str) -> str:
    fmt = ImageFormat.sniff(data)
    if fmt is not ImageFormat.UNSUPPORTED:
        return fmt.content_type
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


class LocalImageStore(IImageStore):
    """
    Filesystem store for development.

    Layout:
        {base_path}/{bucket}/{image_id}                            originals
        {base_path}/{bucket}/{modified_prefix}/{modified_name}     variants

    Paths that resolve outside base_path are treated as missing objects.
    """

    def __init__(self, base_path: str = "./data/storage", modified_prefix: str = "modified"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.modified_prefix = modified_prefix
        self._root = self.base_path.resolve()

    def _contained(self, path: Path) -> bool:
        return path.resolve().is_relative_to(self._root)

    def _original_path(self, bucket: str, image_id: str) -> Path:
        path = self.base_path / bucket / image_id
        if not self._contained(path):
            logger.warning("storage_path_rejected", bucket=bucket, name=image_id)
            raise ObjectNotFoundError(bucket, image_id)
        return path

    def _modified_path(self, bucket: str, key: CacheKey) -> Path:
        path = self.base_path / bucket / self.modified_prefix / key.modified_name
        if not self._contained(path):
            logger.warning("storage_path_rejected", bucket=bucket, name=key.modified_name)
            raise ObjectNotFoundError(bucket, key.modified_name)
        return path

    def _read(self, path: Path, bucket: str, name: str) -> bytes:
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError) as e:
            raise ObjectNotFoundError(bucket, name) from e
        except OSError as e:
            raise StorageError(f"Failed to read '{bucket}/{name}': {e}") from e

    async def head(self, bucket: str, image_id: str) -> ObjectMetadata:
        path = self._original_path(bucket, image_id)
        if not path.is_file():
            raise ObjectNotFoundError(bucket, image_id)

        with open(path, "rb") as f:
            magic = f.read(16)

        return ObjectMetadata(
            content_type=_content_type_for(magic, image_id),
            content_length=path.stat().st_size,
        )

    async def read_original(self, bucket: str, image_id: str) -> bytes:
        return self._read(self._original_path(bucket, image_id), bucket, image_id)

    async def read_modified(self, bucket: str, image_id: str, key: CacheKey) -> bytes:
        return self._read(self._modified_path(bucket, key), bucket, key.modified_name)

    async def write_modified(
        self,
        data: bytes,
        bucket: str,
        image_id: str,
        key: CacheKey
    ) -> None:
        try:
            path = self._modified_path(bucket, key)
        except ObjectNotFoundError as e:
            raise StorageError(f"Refusing to write '{bucket}/{key.modified_name}' outside storage") from e

        # Write then rename so readers never see a partial variant;
        # the temp name is unique per writer
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(data)
            tmp_path.replace(path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write '{bucket}/{key.modified_name}': {e}") from e

    async def ping(self) -> bool:
        return self.base_path.is_dir()


class S3ImageStore(IImageStore):
    """
    S3 (or S3-compatible) store for production.

    boto3 is blocking, so every call runs in a worker thread.
    Variants are stored in the same bucket under ``modified_prefix``.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        modified_prefix: str = "modified",
        client=None,
    ):
        if client is None:
            client_args = {
                "region_name": region,
                "endpoint_url": endpoint_url,
                "aws_access_key_id": access_key_id,
                "aws_secret_access_key": secret_access_key,
            }
            session = boto3.session.Session()
            client = session.client("s3", **{k: v for k, v in client_args.items() if v})
        self._client = client
        self.modified_prefix = modified_prefix

    def _modified_object(self, key: CacheKey) -> str:
        return f"{self.modified_prefix}/{key.modified_name}"

    async def _call(self, bucket: str, name: str, method, **kwargs):
        try:
            return await asyncio.to_thread(method, Bucket=bucket, **kwargs)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket, name) from e
            raise StorageError(
                f"S3 error on '{bucket}/{name}': {error_code or e}",
                details={"s3_code": error_code}
            ) from e
        except BotoCoreError as e:
            raise StorageError(f"S3 request for '{bucket}/{name}' failed: {e}") from e

    async def _get(self, bucket: str, name: str) -> bytes:
        response = await self._call(bucket, name, self._client.get_object, Key=name)
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        except (BotoCoreError, OSError) as e:
            raise StorageError(f"Failed to read body of '{bucket}/{name}': {e}") from e
        finally:
            body.close()

    async def head(self, bucket: str, image_id: str) -> ObjectMetadata:
        response = await self._call(bucket, image_id, self._client.head_object, Key=image_id)
        return ObjectMetadata(
            content_type=response.get("ContentType", "application/octet-stream"),
            content_length=int(response.get("ContentLength", 0)),
        )

    async def read_original(self, bucket: str, image_id: str) -> bytes:
        return await self._get(bucket, image_id)

    async def read_modified(self, bucket: str, image_id: str, key: CacheKey) -> bytes:
        return await self._get(bucket, self._modified_object(key))

    async def write_modified(
        self,
        data: bytes,
        bucket: str,
        image_id: str,
        key: CacheKey
    ) -> None:
        name = self._modified_object(key)
        await self._call(
            bucket,
            name,
            self._client.put_object,
            Key=name,
            Body=data,
            ContentType=_content_type_for(data, image_id),
        )

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._client.list_buckets)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("s3_ping_failed", error=str(e))
            return False


class StorageFactory:
    """
    Factory for creating storage instances.

    STORAGE_BACKEND=local serves originals from LOCAL_STORAGE_PATH;
    STORAGE_BACKEND=s3 talks to S3 (or MinIO via S3_ENDPOINT_URL).
    """

    _instance: Optional[IImageStore] = None

    @classmethod
    def get_storage(cls) -> IImageStore:
        """Get the appropriate storage implementation based on settings."""
        if cls._instance is None:
            backend = settings.STORAGE_BACKEND.lower()
            if backend == "s3":
                cls._instance = S3ImageStore(
                    region=settings.S3_REGION,
                    endpoint_url=settings.S3_ENDPOINT_URL,
                    access_key_id=settings.AWS_ACCESS_KEY_ID,
                    secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                    modified_prefix=settings.MODIFIED_PREFIX,
                )
            elif backend == "local":
                cls._instance = LocalImageStore(
                    base_path=settings.LOCAL_STORAGE_PATH,
                    modified_prefix=settings.MODIFIED_PREFIX,
                )
            else:
                raise ValueError(f"Unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}'")
            logger.info("storage_initialized", backend=backend)

        return cls._instance

    @classmethod
    def reset(cls):
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None
