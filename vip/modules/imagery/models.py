"""
Image Variant Models

Value types shared by the cache, the object store and the pipeline:
- CacheKey: which variant of which image
- ImageFormat: closed set of formats the service can tell apart
- ImagePayload: encoded bytes plus their format
- ObjectMetadata: result of a store head lookup
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ImageFormat(str, Enum):
    """Encoded image formats."""
    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_pil(cls, name: Optional[str]) -> "ImageFormat":
        """Map a Pillow ``Image.format`` name."""
        return _PIL_FORMATS.get((name or "").upper(), cls.UNSUPPORTED)

    @classmethod
    def sniff(cls, data: bytes) -> "ImageFormat":
        """Detect the format from the leading magic bytes."""
        if data.startswith(b"\xff\xd8\xff"):
            return cls.JPEG
        if data.startswith(b"\x89PNG\r\n\x1a\n"):
            return cls.PNG
        if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
            return cls.GIF
        return cls.UNSUPPORTED

    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> "ImageFormat":
        mime = (content_type or "").split(";")[0].strip().lower()
        for fmt, known in _CONTENT_TYPES.items():
            if mime == known:
                return fmt
        if mime == "image/jpg":
            return cls.JPEG
        return cls.UNSUPPORTED

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES.get(self, "application/octet-stream")

    @property
    def encodable(self) -> bool:
        """Only JPEG and PNG have output encoders."""
        return self in (ImageFormat.JPEG, ImageFormat.PNG)


_PIL_FORMATS = {
    "JPEG": ImageFormat.JPEG,
    "MPO": ImageFormat.JPEG,  # multi-picture JPEGs from phone cameras
    "PNG": ImageFormat.PNG,
    "GIF": ImageFormat.GIF,
}

_CONTENT_TYPES = {
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.PNG: "image/png",
    ImageFormat.GIF: "image/gif",
}


@dataclass(frozen=True)
class CacheKey:
    """
    Identifies one variant of one stored image.

    Two equal keys must always resolve to bit-identical output; the
    in-process cache, the Redis tier and the persisted modified objects
    all rely on it.

    Attributes:
        bucket: Storage namespace of the original
        image_id: Object identifier within the bucket
        width: Target width in pixels, 0 means no resize
        crop: Center-crop to a square after resizing
    """
    bucket: str
    image_id: str
    width: int = 0
    crop: bool = False

    @classmethod
    def from_request(
        cls,
        image_id: str,
        bucket: str,
        width: Optional[str],
        crop: Optional[str],
        max_width: int,
    ) -> "CacheKey":
        """
        Build a key from raw request parameters.

        Unparseable or negative widths mean "no resize"; widths above
        ``max_width`` are clamped so the key space stays bounded.
        """
        try:
            parsed = int(width) if width is not None else 0
        except ValueError:
            parsed = 0
        parsed = max(0, min(parsed, max_width))

        return cls(
            bucket=bucket,
            image_id=image_id,
            width=parsed,
            crop=(crop or "").lower() == "true",
        )

    @property
    def needs_transform(self) -> bool:
        return self.width != 0 or self.crop

    @property
    def modified_name(self) -> str:
        """Object name of the persisted variant, relative to the bucket's modified prefix."""
        name = f"{self.image_id}/s{self.width}"
        if self.crop:
            name += "_crop"
        return name

    def redis_key(self, prefix: str) -> str:
        return f"{prefix}:{self.bucket}:{self.image_id}:{self.width}:{int(self.crop)}"

    def __str__(self) -> str:
        return f"{self.bucket}/{self.image_id}?s={self.width}&c={str(self.crop).lower()}"


@dataclass(frozen=True)
class ImagePayload:
    """Encoded image bytes ready to be served."""
    data: bytes
    format: ImageFormat

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImagePayload":
        return cls(data=data, format=ImageFormat.sniff(data))

    @property
    def content_type(self) -> str:
        return self.format.content_type

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ObjectMetadata:
    """Lightweight metadata returned by a store head lookup."""
    content_type: str
    content_length: int = 0

    @property
    def format(self) -> ImageFormat:
        return ImageFormat.from_content_type(self.content_type)
