"""
Transform Pipeline

Pure functions over decoded images. A variant is produced by decoding the
original once, correcting its EXIF orientation, resizing, center-cropping
and encoding once in the format it was decoded as.
"""

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from vip.core.exceptions import ImageDecodeError, TransformError, UnsupportedFormatError
from vip.core.logging import get_logger, with_logging
from vip.core.metrics import track_stage_latency
from vip.modules.imagery.models import CacheKey, ImageFormat, ImagePayload

logger = get_logger(__name__)

ORIENTATION_TAG = 0x0112

# EXIF orientation -> counter-clockwise rotation that makes the image upright
EXIF_ROTATIONS = {
    6: 270,
    3: 180,
    8: 90,
}

_TRANSPOSE = {
    90: Image.Transpose.ROTATE_90,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_270,
}

DEFAULT_JPEG_QUALITY = 75


# =============================================================================
# Decode
# =============================================================================

def decode(data: bytes) -> Tuple[Image.Image, ImageFormat]:
    """
    Decode image bytes.

    Returns:
        Tuple of (loaded image, format it was decoded as)
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise ImageDecodeError(f"Failed to decode image: {e}") from e

    return image, ImageFormat.from_pil(image.format)


# =============================================================================
# Orientation
# =============================================================================

def rotation_angle(image: Image.Image) -> int:
    """Rotation needed by the EXIF orientation tag; 0 when absent or unreadable."""
    try:
        orientation = image.getexif().get(ORIENTATION_TAG)
    except Exception as e:
        # Broken EXIF blocks are common in the wild and never fatal
        logger.debug("exif_unreadable", error=str(e))
        return 0

    return EXIF_ROTATIONS.get(orientation, 0)


def correct_orientation(image: Image.Image) -> Image.Image:
    angle = rotation_angle(image)
    if angle == 0:
        return image
    return image.transpose(_TRANSPOSE[angle])


# =============================================================================
# Geometry
# =============================================================================

def resize(image: Image.Image, width: int) -> Image.Image:
    """Scale to ``width`` keeping the aspect ratio, with linear filtering."""
    factor = width / image.width
    height = max(1, int(image.height * factor))
    return image.resize((width, height), Image.Resampling.BILINEAR)


def center_crop(image: Image.Image) -> Image.Image:
    """Crop the largest centered square."""
    side = min(image.width, image.height)
    left = (image.width - side) // 2
    top = (image.height - side) // 2
    return image.crop((left, top, left + side, top + side))


# =============================================================================
# Encode
# =============================================================================

def encode(image: Image.Image, fmt: ImageFormat, jpeg_quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """
    Encode in ``fmt``.

    Raises:
        UnsupportedFormatError: fmt is neither JPEG nor PNG
    """
    if not fmt.encodable:
        raise UnsupportedFormatError(fmt.value)

    buffer = io.BytesIO()
    if fmt is ImageFormat.JPEG:
        if image.mode not in ("RGB", "L", "CMYK"):
            image = image.convert("RGB")
        image.save(buffer, format="JPEG", quality=jpeg_quality)
    else:
        image.save(buffer, format="PNG")

    return buffer.getvalue()


# =============================================================================
# Full transform
# =============================================================================

@with_logging("transform")
def transform(
    data: bytes,
    key: CacheKey,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
) -> ImagePayload:
    """
    Produce the variant described by ``key`` from original bytes.

    Crop is applied after resize, or to the original when width is 0.

    Raises:
        ImageDecodeError: The original could not be decoded
        UnsupportedFormatError: The original decoded as a format with no encoder
        TransformError: Resize or crop failed
    """
    with track_stage_latency("transform"):
        image, fmt = decode(data)
        if not fmt.encodable:
            raise UnsupportedFormatError(fmt.value)

        source_size = image.size
        try:
            image = correct_orientation(image)
            if key.width != 0:
                image = resize(image, key.width)
            if key.crop:
                image = center_crop(image)
        except (OSError, ValueError, MemoryError) as e:
            raise TransformError(f"Failed to transform image: {e}") from e

        encoded = encode(image, fmt, jpeg_quality)

    logger.debug(
        "variant_transformed",
        format=fmt.value,
        source_size=list(source_size),
        output_size=list(image.size),
        output_bytes=len(encoded)
    )
    return ImagePayload(data=encoded, format=fmt)
