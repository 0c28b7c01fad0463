"""
Imagery Module

Value types for image variants: cache keys, formats and payloads.
"""

from vip.modules.imagery.models import CacheKey, ImageFormat, ImagePayload, ObjectMetadata

__all__ = ["CacheKey", "ImageFormat", "ImagePayload", "ObjectMetadata"]
