"""
Image Variant Pipeline

Read-through orchestration over the object store and the
decode -> orient -> resize -> crop -> encode transform chain.
"""

from vip.pipeline.orchestrator import ImageFetcher
from vip.pipeline.transforms import transform

__all__ = ["ImageFetcher", "transform"]
