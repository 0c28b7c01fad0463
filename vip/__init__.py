"""
vip - read-through image variant service

Serves resized, center-cropped and orientation-corrected variants of
images kept in an object store, computing each variant at most once.
"""

__version__ = "1.0.0"
