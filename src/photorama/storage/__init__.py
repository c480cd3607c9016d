"""Storage layer for the image file cache + SQLite photo metadata."""

from .cache import ImageCache
from .repo import MetadataStore

__all__ = ["ImageCache", "MetadataStore"]
