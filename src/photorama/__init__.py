"""Photorama: Flickr photo metadata store and image cache."""

from .config import AppConfig, load_config
from .schemas import FeedKind, Photo, Tag

__all__ = [
    "AppConfig",
    "FeedKind",
    "Photo",
    "Tag",
    "load_config",
]
