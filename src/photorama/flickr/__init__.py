"""Flickr REST API fetching and listing parsing."""

from .client import FlickrClient
from .parser import ParsedPhoto, parse_listing

__all__ = ["FlickrClient", "ParsedPhoto", "parse_listing"]
