from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from urllib.parse import urlencode

import requests

from photorama.config import DEFAULT_EXTRAS, FLICKR_REST_URL, FlickrConfig
from photorama.errors import TransportError
from photorama.schemas import FeedKind, Photo

from .parser import ParsedPhoto, parse_listing

logger = logging.getLogger(__name__)

_FEED_METHODS = {
    FeedKind.INTERESTING: "flickr.interestingness.getList",
    FeedKind.RECENT: "flickr.photos.getRecent",
}


class FlickrClient:
    """Flickr REST client: listing/image URLs, one GET per call, listing parsing."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = FLICKR_REST_URL,
        page_size: int = 100,
        extras: Sequence[str] = DEFAULT_EXTRAS,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key.strip():
            raise ValueError("Flickr API key is empty.")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.api_key = api_key.strip()
        self.base_url = base_url
        self.page_size = page_size
        self.extras = list(extras)
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", "photorama/0.1.0")

    @classmethod
    def from_env(
        cls,
        *,
        env_var: str = "FLICKR_API_KEY",
        base_url: str = FLICKR_REST_URL,
        page_size: int = 100,
        extras: Sequence[str] = DEFAULT_EXTRAS,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> FlickrClient:
        api_key = os.getenv(env_var, "").strip()
        if not api_key:
            raise ValueError(f"Environment variable {env_var} is not set.")
        return cls(
            api_key=api_key,
            base_url=base_url,
            page_size=page_size,
            extras=extras,
            timeout_seconds=timeout_seconds,
            session=session,
        )

    @classmethod
    def from_config(
        cls,
        config: FlickrConfig,
        *,
        env_var: str | None = None,
        session: requests.Session | None = None,
    ) -> FlickrClient:
        return cls.from_env(
            env_var=env_var or config.api_key_env,
            base_url=config.base_url,
            page_size=config.page_size,
            extras=config.extras,
            timeout_seconds=config.timeout_seconds,
            session=session,
        )

    def build_listing_url(self, kind: FeedKind) -> str:
        params = {
            "method": _FEED_METHODS[FeedKind(kind)],
            "api_key": self.api_key,
            "format": "json",
            "nojsoncallback": "1",
            "extras": ",".join(self.extras),
            "per_page": str(self.page_size),
        }
        return f"{self.base_url}?{urlencode(params)}"

    @staticmethod
    def build_image_url(photo: Photo | ParsedPhoto) -> str | None:
        return photo.remote_url or None

    @staticmethod
    def parse_listing(payload: bytes | str) -> list[ParsedPhoto]:
        return parse_listing(payload)

    def fetch_listing_bytes(self, kind: FeedKind) -> bytes:
        return self._get_bytes(self.build_listing_url(kind))

    def fetch_image_bytes(self, url: str) -> bytes:
        return self._get_bytes(url)

    def _get_bytes(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            logger.warning("http get failed url=%s status=%s", self._redact(url), status_code)
            raise TransportError(str(exc), url=url, status_code=status_code) from exc

        logger.debug(
            "http get ok url=%s status=%s bytes=%d",
            self._redact(url),
            response.status_code,
            len(response.content),
        )
        return response.content

    def _redact(self, url: str) -> str:
        return url.replace(self.api_key, "***")
