from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from photorama.config import AppConfig
from photorama.errors import (
    CacheError,
    DecodeError,
    FetchError,
    MissingImageURLError,
    ParseError,
    StoreError,
    TransportError,
)
from photorama.flickr import FlickrClient
from photorama.imaging import PhotoImage, decode_image
from photorama.schemas import FeedKind, Photo, Tag
from photorama.storage import ImageCache, MetadataStore

from .completion import CompletionContext, ThreadCompletionContext

logger = logging.getLogger(__name__)

Callback = Callable[[Future[Any]], None]


class RequestState(StrEnum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class _Request:
    key: str
    future: Future[Any] = field(default_factory=Future)
    state: RequestState = RequestState.PENDING


class FetchCoordinator:
    """Entry point for presentation code.

    Network and disk work runs on a worker pool; every operation returns a
    ``Future`` and, when given, calls ``callback(future)`` exactly once on the
    completion context. Concurrent ``fetch_image`` calls for one photo share a
    single request.
    """

    def __init__(
        self,
        *,
        client: FlickrClient,
        store: MetadataStore,
        cache: ImageCache,
        completion: CompletionContext | None = None,
        max_workers: int = 4,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.client = client
        self.store = store
        self.cache = cache
        self.completion = completion or ThreadCompletionContext()
        self._owns_completion = completion is None
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="photorama-fetch"
        )
        self._inflight_lock = threading.Lock()
        self._inflight_images: dict[str, _Request] = {}

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        api_key_env: str | None = None,
        completion: CompletionContext | None = None,
    ) -> FetchCoordinator:
        return cls(
            client=FlickrClient.from_config(config.flickr, env_var=api_key_env),
            store=MetadataStore(config.storage.db_path),
            cache=ImageCache(config.caching.directory),
            completion=completion,
            max_workers=config.fetch.max_workers,
        )

    def fetch_listing(
        self, kind: FeedKind, callback: Callback | None = None
    ) -> Future[list[Photo]]:
        feed = FeedKind(kind)
        request = _Request(key=f"listing:{feed.value}")
        return self._submit(request, callback, self._load_listing, feed)

    def fetch_image(
        self, photo: Photo, callback: Callback | None = None
    ) -> Future[PhotoImage]:
        key = photo.photo_id
        has_source = (
            self.client.build_image_url(photo) is not None or self.cache.contains(key)
        )

        with self._inflight_lock:
            request = self._inflight_images.get(key)
            if request is not None:
                logger.info("image fetch joined in-flight key=%s", key)
                self._attach(request.future, callback)
                return request.future

            if not has_source:
                raise MissingImageURLError(key)

            request = _Request(key=f"image:{key}")
            self._inflight_images[key] = request

        return self._submit(
            request,
            callback,
            self._load_image,
            photo,
            on_finish=lambda: self._release_image(key),
        )

    def set_favorite(
        self, photo_id: str, favorite: bool, callback: Callback | None = None
    ) -> Future[Photo]:
        request = _Request(key=f"favorite:{photo_id}")
        return self._submit(request, callback, self._save_favorite, photo_id, favorite)

    def increment_view_count(
        self, photo_id: str, callback: Callback | None = None
    ) -> Future[Photo]:
        request = _Request(key=f"view:{photo_id}")
        return self._submit(request, callback, self._save_view, photo_id)

    def fetch_photos(
        self, *, favorites_only: bool = False, callback: Callback | None = None
    ) -> Future[list[Photo]]:
        request = _Request(key="photos:favorites" if favorites_only else "photos:all")
        loader = self.store.fetch_favorites if favorites_only else self.store.fetch_all
        return self._submit(request, callback, loader)

    def fetch_tags(self, callback: Callback | None = None) -> Future[list[Tag]]:
        request = _Request(key="tags")
        return self._submit(request, callback, self.store.fetch_all_tags)

    def in_flight_images(self) -> list[str]:
        with self._inflight_lock:
            return sorted(self._inflight_images)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self._owns_completion:
            self.completion.close()

    def __enter__(self) -> FetchCoordinator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _load_listing(self, kind: FeedKind) -> list[Photo]:
        try:
            payload = self.client.fetch_listing_bytes(kind)
        except TransportError as exc:
            raise FetchError.transport(exc) from exc

        try:
            records = self.client.parse_listing(payload)
        except ParseError as exc:
            raise FetchError.parse(exc) from exc

        try:
            self.store.upsert_photos(records)
            photos = self.store.fetch_all()
        except StoreError as exc:
            raise FetchError.store(exc) from exc

        logger.info("listing fetched kind=%s parsed=%d stored=%d", kind, len(records), len(photos))
        return photos

    def _load_image(self, photo: Photo) -> PhotoImage:
        key = photo.photo_id
        cached = self.cache.lookup(key)
        if cached is not None:
            try:
                return decode_image(key, cached)
            except DecodeError:
                logger.warning("cached image unreadable key=%s, refetching", key)

        url = self.client.build_image_url(photo)
        if url is None:
            raise MissingImageURLError(key)

        try:
            data = self.client.fetch_image_bytes(url)
        except TransportError as exc:
            raise FetchError.transport(exc) from exc

        try:
            image = decode_image(key, data)
        except DecodeError as exc:
            raise FetchError.decode(exc) from exc

        try:
            self.cache.store(key, data)
        except CacheError:
            logger.exception("failed to cache image key=%s", key)

        logger.info("image downloaded key=%s bytes=%d", key, len(data))
        return image

    def _save_favorite(self, photo_id: str, favorite: bool) -> Photo:
        photo = self.store.set_favorite(photo_id, favorite)
        self.store.save_if_dirty()
        return photo

    def _save_view(self, photo_id: str) -> Photo:
        photo = self.store.increment_view_count(photo_id)
        self.store.save_if_dirty()
        return photo

    def _release_image(self, key: str) -> None:
        with self._inflight_lock:
            self._inflight_images.pop(key, None)

    def _submit(
        self,
        request: _Request,
        callback: Callback | None,
        fn: Callable[..., Any],
        *args: Any,
        on_finish: Callable[[], None] | None = None,
    ) -> Future[Any]:
        # Running from the start: there is no cancellation in this core.
        request.future.set_running_or_notify_cancel()
        self._attach(request.future, callback)
        try:
            self._executor.submit(self._run, request, fn, args, on_finish)
        except RuntimeError:
            if on_finish is not None:
                on_finish()
            raise
        return request.future

    def _run(
        self,
        request: _Request,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        on_finish: Callable[[], None] | None,
    ) -> None:
        self._transition(request, RequestState.IN_FLIGHT)
        try:
            result = fn(*args)
        except Exception as exc:
            self._transition(request, RequestState.FAILED)
            if on_finish is not None:
                on_finish()
            request.future.set_exception(exc)
            return

        self._transition(request, RequestState.COMPLETED)
        if on_finish is not None:
            on_finish()
        request.future.set_result(result)

    def _attach(self, future: Future[Any], callback: Callback | None) -> None:
        if callback is None:
            return
        future.add_done_callback(lambda done: self.completion.post(callback, done))

    @staticmethod
    def _transition(request: _Request, state: RequestState) -> None:
        logger.debug("request key=%s state=%s->%s", request.key, request.state, state)
        request.state = state
