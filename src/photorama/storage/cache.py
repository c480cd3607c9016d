from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from urllib.parse import quote

from photorama.errors import CacheError

logger = logging.getLogger(__name__)


class ImageCache:
    """Unbounded on-disk image store: one file per photo id, raw bytes, no expiry."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lookup(self, key: str) -> bytes | None:
        path = self.path_for(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.debug("image_cache miss key=%s", key)
            return None
        except OSError:
            logger.warning("image_cache unreadable key=%s path=%s", key, path, exc_info=True)
            return None

        logger.debug("image_cache hit key=%s bytes=%d", key, len(data))
        return data

    def store(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        with self._lock_for(key):
            tmp_name: str | None = None
            try:
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{path.name}.", suffix=".tmp", dir=self.directory
                )
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp_name, path)
                tmp_name = None
            except OSError as exc:
                raise CacheError(f"failed to write cache entry: {exc}", key=key) from exc
            finally:
                if tmp_name is not None and os.path.exists(tmp_name):
                    os.unlink(tmp_name)

        logger.info("image_cache set key=%s bytes=%d", key, len(data))

    def contains(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def path_for(self, key: str) -> Path:
        if not key:
            raise ValueError("image cache key must not be empty")
        return self.directory / self._file_name(key)

    @staticmethod
    def _file_name(key: str) -> str:
        # Any photo id maps to exactly one file name inside the cache directory.
        name = quote(key, safe="")
        if name in {".", ".."}:
            name = name.replace(".", "%2E")
        return name

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock
