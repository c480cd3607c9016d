from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from photorama.errors import PhotoNotFoundError, StoreError
from photorama.flickr.parser import ParsedPhoto
from photorama.schemas import Photo, Tag

logger = logging.getLogger(__name__)

_PHOTO_COLUMNS = "photo_id, title, remote_url, date_taken, view_count, favorite"


@dataclass(slots=True)
class _PendingChange:
    favorite: bool | None = None
    view_increment: int = 0


class MetadataStore:
    """SQLite-backed Photo/Tag store.

    Writes are serialized through a single writer lock, reads open their own
    connections and may run concurrently. Favorite toggles and view-count
    increments are staged in memory and become durable on ``save_if_dirty``;
    reads see staged changes immediately.
    """

    def __init__(self, db_path: str | Path, *, busy_timeout_seconds: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout_seconds = busy_timeout_seconds
        self._write_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending: dict[str, _PendingChange] = {}
        self._init_schema()

    def upsert_photos(self, records: Iterable[ParsedPhoto]) -> list[str]:
        photo_query = """
        INSERT INTO photos (photo_id, title, remote_url, date_taken)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(photo_id) DO NOTHING
        """
        tag_query = "INSERT INTO tags (name) VALUES (?) ON CONFLICT(name) DO NOTHING"
        link_query = """
        INSERT OR IGNORE INTO photo_tags (photo_id, tag_id)
        SELECT ?, id FROM tags WHERE name = ?
        """

        affected: list[str] = []
        seen: set[str] = set()
        with self._write_lock, self._connect() as conn:
            for record in records:
                conn.execute(
                    photo_query,
                    (
                        record.photo_id,
                        record.title,
                        record.remote_url,
                        record.date_taken.isoformat() if record.date_taken else None,
                    ),
                )
                for tag_name in record.tags:
                    conn.execute(tag_query, (tag_name,))
                    conn.execute(link_query, (record.photo_id, tag_name))

                if record.photo_id not in seen:
                    seen.add(record.photo_id)
                    affected.append(record.photo_id)

        logger.info("metadata_store upsert photos=%d", len(affected))
        return affected

    def fetch_all(self) -> list[Photo]:
        query = f"""
        SELECT {_PHOTO_COLUMNS}
        FROM photos
        ORDER BY date_taken ASC, photo_id ASC
        """
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
            tags = self._load_tags(conn)

        return self._apply_pending([self._row_to_photo(row, tags) for row in rows])

    def fetch_favorites(self) -> list[Photo]:
        with self._pending_lock:
            staged_ids = [
                photo_id
                for photo_id, change in self._pending.items()
                if change.favorite is not None
            ]

        query = f"""
        SELECT {_PHOTO_COLUMNS}
        FROM photos
        WHERE favorite = 1
        """
        params: tuple[object, ...] = ()
        if staged_ids:
            placeholders = ", ".join("?" for _ in staged_ids)
            query += f" OR photo_id IN ({placeholders})"
            params = tuple(staged_ids)
        query += " ORDER BY date_taken ASC, photo_id ASC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            tags = self._load_tags(conn)

        photos = self._apply_pending([self._row_to_photo(row, tags) for row in rows])
        return [photo for photo in photos if photo.favorite]

    def fetch_all_tags(self) -> list[Tag]:
        query = """
        SELECT t.name AS name, pt.photo_id AS photo_id
        FROM tags t
        LEFT JOIN photo_tags pt ON pt.tag_id = t.id
        ORDER BY t.name ASC, pt.photo_id ASC
        """
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()

        grouped: dict[str, list[str]] = {}
        for row in rows:
            photo_ids = grouped.setdefault(row["name"], [])
            if row["photo_id"] is not None:
                photo_ids.append(row["photo_id"])
        return [Tag(name=name, photo_ids=photo_ids) for name, photo_ids in grouped.items()]

    def get_photo(self, photo_id: str) -> Photo | None:
        photos = self.get_photos([photo_id])
        return photos[0] if photos else None

    def get_photos(self, photo_ids: Sequence[str]) -> list[Photo]:
        """Primary-key read path; keeps input order and skips unknown ids."""
        return self._apply_pending(self._load_photos(photo_ids))

    def set_favorite(self, photo_id: str, favorite: bool) -> Photo:
        with self._pending_lock:
            photo = self._load_photo(photo_id)
            change = self._pending.setdefault(photo_id, _PendingChange())
            change.favorite = favorite
            staged = self._merge_pending([photo], {photo_id: change})[0]
        logger.debug("metadata_store staged favorite photo_id=%s favorite=%s", photo_id, favorite)
        return staged

    def increment_view_count(self, photo_id: str) -> Photo:
        with self._pending_lock:
            photo = self._load_photo(photo_id)
            change = self._pending.setdefault(photo_id, _PendingChange())
            change.view_increment += 1
            staged = self._merge_pending([photo], {photo_id: change})[0]
        logger.debug("metadata_store staged view photo_id=%s views=%d", photo_id, staged.view_count)
        return staged

    @property
    def has_changes(self) -> bool:
        with self._pending_lock:
            return bool(self._pending)

    def save_if_dirty(self) -> bool:
        query = """
        UPDATE photos
        SET favorite = COALESCE(?, favorite),
            view_count = view_count + ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE photo_id = ?
        """
        with self._write_lock, self._pending_lock:
            if not self._pending:
                return False

            payloads = [
                (
                    None if change.favorite is None else int(change.favorite),
                    change.view_increment,
                    photo_id,
                )
                for photo_id, change in self._pending.items()
            ]
            with self._connect() as conn:
                conn.executemany(query, payloads)

            # Only reached after a successful commit; failures keep the staged changes.
            self._pending.clear()

        logger.info("metadata_store saved changes photos=%d", len(payloads))
        return True

    def _load_photos(self, photo_ids: Sequence[str]) -> list[Photo]:
        """Durable rows only, without staged changes."""
        unique_ids = list(dict.fromkeys(photo_ids))
        if not unique_ids:
            return []

        placeholders = ", ".join("?" for _ in unique_ids)
        query = f"""
        SELECT {_PHOTO_COLUMNS}
        FROM photos
        WHERE photo_id IN ({placeholders})
        """
        with self._connect() as conn:
            rows = conn.execute(query, tuple(unique_ids)).fetchall()
            tags = self._load_tags(conn, unique_ids)

        by_id = {row["photo_id"]: self._row_to_photo(row, tags) for row in rows}
        return [by_id[photo_id] for photo_id in unique_ids if photo_id in by_id]

    def _load_photo(self, photo_id: str) -> Photo:
        photos = self._load_photos([photo_id])
        if not photos:
            raise PhotoNotFoundError(photo_id)
        return photos[0]

    def _apply_pending(self, photos: list[Photo]) -> list[Photo]:
        with self._pending_lock:
            if not self._pending:
                return photos
            pending = {
                photo_id: _PendingChange(change.favorite, change.view_increment)
                for photo_id, change in self._pending.items()
            }
        return self._merge_pending(photos, pending)

    @staticmethod
    def _merge_pending(
        photos: list[Photo], pending: dict[str, _PendingChange]
    ) -> list[Photo]:
        merged: list[Photo] = []
        for photo in photos:
            change = pending.get(photo.photo_id)
            if change is None:
                merged.append(photo)
                continue
            update: dict[str, object] = {"view_count": photo.view_count + change.view_increment}
            if change.favorite is not None:
                update["favorite"] = change.favorite
            merged.append(photo.model_copy(update=update))
        return merged

    def _init_schema(self) -> None:
        schema_path = Path(__file__).with_name("schema.sql")
        schema = schema_path.read_text(encoding="utf-8")
        with self._write_lock, self._connect() as conn:
            conn.executescript(schema)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_seconds)
        except sqlite3.Error as exc:
            raise StoreError(f"failed to open metadata store: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"metadata store operation failed: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _load_tags(
        conn: sqlite3.Connection, photo_ids: Sequence[str] | None = None
    ) -> dict[str, list[str]]:
        query = """
        SELECT pt.photo_id AS photo_id, t.name AS name
        FROM photo_tags pt
        INNER JOIN tags t ON t.id = pt.tag_id
        """
        params: tuple[object, ...] = ()
        if photo_ids is not None:
            placeholders = ", ".join("?" for _ in photo_ids)
            query += f" WHERE pt.photo_id IN ({placeholders})"
            params = tuple(photo_ids)
        query += " ORDER BY t.name ASC"

        tags: dict[str, list[str]] = {}
        for row in conn.execute(query, params).fetchall():
            tags.setdefault(row["photo_id"], []).append(row["name"])
        return tags

    @staticmethod
    def _row_to_photo(row: sqlite3.Row, tags: dict[str, list[str]]) -> Photo:
        return Photo(
            photo_id=row["photo_id"],
            title=row["title"],
            remote_url=row["remote_url"],
            date_taken=row["date_taken"],
            view_count=row["view_count"],
            favorite=bool(row["favorite"]),
            tags=tags.get(row["photo_id"], []),
        )
