from __future__ import annotations

import sqlite3
import threading
from datetime import UTC, datetime

import pytest

from photorama.errors import PhotoNotFoundError, StoreError
from photorama.flickr import ParsedPhoto, parse_listing
from photorama.storage import MetadataStore


def _record(
    photo_id: str,
    *,
    title: str = "",
    day: int | None = 1,
    tags: list[str] | None = None,
    url: str | None = None,
) -> ParsedPhoto:
    return ParsedPhoto(
        photo_id=photo_id,
        title=title,
        remote_url=url,
        date_taken=datetime(2017, 8, day, 12, 0, tzinfo=UTC) if day is not None else None,
        tags=list(tags or []),
    )


def _add_trigger(db_path, sql: str) -> None:
    conn = sqlite3.connect(db_path)
    try:
        with conn:
            conn.execute(sql)
    finally:
        conn.close()


def test_upsert_is_idempotent(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    records = [
        _record("1", title="first", tags=["sky", "sea"]),
        _record("2", title="second", day=2, tags=["sky"]),
    ]

    assert store.upsert_photos(records) == ["1", "2"]
    once = store.fetch_all()
    once_tags = store.fetch_all_tags()

    assert store.upsert_photos(records) == ["1", "2"]
    assert store.fetch_all() == once
    assert store.fetch_all_tags() == once_tags
    assert [tag.name for tag in once_tags] == ["sea", "sky"]


def test_duplicate_listing_entries_resolve_to_one_photo(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    payload = (
        b'{"photos":{"photo":[{"id":"1","title":"A","url_z":"http://x/1.jpg"},'
        b'{"id":"1","title":"B"}]}}'
    )

    for _ in range(2):
        affected = store.upsert_photos(parse_listing(payload))
        assert affected == ["1"]

    photos = store.fetch_all()
    assert len(photos) == 1
    assert photos[0].photo_id == "1"
    assert photos[0].title == "A"
    assert photos[0].remote_url == "http://x/1.jpg"


def test_upsert_keeps_existing_fields_and_merges_tags(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    store.upsert_photos([_record("1", title="original", tags=["sky"], url="http://x/1.jpg")])
    store.set_favorite("1", True)
    store.save_if_dirty()

    store.upsert_photos([_record("1", title="renamed", day=9, tags=["sea", "sky"])])

    photo = store.get_photo("1")
    assert photo is not None
    assert photo.title == "original"
    assert photo.remote_url == "http://x/1.jpg"
    assert photo.date_taken == datetime(2017, 8, 1, 12, 0, tzinfo=UTC)
    assert photo.favorite is True
    assert photo.tags == ["sea", "sky"]


def test_tags_are_unique_by_name(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    store.upsert_photos([_record("1", tags=["sunset"])])
    store.upsert_photos([_record("2", tags=["sunset", "beach"])])

    tags = store.fetch_all_tags()

    assert [tag.name for tag in tags] == ["beach", "sunset"]
    assert tags[1].photo_ids == ["1", "2"]


def test_fetch_all_sorted_by_date_then_identifier(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    store.upsert_photos(
        [
            _record("b", day=3),
            _record("c", day=2),
            _record("a", day=3),
            _record("undated", day=None),
        ]
    )

    assert [photo.photo_id for photo in store.fetch_all()] == ["undated", "c", "a", "b"]


def test_fetch_favorites_is_filtered_subset_of_fetch_all(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    store.upsert_photos([_record(str(i), day=10 - i) for i in range(1, 7)])
    for photo_id in ["2", "5", "6"]:
        store.set_favorite(photo_id, True)
    store.set_favorite("6", False)

    expected = [photo for photo in store.fetch_all() if photo.favorite]
    assert store.fetch_favorites() == expected
    assert [photo.photo_id for photo in expected] == ["5", "2"]

    store.save_if_dirty()
    assert store.fetch_favorites() == expected


def test_staged_changes_become_durable_on_save(tmp_path) -> None:
    db_path = tmp_path / "photorama.db"
    store = MetadataStore(db_path)
    store.upsert_photos([_record("1")])

    assert store.has_changes is False
    assert store.save_if_dirty() is False

    staged = store.set_favorite("1", True)
    store.increment_view_count("1")
    viewed = store.increment_view_count("1")

    assert staged.favorite is True
    assert viewed.view_count == 2
    assert store.has_changes is True

    other = MetadataStore(db_path)
    persisted = other.get_photo("1")
    assert persisted is not None
    assert persisted.favorite is False
    assert persisted.view_count == 0

    assert store.save_if_dirty() is True
    assert store.has_changes is False
    assert store.save_if_dirty() is False

    persisted = other.get_photo("1")
    assert persisted is not None
    assert persisted.favorite is True
    assert persisted.view_count == 2
    assert store.get_photo("1") == persisted


def test_mutating_unknown_photo_raises(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")

    with pytest.raises(PhotoNotFoundError) as exc_info:
        store.set_favorite("missing", True)
    assert exc_info.value.photo_id == "missing"

    with pytest.raises(PhotoNotFoundError):
        store.increment_view_count("missing")
    assert store.has_changes is False


def test_failed_upsert_batch_commits_nothing(tmp_path) -> None:
    db_path = tmp_path / "photorama.db"
    store = MetadataStore(db_path)
    _add_trigger(
        db_path,
        """
        CREATE TRIGGER reject_boom BEFORE INSERT ON photos
        WHEN NEW.photo_id = 'boom'
        BEGIN SELECT RAISE(ABORT, 'boom rejected'); END
        """,
    )

    with pytest.raises(StoreError) as exc_info:
        store.upsert_photos([_record("1", tags=["sky"]), _record("boom")])

    assert isinstance(exc_info.value.__cause__, sqlite3.Error)
    assert store.fetch_all() == []
    assert store.fetch_all_tags() == []


def test_failed_save_keeps_staged_changes(tmp_path) -> None:
    db_path = tmp_path / "photorama.db"
    store = MetadataStore(db_path)
    store.upsert_photos([_record("1")])
    _add_trigger(
        db_path,
        """
        CREATE TRIGGER reject_update BEFORE UPDATE ON photos
        BEGIN SELECT RAISE(ABORT, 'read only'); END
        """,
    )
    store.set_favorite("1", True)

    with pytest.raises(StoreError):
        store.save_if_dirty()

    assert store.has_changes is True
    photo = store.get_photo("1")
    assert photo is not None
    assert photo.favorite is True


def test_get_photos_keeps_input_order_and_skips_unknown(tmp_path) -> None:
    store = MetadataStore(tmp_path / "photorama.db")
    store.upsert_photos([_record("1"), _record("2", day=2), _record("3", day=3)])

    photos = store.get_photos(["3", "missing", "1", "3"])

    assert [photo.photo_id for photo in photos] == ["3", "1"]
    assert store.get_photos([]) == []


def test_staged_view_survives_concurrent_save(monkeypatch, tmp_path) -> None:
    db_path = tmp_path / "photorama.db"
    store = MetadataStore(db_path)
    store.upsert_photos([_record("1")])
    store.increment_view_count("1")

    saver = threading.Thread(target=store.save_if_dirty)
    original_load = store._load_photos

    def _load_then_save(photo_ids):
        photos = original_load(photo_ids)
        if saver.ident is None:
            saver.start()
            saver.join(timeout=0.2)
        return photos

    monkeypatch.setattr(store, "_load_photos", _load_then_save)

    viewed = store.increment_view_count("1")
    saver.join(timeout=5)

    assert not saver.is_alive()
    assert viewed.view_count == 2
    assert store.has_changes is False

    persisted = MetadataStore(db_path).get_photo("1")
    assert persisted is not None
    assert persisted.view_count == 2
