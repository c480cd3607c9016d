from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from photorama.errors import ParseError
from photorama.schemas import normalize_datetime

logger = logging.getLogger(__name__)

_FLICKR_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_WHITESPACE_PATTERN = re.compile(r"\s+")
_URL_FIELDS = ("url_z", "url")


@dataclass(slots=True)
class ParsedPhoto:
    photo_id: str
    title: str = ""
    remote_url: str | None = None
    date_taken: datetime | None = None
    tags: list[str] = field(default_factory=list)


def parse_listing(payload: bytes | str) -> list[ParsedPhoto]:
    """Parse a Flickr ``{"photos": {"photo": [...]}}`` listing.

    Entries without an id are skipped. Only invalid JSON, a Flickr failure
    body, or an unrecognized top-level shape raise ``ParseError``.
    """
    try:
        document = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(f"listing is not valid JSON: {exc}") from exc

    if not isinstance(document, dict):
        raise ParseError("listing root must be an object")

    if document.get("stat") == "fail":
        raise ParseError(
            f"flickr error code={document.get('code')} message={document.get('message')}"
        )

    photos = document.get("photos")
    entries = photos.get("photo") if isinstance(photos, dict) else None
    if not isinstance(entries, list):
        raise ParseError("listing must contain photos.photo as a list")

    parsed: list[ParsedPhoto] = []
    skipped = 0
    for entry in entries:
        record = _parse_entry(entry)
        if record is None:
            skipped += 1
            continue
        parsed.append(record)

    if skipped:
        logger.warning("listing entries skipped=%d kept=%d", skipped, len(parsed))
    return parsed


def _parse_entry(entry: Any) -> ParsedPhoto | None:
    if not isinstance(entry, dict):
        return None

    raw_id = entry.get("id")
    if raw_id is None or isinstance(raw_id, (bool, dict, list)):
        return None
    photo_id = str(raw_id).strip()
    if not photo_id:
        return None

    return ParsedPhoto(
        photo_id=photo_id,
        title=_normalize_text(entry.get("title")),
        remote_url=_extract_url(entry),
        date_taken=_parse_date_taken(entry.get("datetaken")),
        tags=_parse_tags(entry.get("tags")),
    )


def _extract_url(entry: dict[str, Any]) -> str | None:
    for key in _URL_FIELDS:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _parse_date_taken(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        parsed = datetime.strptime(text, _FLICKR_DATETIME_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("unparsable datetaken=%s", text)
            return None
    return normalize_datetime(parsed)


def _parse_tags(value: Any) -> list[str]:
    if isinstance(value, str):
        candidates = value.split()
    elif isinstance(value, list):
        candidates = [str(item) for item in value if item is not None]
    else:
        return []

    tags: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        name = candidate.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        tags.append(name)
    return tags


def _normalize_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _WHITESPACE_PATTERN.sub(" ", value).strip()
