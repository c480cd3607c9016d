from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class DTOBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class FeedKind(StrEnum):
    INTERESTING = "interesting"
    RECENT = "recent"


class Photo(DTOBase):
    photo_id: str
    title: str = ""
    remote_url: str | None = None
    date_taken: datetime | None = None
    view_count: int = Field(default=0, ge=0)
    favorite: bool = False
    tags: list[str] = Field(default_factory=list)

    @field_validator("photo_id")
    @classmethod
    def validate_photo_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("photo_id must not be empty")
        return normalized

    @field_validator("date_taken", mode="after")
    @classmethod
    def validate_date_taken(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return normalize_datetime(value)


class Tag(DTOBase):
    name: str
    photo_ids: list[str] = Field(default_factory=list)
