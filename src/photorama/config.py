from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

FLICKR_REST_URL = "https://api.flickr.com/services/rest"
DEFAULT_EXTRAS = ["url_z", "date_taken", "tags"]


class FlickrConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = FLICKR_REST_URL
    api_key_env: str = "FLICKR_API_KEY"
    page_size: int = Field(default=100, ge=1, le=500)
    extras: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTRAS))
    timeout_seconds: float | None = Field(default=None, gt=0.0)

    @field_validator("api_key_env", "base_url")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("flickr.api_key_env and flickr.base_url must not be empty")
        return normalized


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = "data/storage/photorama.db"


class CachingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    directory: str = "data/cache/images"


class FetchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_workers: int = Field(default=4, ge=1)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    flickr: FlickrConfig = Field(default_factory=FlickrConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    caching: CachingConfig = Field(default_factory=CachingConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)


def load_config(path: str | Path) -> AppConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = _parse_yaml(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed


def _parse_yaml(raw: str) -> dict[str, Any]:
    import yaml

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"Configuration is neither JSON nor YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed
