from __future__ import annotations

import json
from pathlib import Path

import pytest

from photorama.config import AppConfig, load_config

ROOT = Path(__file__).resolve().parents[1]


def test_config_example_load_and_validate() -> None:
    config = load_config(ROOT / "config" / "config.example.yaml")

    assert isinstance(config, AppConfig)
    assert config.flickr.api_key_env == "FLICKR_API_KEY"
    assert config.flickr.page_size == 100
    assert config.flickr.extras == ["url_z", "date_taken", "tags"]
    assert config.fetch.max_workers == 4
    assert config.caching.directory == "data/cache/images"


def test_json_config_with_defaults(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"storage": {"db_path": "x.db"}}), encoding="utf-8")

    config = load_config(path)

    assert config.storage.db_path == "x.db"
    assert config.flickr.timeout_seconds is None
    assert config.flickr.base_url == "https://api.flickr.com/services/rest"


@pytest.mark.parametrize(
    "payload",
    [
        {"flickr": {"page_size": 0}},
        {"flickr": {"api_key_env": "  "}},
        {"fetch": {"max_workers": 0}},
        {"caching": {"directory": "d", "ttl_minutes": 5}},
        {"unknown": True},
    ],
)
def test_invalid_config_raises_value_error(tmp_path, payload: dict[str, object]) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)


def test_config_root_must_be_object(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="root must be an object"):
        load_config(path)
