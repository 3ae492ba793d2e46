import json

import pytest

from circle_search import config

CONFIG_ATTRS = [
    "DEFAULT_CENTER",
    "DEFAULT_ZOOM",
    "MAX_RADIUS_M",
    "SUB_RADIUS_RATIO",
    "OFFSET_RATIO",
    "SEARCHES_OVERRIDE",
    "DEDUP_FALLBACK_IDENTITY",
    "RELAY_BASE_URL",
    "SERVER_PORT",
]


@pytest.fixture(autouse=True)
def restore_config(monkeypatch):
    for attr in CONFIG_ATTRS:
        monkeypatch.setattr(config, attr, getattr(config, attr))


def test_load_search_config_missing_file(tmp_path):
    assert config.load_search_config(str(tmp_path / "nope.json")) is False


def test_load_search_config_updates_globals(tmp_path):
    path = tmp_path / "search_config.json"
    path.write_text(
        json.dumps(
            {
                "default_center": {"lat": 45.46, "lng": 9.19},
                "default_zoom": 12,
                "max_radius_m": 10000,
                "sub_radius_ratio": 0.6,
                "offset_ratio": 0.4,
                "searches": [{"id": 5, "included_types": ["cafe"]}],
                "dedup_fallback_identity": True,
                "relay_url": "http://relay:8080/",
            }
        ),
        encoding="utf-8",
    )

    assert config.load_search_config(str(path)) is True
    assert config.DEFAULT_CENTER == {"lat": 45.46, "lng": 9.19}
    assert config.DEFAULT_ZOOM == 12
    assert config.MAX_RADIUS_M == 10000.0
    assert config.SUB_RADIUS_RATIO == 0.6
    assert config.OFFSET_RATIO == 0.4
    assert config.SEARCHES_OVERRIDE == [{"id": 5, "included_types": ["cafe"]}]
    assert config.DEDUP_FALLBACK_IDENTITY is True
    assert config.RELAY_BASE_URL == "http://relay:8080"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CIRCLE_SEARCH_MAX_RADIUS_M", "5000")
    monkeypatch.setenv("CIRCLE_SEARCH_OFFSET_RATIO", "0.25")
    monkeypatch.setenv("CIRCLE_SEARCH_RELAY_URL", "http://example:9000/")
    monkeypatch.setenv("PORT", "4000")

    config.apply_env_overrides()

    assert config.MAX_RADIUS_M == 5000.0
    assert config.OFFSET_RATIO == 0.25
    assert config.RELAY_BASE_URL == "http://example:9000"
    assert config.SERVER_PORT == 4000


def test_env_override_rejects_garbage(monkeypatch):
    monkeypatch.setenv("CIRCLE_SEARCH_SUB_RADIUS_RATIO", "lots")
    with pytest.raises(ValueError):
        config.apply_env_overrides()
