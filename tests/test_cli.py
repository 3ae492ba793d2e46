import json

import pytest

import run
from circle_search.places_client import PlacesSearchError


class FakeClient:
    def __init__(self, fail=False):
        self.fail = fail
        self.requests = []

    def search_nearby(self, request):
        self.requests.append(request)
        if self.fail:
            raise PlacesSearchError("relay down")
        tag = request.included_types[0]
        return [
            {
                "id": f"{tag}-1",
                "displayName": {"text": tag},
                "location": {"latitude": 41.9028, "longitude": 12.4964},
            }
        ]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PORT", "CIRCLE_SEARCH_MAX_RADIUS_M", "CIRCLE_SEARCH_SUB_RADIUS_RATIO",
                 "CIRCLE_SEARCH_OFFSET_RATIO", "CIRCLE_SEARCH_RELAY_URL"):
        monkeypatch.delenv(name, raising=False)


def test_parse_type_overrides():
    assert run.parse_type_overrides(["5=cafe,bar;hotel", "6=church"]) == {
        5: {"included": "cafe,bar", "excluded": "hotel"},
        6: {"included": "church", "excluded": ""},
    }
    with pytest.raises(ValueError):
        run.parse_type_overrides(["cafe"])


def test_main_writes_outputs(tmp_path, monkeypatch, capsys):
    client = FakeClient()
    monkeypatch.setattr(run, "build_client", lambda args, metrics: client)
    out_dir = tmp_path / "out"

    code = run.main(
        [
            "--lat", "41.9028", "--lng", "12.4964", "--radius", "1000",
            "--types", "5=bakery",
            "--out", str(out_dir),
            "--state-path", str(tmp_path / "state.json"),
            "--save-day", "day1",
        ]
    )

    assert code == 0
    assert len(client.requests) == 9
    assert any(r.included_types == ("bakery",) for r in client.requests)
    places = json.loads((out_dir / "places.json").read_text(encoding="utf-8"))
    # searches 1-4 share restaurant as first type, so they collapse to one id
    assert [p["id"] for p in places][:2] == ["restaurant-1", "bakery-1"]
    assert len(places) == 6
    summary = json.loads((out_dir / "search_summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "ok"
    assert summary["duplicates_removed"] == 3
    assert (out_dir / "places.csv").exists()
    assert "Final unique places: 6" in (out_dir / "summary.txt").read_text(encoding="utf-8")
    state = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert len(state["trip_plan"]["days"]["day1"]) == 6
    assert "Final unique places: 6" in capsys.readouterr().out


def test_main_all_failed_returns_1(tmp_path, monkeypatch):
    monkeypatch.setattr(run, "build_client", lambda args, metrics: FakeClient(fail=True))
    code = run.main(["--no-export", "--state-path", str(tmp_path / "state.json")])
    assert code == 1


def test_main_invalid_circle_returns_2(tmp_path, monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(run, "build_client", lambda args, metrics: client)
    code = run.main(["--radius", "0", "--no-export", "--state-path", str(tmp_path / "state.json")])
    assert code == 2
    assert client.requests == []


def test_direct_mode_requires_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    monkeypatch.setattr(run, "load_env", lambda: None)
    code = run.main(["--direct", "--no-export", "--state-path", str(tmp_path / "state.json")])
    assert code == 2
