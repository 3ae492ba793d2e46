import csv
import json

from circle_search.normalize import NormalizedPlace
from circle_search.reporting import (
    atomic_write_text,
    render_search_summary,
    write_json_object,
    write_results_csv,
    write_results_json,
)


def make_place(place_id, name="Caffè Gréco"):
    return NormalizedPlace(
        id=place_id,
        name=name,
        address="Via Condotti 86",
        lat=41.9055,
        lng=12.4812,
        types=["cafe", "food"],
        rating=4.2,
        search_id=5,
    )


def test_atomic_write_text(tmp_path):
    path = tmp_path / "atomic.txt"

    atomic_write_text(str(path), "first")
    assert path.read_text(encoding="utf-8") == "first"

    atomic_write_text(str(path), "second")
    assert path.read_text(encoding="utf-8") == "second"

    leftovers = [p for p in tmp_path.iterdir() if p.name != "atomic.txt"]
    assert not leftovers


def test_write_results_json_is_flat(tmp_path):
    path = tmp_path / "places.json"
    write_results_json(str(path), [make_place("a")])

    text = path.read_text(encoding="utf-8")
    data = json.loads(text)
    assert data[0]["lat"] == 41.9055
    assert data[0]["lng"] == 12.4812
    assert data[0]["search_id"] == 5
    assert "è" in text


def test_write_results_csv(tmp_path):
    path = tmp_path / "places.csv"
    write_results_csv(str(path), [make_place("a"), make_place("b", name="Other")])

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["id"] for r in rows] == ["a", "b"]
    assert json.loads(rows[0]["types"]) == ["cafe", "food"]


def test_write_results_csv_empty(tmp_path):
    path = tmp_path / "places.csv"
    write_results_csv(str(path), [])
    assert path.read_text(encoding="utf-8") == ""


def test_write_json_object_nested_atomic(tmp_path):
    path = tmp_path / "summary.json"
    payload = {"per_search": [{"search_id": 1, "count": 3}], "word": "Città"}

    write_json_object(str(path), payload)

    assert json.loads(path.read_text(encoding="utf-8")) == payload
    leftovers = [p for p in tmp_path.iterdir() if p.name != "summary.json"]
    assert not leftovers


def test_render_search_summary():
    summary = {
        "generated_at": "2026-01-01T00:00:00+00:00",
        "status": "ok",
        "circle": {"lat": 41.9028, "lng": 12.4964, "radius_m": 1500},
        "total_requests": 2,
        "succeeded": 1,
        "failed": 1,
        "raw_results": 4,
        "outside_circle_removed": 1,
        "duplicates_removed": 1,
        "final_count": 2,
        "per_search": [
            {"search_id": 1, "count": 2, "raw_count": 4, "types": ["restaurant"], "error": None},
            {"search_id": 5, "count": 0, "raw_count": 0, "types": ["cafe"], "error": "HTTP 500"},
        ],
    }
    lines = render_search_summary(summary, {1: "FoodMain-NorthWest"})
    assert "Search area: center=41.902800,12.496400 radius=1500m (1.5 km)" in lines
    assert "Requests: total=2, succeeded=1, failed=1" in lines
    assert "  - 1. FoodMain-NorthWest: 2 (raw 4) types=restaurant" in lines
    assert "  - 5. Search 5: 0 (raw 0) types=cafe error=HTTP 500" in lines
