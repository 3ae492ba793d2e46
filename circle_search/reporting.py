"""Output reporting helpers."""
from __future__ import annotations

import csv
import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, TextIO

from .normalize import NormalizedPlace

RESULT_FIELDNAMES = [
    "id",
    "name",
    "address",
    "lat",
    "lng",
    "rating",
    "user_rating_count",
    "price_level",
    "website_uri",
    "types",
    "search_id",
]


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def place_rows(places: Iterable[NormalizedPlace]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in places]


def write_results_json(path: str, places: Iterable[NormalizedPlace]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(place_rows(places), f, ensure_ascii=False, indent=2)


def write_results_csv(path: str, places: Iterable[NormalizedPlace]) -> None:
    rows = place_rows(places)
    if not rows:
        with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
            f.write("")
        return

    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=RESULT_FIELDNAMES, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            out = dict(row)
            out["types"] = json.dumps(out.get("types", []), ensure_ascii=False)
            writer.writerow(out)


def write_json_object(path: str, payload: Mapping[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines))


def render_search_summary(
    summary: Mapping[str, Any],
    labels: Optional[Mapping[int, str]] = None,
) -> List[str]:
    labels = labels or {}
    circle = summary.get("circle") or {}
    lines = []
    lines.append(f"Generated at: {summary.get('generated_at') or utc_now_iso()}")
    lines.append(
        "Search area: center={lat:.6f},{lng:.6f} radius={radius:.0f}m ({km:.1f} km)".format(
            lat=circle.get("lat") or 0.0,
            lng=circle.get("lng") or 0.0,
            radius=circle.get("radius_m") or 0.0,
            km=(circle.get("radius_m") or 0.0) / 1000.0,
        )
    )
    lines.append(f"Status: {summary.get('status', '')}")
    lines.append(
        "Requests: total={total}, succeeded={ok}, failed={failed}".format(
            total=summary.get("total_requests", 0),
            ok=summary.get("succeeded", 0),
            failed=summary.get("failed", 0),
        )
    )
    lines.append(f"Raw results: {summary.get('raw_results', 0)}")
    lines.append(f"Dropped without coordinates: {summary.get('dropped_unresolved', 0)}")
    lines.append(f"Outside circle removed: {summary.get('outside_circle_removed', 0)}")
    lines.append(f"Duplicates removed: {summary.get('duplicates_removed', 0)}")
    lines.append(f"Final unique places: {summary.get('final_count', 0)}")
    lines.append("Per search:")
    for item in summary.get("per_search", []):
        search_id = item.get("search_id")
        label = labels.get(search_id, f"Search {search_id}")
        line = "  - {id}. {label}: {count} (raw {raw}) types={types}".format(
            id=search_id,
            label=label,
            count=item.get("count", 0),
            raw=item.get("raw_count", 0),
            types=", ".join(item.get("types") or []) or "N/A",
        )
        if item.get("error"):
            line += f" error={item['error']}"
        lines.append(line)
    return lines
