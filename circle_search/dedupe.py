"""Duplicate handling across concurrent searches."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import config
from .normalize import NormalizedPlace

logger = logging.getLogger(__name__)


@dataclass
class DuplicateReport:
    has_duplicates: bool
    total_count: int
    unique_count: int
    duplicate_ids: List[str] = field(default_factory=list)
    details_by_id: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_duplicates": self.has_duplicates,
            "total_count": self.total_count,
            "unique_count": self.unique_count,
            "duplicate_ids": list(self.duplicate_ids),
            "details_by_id": self.details_by_id,
        }


def fallback_key(place: NormalizedPlace, decimals: Optional[int] = None) -> Tuple[str, float, float]:
    digits = config.DEDUP_FALLBACK_DECIMALS if decimals is None else decimals
    return (place.name.strip().lower(), round(place.lat, digits), round(place.lng, digits))


def dedupe(
    records: Iterable[NormalizedPlace],
    fallback_identity: Optional[bool] = None,
) -> List[NormalizedPlace]:
    """Keep the first record per id, preserving input order.

    Records without an id are kept as-is unless ``fallback_identity`` is on,
    in which case they collapse on name plus rounded coordinates.
    """
    use_fallback = config.DEDUP_FALLBACK_IDENTITY if fallback_identity is None else fallback_identity
    seen_ids = set()
    seen_fallback = set()
    out: List[NormalizedPlace] = []
    for place in records:
        if place.id:
            if place.id in seen_ids:
                continue
            seen_ids.add(place.id)
        elif use_fallback:
            key = fallback_key(place)
            if key in seen_fallback:
                continue
            seen_fallback.add(key)
        out.append(place)
    return out


def detect_duplicates(records: Iterable[NormalizedPlace]) -> DuplicateReport:
    """Read-only duplicate analysis over a pre-dedupe list."""
    records = list(records)
    counts: Dict[str, int] = {}
    duplicate_ids: List[str] = []
    for place in records:
        if not place.id:
            continue
        counts[place.id] = counts.get(place.id, 0) + 1
        if counts[place.id] == 2:
            duplicate_ids.append(place.id)

    details: Dict[str, Dict[str, Any]] = {}
    for place_id in duplicate_ids:
        details[place_id] = {
            "count": counts[place_id],
            "places": [
                {"name": p.name, "search_id": p.search_id}
                for p in records
                if p.id == place_id
            ],
        }

    return DuplicateReport(
        has_duplicates=bool(duplicate_ids),
        total_count=len(records),
        unique_count=len(counts),
        duplicate_ids=duplicate_ids,
        details_by_id=details,
    )


def log_report(report: DuplicateReport, log: Optional[logging.Logger] = None) -> None:
    log = log or logger
    log.info(
        "Duplicate analysis: total=%s unique=%s duplicated_ids=%s",
        report.total_count,
        report.unique_count,
        len(report.duplicate_ids),
    )
    for place_id in report.duplicate_ids:
        detail = report.details_by_id[place_id]
        sources = ", ".join(f"{p['name']} (search {p['search_id']})" for p in detail["places"])
        log.debug("  [%s] x%s: %s", place_id, detail["count"], sources)
