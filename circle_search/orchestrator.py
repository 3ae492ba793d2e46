"""Fan-out nearby search over one circle.

One request per search spec is dispatched concurrently; every request is
awaited, failures are recorded per spec and never raised. Results are
normalized, spatial-variant results are clipped to the drawn circle, then
merged in spec-id order and deduplicated.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from . import config
from .dedupe import DuplicateReport, dedupe, detect_duplicates
from .geo import Circle, SubCircle, calculate_4_sub_circles, haversine_m
from .normalize import NormalizedPlace, normalize_all
from .places_client import NearbyRequest
from .searches import SPATIAL_VARIANT_IDS, SearchSpec

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"


class NearbySearchClient(Protocol):
    def search_nearby(self, request: NearbyRequest) -> List[Dict[str, Any]]:
        ...


@dataclass
class SpecOutcome:
    search_id: int
    request: NearbyRequest
    raw_count: int = 0
    places: List[NormalizedPlace] = field(default_factory=list)
    dropped_unresolved: int = 0
    dropped_outside_circle: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SearchResult:
    circle: Circle
    places: List[NormalizedPlace]
    outcomes: List[SpecOutcome]
    duplicates: DuplicateReport

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and self.succeeded_count == 0

    @property
    def status(self) -> str:
        if self.all_failed:
            return STATUS_FAILED
        if not self.places:
            return STATUS_EMPTY
        return STATUS_OK

    @property
    def raw_count(self) -> int:
        return sum(o.raw_count for o in self.outcomes)

    @property
    def dropped_unresolved(self) -> int:
        return sum(o.dropped_unresolved for o in self.outcomes)

    @property
    def dropped_outside_circle(self) -> int:
        return sum(o.dropped_outside_circle for o in self.outcomes)

    @property
    def duplicates_removed(self) -> int:
        return self.duplicates.total_count - len(self.places)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "circle": {"lat": self.circle.lat, "lng": self.circle.lng, "radius_m": self.circle.radius_m},
            "total_requests": len(self.outcomes),
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "raw_results": self.raw_count,
            "dropped_unresolved": self.dropped_unresolved,
            "outside_circle_removed": self.dropped_outside_circle,
            "duplicates_removed": self.duplicates_removed,
            "final_count": len(self.places),
            "per_search": [
                {
                    "search_id": o.search_id,
                    "count": len(o.places),
                    "raw_count": o.raw_count,
                    "types": list(o.request.included_types),
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }


def resolve_request(
    spec: SearchSpec,
    circle: Circle,
    sub_circles: Sequence[SubCircle],
    rank_preference: str = config.RANK_PREFERENCE,
) -> NearbyRequest:
    lat, lng, radius = circle.lat, circle.lng, circle.radius_m
    if spec.id in SPATIAL_VARIANT_IDS:
        sub = sub_circles[SPATIAL_VARIANT_IDS.index(spec.id)]
        lat, lng, radius = sub.lat, sub.lng, sub.radius_m
    else:
        if spec.offset_lat is not None and spec.offset_lng is not None:
            lat += spec.offset_lat
            lng += spec.offset_lng
        if spec.radius_m is not None:
            radius = spec.radius_m
    return NearbyRequest(
        lat=lat,
        lng=lng,
        radius_m=radius,
        included_types=tuple(spec.included_types),
        excluded_types=tuple(spec.excluded_types),
        rank_preference=rank_preference,
    )


def within_circle(place: NormalizedPlace, circle: Circle) -> bool:
    return haversine_m(circle.lat, circle.lng, place.lat, place.lng) <= circle.radius_m


def _run_one(client: NearbySearchClient, spec: SearchSpec, request: NearbyRequest) -> SpecOutcome:
    outcome = SpecOutcome(search_id=spec.id, request=request)
    logger.debug(
        "Search %s (%s): lat=%.6f lng=%.6f radius=%.0fm",
        spec.id,
        spec.label,
        request.lat,
        request.lng,
        request.radius_m,
    )
    try:
        raws = list(client.search_nearby(request) or [])
        outcome.raw_count = len(raws)
        outcome.places, outcome.dropped_unresolved = normalize_all(raws, spec.id)
    except Exception as exc:
        logger.warning("Search %s (%s) failed: %s", spec.id, spec.label, exc)
        outcome.error = str(exc) or exc.__class__.__name__
        outcome.places = []
    return outcome


def apply_geofilter(outcome: SpecOutcome, circle: Circle) -> None:
    if outcome.search_id not in SPATIAL_VARIANT_IDS:
        return
    kept = [p for p in outcome.places if within_circle(p, circle)]
    outcome.dropped_outside_circle = len(outcome.places) - len(kept)
    outcome.places = kept


def execute_search(
    circle: Circle,
    specs: Sequence[SearchSpec],
    client: NearbySearchClient,
    max_workers: Optional[int] = None,
    fallback_identity: Optional[bool] = None,
) -> SearchResult:
    """Run every spec against ``circle`` and return the consolidated result.

    Raises InvalidCircleError before any request when the circle is invalid.
    """
    circle.validate()
    ordered = sorted(specs, key=lambda s: s.id)
    sub_circles = calculate_4_sub_circles(circle.lat, circle.lng, circle.radius_m)
    requests_by_spec = [(spec, resolve_request(spec, circle, sub_circles)) for spec in ordered]

    logger.info(
        "Dispatching %s searches for circle lat=%.6f lng=%.6f radius=%.0fm",
        len(requests_by_spec),
        circle.lat,
        circle.lng,
        circle.radius_m,
    )

    outcomes: List[SpecOutcome] = []
    if requests_by_spec:
        workers = max_workers or len(requests_by_spec)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="nearby") as pool:
            futures = [pool.submit(_run_one, client, spec, req) for spec, req in requests_by_spec]
            outcomes = [f.result() for f in futures]

    merged: List[NormalizedPlace] = []
    for outcome in outcomes:
        apply_geofilter(outcome, circle)
        merged.extend(outcome.places)

    report = detect_duplicates(merged)
    places = dedupe(merged, fallback_identity=fallback_identity)
    result = SearchResult(circle=circle, places=places, outcomes=outcomes, duplicates=report)

    if result.all_failed:
        logger.error("All %s searches failed", len(outcomes))
    else:
        logger.info(
            "Search done: %s unique places (raw=%s, outside=%s, duplicates=%s, failed=%s)",
            len(places),
            result.raw_count,
            result.dropped_outside_circle,
            result.duplicates_removed,
            result.failed_count,
        )
    return result


def group_by_search(
    places: Sequence[NormalizedPlace],
    specs: Sequence[SearchSpec],
) -> Dict[int, List[NormalizedPlace]]:
    groups: Dict[int, List[NormalizedPlace]] = {spec.id: [] for spec in sorted(specs, key=lambda s: s.id)}
    for place in places:
        groups.setdefault(place.search_id, []).append(place)
    return groups
