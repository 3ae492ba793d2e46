"""Places nearby-search clients and request body builders."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from . import config
from .http import HttpClient, RequestMetrics

logger = logging.getLogger(__name__)


class PlacesSearchError(RuntimeError):
    pass


@dataclass(frozen=True)
class NearbyRequest:
    lat: float
    lng: float
    radius_m: float
    included_types: Sequence[str] = field(default_factory=tuple)
    excluded_types: Sequence[str] = field(default_factory=tuple)
    rank_preference: str = config.RANK_PREFERENCE
    max_result_count: Optional[int] = None


def build_relay_body(request: NearbyRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "lat": request.lat,
        "lng": request.lng,
        "radius": request.radius_m,
        "includedTypes": list(request.included_types),
        "excludedTypes": list(request.excluded_types),
        "rankPreference": request.rank_preference,
    }
    if request.max_result_count:
        body["maxResultCount"] = int(request.max_result_count)
    return body


def build_nearby_search_body(
    request: NearbyRequest,
    max_result_count: int = config.PLACES_MAX_RESULT_COUNT,
) -> Dict[str, Any]:
    included = list(request.included_types) or list(config.DEFAULT_INCLUDED_TYPES)
    body: Dict[str, Any] = {
        "includedTypes": included,
        "excludedTypes": list(request.excluded_types),
        "maxResultCount": int(request.max_result_count or max_result_count),
        "locationRestriction": {
            "circle": {
                "center": {"latitude": float(request.lat), "longitude": float(request.lng)},
                "radius": float(request.radius_m),
            }
        },
    }
    if request.rank_preference:
        body["rankPreference"] = request.rank_preference
    return body


def parse_places_response(response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not response:
        return []
    places = response.get("places") or []
    return [p for p in places if isinstance(p, dict)]


class PlacesClient:
    """Calls the Places API v1 searchNearby endpoint directly."""

    def __init__(
        self,
        http_client: HttpClient,
        field_mask: str = config.PLACES_FIELD_MASK_MIN,
        url: str = config.PLACES_NEARBY_SEARCH_URL,
        max_result_count: int = config.PLACES_MAX_RESULT_COUNT,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.field_mask = field_mask
        self.url = url
        self.max_result_count = max_result_count
        self.metrics = metrics

    def search_nearby_raw(self, request: NearbyRequest) -> Dict[str, Any]:
        body = build_nearby_search_body(request, self.max_result_count)
        if self.metrics is not None:
            self.metrics.inc_network("places")
        try:
            return self.http.post_json(self.url, body, self.field_mask)
        except (requests.RequestException, ValueError):
            if self.metrics is not None:
                self.metrics.inc_failure("places")
            raise

    def search_nearby(self, request: NearbyRequest) -> List[Dict[str, Any]]:
        return parse_places_response(self.search_nearby_raw(request))


class RelayPlacesClient:
    """Calls the relay server, which wraps responses as ``{ok, data|error}``."""

    def __init__(
        self,
        http_client: HttpClient,
        base_url: Optional[str] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.base_url = (base_url or config.RELAY_BASE_URL).rstrip("/")
        self.metrics = metrics

    @property
    def url(self) -> str:
        return f"{self.base_url}{config.RELAY_SEARCH_PATH}"

    def search_nearby(self, request: NearbyRequest) -> List[Dict[str, Any]]:
        if self.metrics is not None:
            self.metrics.inc_network("relay")
        try:
            envelope = self.http.post_json(self.url, build_relay_body(request))
        except requests.HTTPError as exc:
            self._count_failure()
            raise PlacesSearchError(_error_from_http(exc)) from exc
        except (requests.RequestException, ValueError) as exc:
            self._count_failure()
            raise PlacesSearchError(f"Relay request failed: {exc}") from exc

        if not isinstance(envelope, dict) or not envelope.get("ok"):
            self._count_failure()
            error = envelope.get("error") if isinstance(envelope, dict) else None
            raise PlacesSearchError(error or "Relay returned ok=false")

        data = envelope.get("data") or {}
        upstream_error = data.get("error") if isinstance(data, dict) else None
        if upstream_error:
            self._count_failure()
            message = upstream_error.get("message") if isinstance(upstream_error, dict) else upstream_error
            raise PlacesSearchError(f"Places API error: {message}")
        return parse_places_response(data)

    def _count_failure(self) -> None:
        if self.metrics is not None:
            self.metrics.inc_failure("relay")


def _error_from_http(exc: requests.HTTPError) -> str:
    resp = exc.response
    if resp is None:
        return str(exc)
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return f"HTTP {resp.status_code}: {payload['error']}"
    return f"HTTP {resp.status_code}"
