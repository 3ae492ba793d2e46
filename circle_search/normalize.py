"""Canonical place records and the response adapters that build them.

Places API responses come in two families: the v1 shape (``displayName``
objects, ``location.latitude``) and the legacy JS/web-service shape
(``name``, ``geometry.location`` with ``lat``/``lng`` values or accessor
callables). An adapter is picked once per response at the client boundary;
everything past ``normalize`` only sees ``NormalizedPlace``.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"

_LOCATION_CONTAINERS: Tuple[Tuple[str, ...], ...] = (
    ("location",),
    ("geometry", "location"),
    ("latLng",),
)


@dataclass
class NormalizedPlace:
    id: Optional[str]
    name: str
    address: str
    lat: float
    lng: float
    types: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    user_rating_count: Optional[int] = None
    price_level: Optional[str] = None
    website_uri: Optional[str] = None
    search_id: int = 0

    @property
    def location(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["types"] = list(self.types)
        return out


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _dig(obj: Any, path: Iterable[str]) -> Any:
    for key in path:
        obj = _get(obj, key)
        if obj is None:
            return None
    return obj


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _pair(lat: Any, lng: Any) -> Optional[Tuple[float, float]]:
    lat_f = _finite(lat)
    lng_f = _finite(lng)
    if lat_f is None or lng_f is None:
        return None
    return lat_f, lng_f


def _from_accessors(loc: Any) -> Optional[Tuple[float, float]]:
    lat_fn = _get(loc, "lat")
    lng_fn = _get(loc, "lng")
    if not (callable(lat_fn) and callable(lng_fn)):
        return None
    return _pair(lat_fn(), lng_fn())


def _from_flat(loc: Any) -> Optional[Tuple[float, float]]:
    lat = _get(loc, "lat")
    lng = _get(loc, "lng")
    if callable(lat) or callable(lng):
        return None
    return _pair(lat, lng)


def _from_long_names(loc: Any) -> Optional[Tuple[float, float]]:
    return _pair(_get(loc, "latitude"), _get(loc, "longitude"))


def extract_location(raw: Any) -> Optional[Tuple[float, float]]:
    """Resolve ``(lat, lng)`` or None.

    Accessor callables win over flat ``lat``/``lng`` numbers, which win over
    ``latitude``/``longitude``.
    """
    containers = [c for c in (_dig(raw, path) for path in _LOCATION_CONTAINERS) if c is not None]
    for resolver in (_from_accessors, _from_flat, _from_long_names):
        for loc in containers:
            resolved = resolver(loc)
            if resolved is not None:
                return resolved
    return None


def extract_name(raw: Any) -> str:
    display = _get(raw, "displayName")
    text = _get(display, "text") if isinstance(display, dict) else None
    if text:
        return str(text)
    for candidate in (display, _get(raw, "name")):
        if isinstance(candidate, str) and candidate:
            return candidate
    return UNKNOWN_NAME


def _first_str(raw: Any, keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = _get(raw, key)
        if isinstance(value, str) and value:
            return value
    return None


def _first_id(raw: Any, keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = _get(raw, key)
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and value:
            return value
    return None


def _optional_int(value: Any) -> Optional[int]:
    number = _finite(value)
    return int(number) if number is not None else None


def _price_level(raw: Any) -> Optional[str]:
    # v1 returns enum names, legacy returns 0-4
    for key in ("priceLevel", "price_level"):
        value = _get(raw, key)
        if value is not None and not isinstance(value, bool):
            return str(value)
    return None


class PlacesV1Adapter:
    name = "places_v1"
    id_fields = ("id", "place_id", "placeId")
    address_fields = ("formattedAddress", "shortFormattedAddress", "vicinity", "formatted_address")

    @staticmethod
    def matches(raw: Any) -> bool:
        return _get(raw, "displayName") is not None or _get(_get(raw, "location"), "latitude") is not None


class LegacyAdapter:
    name = "legacy"
    id_fields = ("place_id", "id", "placeId")
    address_fields = ("vicinity", "formatted_address", "formattedAddress", "shortFormattedAddress")

    @staticmethod
    def matches(raw: Any) -> bool:
        return _get(raw, "geometry") is not None or _get(raw, "place_id") is not None


ADAPTERS = (PlacesV1Adapter, LegacyAdapter)


def select_adapter(raw: Any):
    for adapter in ADAPTERS:
        if adapter.matches(raw):
            return adapter
    return PlacesV1Adapter


def normalize(raw: Any, search_id: int, adapter=None) -> Optional[NormalizedPlace]:
    """Return a NormalizedPlace, or None when coordinates cannot be resolved."""
    if raw is None:
        return None
    adapter = adapter or select_adapter(raw)
    location = extract_location(raw)
    if location is None:
        return None
    types = _get(raw, "types")
    if not isinstance(types, (list, tuple)):
        types = []
    return NormalizedPlace(
        id=_first_id(raw, adapter.id_fields),
        name=extract_name(raw),
        address=_first_str(raw, adapter.address_fields) or "",
        lat=location[0],
        lng=location[1],
        types=[str(t) for t in types],
        rating=_finite(_get(raw, "rating")),
        user_rating_count=_optional_int(
            _get(raw, "userRatingCount") if _get(raw, "userRatingCount") is not None
            else _get(raw, "user_ratings_total")
        ),
        price_level=_price_level(raw),
        website_uri=_first_str(raw, ("websiteUri", "website")),
        search_id=int(search_id),
    )


def normalize_all(raws: Iterable[Any], search_id: int) -> Tuple[List[NormalizedPlace], int]:
    """Normalize a response's records; returns ``(places, dropped_count)``."""
    raws = list(raws or [])
    adapter = select_adapter(raws[0]) if raws else None
    places: List[NormalizedPlace] = []
    dropped = 0
    for raw in raws:
        try:
            place = normalize(raw, search_id, adapter=adapter)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Dropping malformed record for search %s: %s", search_id, exc)
            place = None
        if place is None:
            dropped += 1
            continue
        places.append(place)
    return places, dropped
