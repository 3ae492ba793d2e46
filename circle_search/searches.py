"""Category search table.

Each entry is one nearby-search issued per circle. Searches 1-4 are spatial
variants of the same restaurant search; their geometry always comes from the
derived sub-circles, the static radius/offset they carry is legacy data.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import config

SPATIAL_VARIANT_IDS: Tuple[int, ...] = (1, 2, 3, 4)
FALLBACK_COLOR = "#999"


@dataclass(frozen=True)
class SearchSpec:
    id: int
    label: str
    included_types: Tuple[str, ...]
    excluded_types: Tuple[str, ...]
    color: str
    radius_m: Optional[float] = None
    offset_lat: Optional[float] = None
    offset_lng: Optional[float] = None

    @property
    def is_spatial_variant(self) -> bool:
        return self.id in SPATIAL_VARIANT_IDS


_FOOD_MAIN_INCLUDED = ("restaurant", "food_court")
_FOOD_MAIN_EXCLUDED = (
    "lodging", "meal_delivery", "meal_takeaway", "supermarket", "grocery_store",
    "convenience_store", "gas_station", "night_club", "casino",
)
_CULTURE_EXCLUDED = (
    "school", "primary_school", "secondary_school", "university", "city_hall",
    "local_government_office", "courthouse", "embassy", "library", "funeral_home",
    "cemetery", "gym", "physiotherapist", "dentist", "doctor",
)
_OUTDOOR_EXCLUDED = (
    "campground", "rv_park", "camping_cabin", "golf_course", "stadium", "playground",
    "lodging", "hotel",
)

DEFAULT_SEARCHES: Tuple[SearchSpec, ...] = (
    SearchSpec(1, "FoodMain-NorthWest", _FOOD_MAIN_INCLUDED, _FOOD_MAIN_EXCLUDED, "#d32f2f",
               radius_m=1500, offset_lat=0.015, offset_lng=-0.015),
    SearchSpec(2, "FoodMain-NorthEast", _FOOD_MAIN_INCLUDED, _FOOD_MAIN_EXCLUDED, "#ff6f00",
               radius_m=1500, offset_lat=0.015, offset_lng=0.015),
    SearchSpec(3, "FoodMain-SouthWest", _FOOD_MAIN_INCLUDED, _FOOD_MAIN_EXCLUDED, "#1565c0",
               radius_m=1500, offset_lat=-0.015, offset_lng=-0.015),
    SearchSpec(4, "FoodMain-SouthEast", _FOOD_MAIN_INCLUDED, _FOOD_MAIN_EXCLUDED, "#2e7d32",
               radius_m=1500, offset_lat=-0.015, offset_lng=0.015),
    SearchSpec(
        5,
        "FoodCafe",
        ("cafe", "bar", "ice_cream_shop", "bakery", "wine_bar", "market"),
        (
            "lodging", "hotel", "hostel", "meal_delivery", "meal_takeaway", "supermarket",
            "grocery_store", "convenience_store", "gas_station", "night_club", "casino",
        ),
        "#1976d2",
    ),
    SearchSpec(6, "History", ("historical_landmark", "church", "monument"), _CULTURE_EXCLUDED, "#388e3c"),
    SearchSpec(
        7,
        "Museums",
        ("museum", "art_gallery", "cultural_center", "tourist_attraction"),
        _CULTURE_EXCLUDED,
        "#7b1fa2",
    ),
    SearchSpec(
        8,
        "NatureGreen",
        ("park", "garden", "botanical_garden", "national_park", "beach", "plaza"),
        _OUTDOOR_EXCLUDED,
        "#f57c00",
    ),
    SearchSpec(
        9,
        "Entertainment",
        ("amusement_park", "aquarium", "zoo", "observation_deck", "marina"),
        _OUTDOOR_EXCLUDED,
        "#00897b",
    ),
)


def split_types(value: str) -> List[str]:
    return [t.strip() for t in (value or "").split(",") if t.strip()]


def apply_type_overrides(
    specs: Sequence[SearchSpec],
    overrides: Mapping[int, Mapping[str, str]],
) -> List[SearchSpec]:
    """Apply user-edited type lists, e.g. ``{5: {"included": "cafe, bar"}}``.

    Spatial variants are never overridden. A blank value keeps the spec's
    default list; an included list that ends up empty falls back to
    ``config.DEFAULT_INCLUDED_TYPES``.
    """
    out: List[SearchSpec] = []
    for spec in specs:
        override = overrides.get(spec.id)
        if spec.is_spatial_variant or not override:
            out.append(spec)
            continue
        included = split_types(override.get("included", "")) or list(spec.included_types)
        excluded = split_types(override.get("excluded", "")) or list(spec.excluded_types)
        if not included:
            included = list(config.DEFAULT_INCLUDED_TYPES)
        out.append(replace(spec, included_types=tuple(included), excluded_types=tuple(excluded)))
    return out


def search_color(specs: Iterable[SearchSpec], search_id: int) -> str:
    for spec in specs:
        if spec.id == search_id:
            return spec.color
    return FALLBACK_COLOR


def spec_from_dict(data: Mapping[str, Any]) -> SearchSpec:
    try:
        search_id = int(data["id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Search entry needs an integer id: {data!r}") from exc
    included = data.get("included_types") or data.get("includedTypes") or []
    excluded = data.get("excluded_types") or data.get("excludedTypes") or []
    radius = data.get("radius_m", data.get("radius"))
    offset_lat = data.get("offset_lat", data.get("offsetLat"))
    offset_lng = data.get("offset_lng", data.get("offsetLng"))
    return SearchSpec(
        id=search_id,
        label=str(data.get("label") or f"Search {search_id}"),
        included_types=tuple(included) or tuple(config.DEFAULT_INCLUDED_TYPES),
        excluded_types=tuple(excluded),
        color=str(data.get("color") or FALLBACK_COLOR),
        radius_m=float(radius) if radius is not None else None,
        offset_lat=float(offset_lat) if offset_lat is not None else None,
        offset_lng=float(offset_lng) if offset_lng is not None else None,
    )


def load_searches(entries: Optional[Iterable[Mapping[str, Any]]] = None) -> List[SearchSpec]:
    """Build the active search table, sorted by id.

    Uses ``config.SEARCHES_OVERRIDE`` when no entries are passed and the
    built-in table when neither is set.
    """
    if entries is None:
        entries = config.SEARCHES_OVERRIDE
    if not entries:
        return list(DEFAULT_SEARCHES)
    specs = [spec_from_dict(e) for e in entries]
    ids = [s.id for s in specs]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate search ids in config: {sorted(ids)}")
    return sorted(specs, key=lambda s: s.id)
