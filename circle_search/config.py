"""Project configuration.

Loads user-defined search parameters from search_config.json when available,
falling back to sensible defaults. Environment variables win over both.
Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
RELAY_SEARCH_PATH = "/api/places/searchNearby"
RELAY_BASE_URL = "http://localhost:3000"

# --- Field masks ---

PLACES_FIELD_MASK_MIN = (
    "places.displayName,places.formattedAddress,places.types,places.location,places.id"
)
PLACES_FIELD_MASK_FULL = (
    "places.id,places.displayName,places.formattedAddress,places.types,places.location,"
    "places.rating,places.userRatingCount,places.priceLevel,places.websiteUri"
)

# --- Map defaults (presentation only) ---

DEFAULT_CENTER: Dict[str, float] = {"lat": 41.9028, "lng": 12.4964}
DEFAULT_ZOOM = 13

# --- Search geometry ---

MAX_RADIUS_M = 25000.0
SUB_RADIUS_RATIO = 0.70
OFFSET_RATIO = 0.50
KM_PER_DEGREE = 111.0
EARTH_RADIUS_M = 6371000.0

# --- Places API request shape ---

RANK_PREFERENCE = "POPULARITY"
DEFAULT_INCLUDED_TYPES: List[str] = ["restaurant"]
PLACES_MAX_RESULT_COUNT = 20

# Raw "searches" list from search_config.json; None keeps the built-in table.
SEARCHES_OVERRIDE: Optional[List[Dict[str, Any]]] = None

# --- Dedup ---

DEDUP_FALLBACK_IDENTITY = False
DEDUP_FALLBACK_DECIMALS = 5

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 1
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Relay server ---

SERVER_PORT = 3000

# --- State and outputs ---

STATE_PATH = "circle_search_state.json"
OUTPUT_DIR = "out"


def load_search_config(path: Optional[str] = None) -> bool:
    """Load search configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "search_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    center = data.get("default_center", {})
    if center.get("lat") is not None and center.get("lng") is not None:
        globals_ref["DEFAULT_CENTER"] = {"lat": float(center["lat"]), "lng": float(center["lng"])}

    zoom = data.get("default_zoom")
    if zoom is not None:
        globals_ref["DEFAULT_ZOOM"] = int(zoom)

    max_radius = data.get("max_radius_m")
    if max_radius is not None:
        globals_ref["MAX_RADIUS_M"] = float(max_radius)

    sub_ratio = data.get("sub_radius_ratio")
    if sub_ratio is not None:
        globals_ref["SUB_RADIUS_RATIO"] = float(sub_ratio)

    offset_ratio = data.get("offset_ratio")
    if offset_ratio is not None:
        globals_ref["OFFSET_RATIO"] = float(offset_ratio)

    searches = data.get("searches")
    if searches:
        globals_ref["SEARCHES_OVERRIDE"] = list(searches)

    fallback = data.get("dedup_fallback_identity")
    if fallback is not None:
        globals_ref["DEDUP_FALLBACK_IDENTITY"] = bool(fallback)

    relay_url = data.get("relay_url")
    if relay_url:
        globals_ref["RELAY_BASE_URL"] = str(relay_url).rstrip("/")

    return True


def apply_env_overrides() -> None:
    globals_ref = globals()

    float_vars = {
        "CIRCLE_SEARCH_MAX_RADIUS_M": "MAX_RADIUS_M",
        "CIRCLE_SEARCH_SUB_RADIUS_RATIO": "SUB_RADIUS_RATIO",
        "CIRCLE_SEARCH_OFFSET_RATIO": "OFFSET_RATIO",
    }
    for env_name, attr in float_vars.items():
        raw = (os.environ.get(env_name) or "").strip()
        if not raw:
            continue
        try:
            globals_ref[attr] = float(raw)
        except ValueError as exc:
            raise ValueError(f"{env_name} must be a number, got {raw!r}") from exc

    relay_url = (os.environ.get("CIRCLE_SEARCH_RELAY_URL") or "").strip()
    if relay_url:
        globals_ref["RELAY_BASE_URL"] = relay_url.rstrip("/")

    port = (os.environ.get("PORT") or "").strip()
    if port:
        globals_ref["SERVER_PORT"] = int(port)
