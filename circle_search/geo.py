"""Geospatial helpers."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from . import config

SUB_CIRCLE_DIRECTIONS = ("NW", "NE", "SW", "SE")

# (east, north) sign per direction
_DIRECTION_SIGNS = {
    "NW": (-1.0, 1.0),
    "NE": (1.0, 1.0),
    "SW": (-1.0, -1.0),
    "SE": (1.0, -1.0),
}


class InvalidCircleError(ValueError):
    pass


@dataclass
class Circle:
    lat: float
    lng: float
    radius_m: float

    def validate(self, max_radius_m: Optional[float] = None) -> None:
        limit = config.MAX_RADIUS_M if max_radius_m is None else max_radius_m
        values: Dict[str, float] = {}
        for name, value in (("lat", self.lat), ("lng", self.lng), ("radius_m", self.radius_m)):
            if value is None or isinstance(value, bool):
                raise InvalidCircleError(f"Circle {name} is missing")
            try:
                number = float(value)
            except (TypeError, ValueError) as exc:
                raise InvalidCircleError(f"Circle {name} is not a number: {value!r}") from exc
            if not math.isfinite(number):
                raise InvalidCircleError(f"Circle {name} must be finite, got {value!r}")
            values[name] = number
        if not -90.0 <= values["lat"] <= 90.0:
            raise InvalidCircleError(f"Circle lat out of range: {self.lat}")
        if not -180.0 <= values["lng"] <= 180.0:
            raise InvalidCircleError(f"Circle lng out of range: {self.lng}")
        if values["radius_m"] <= 0:
            raise InvalidCircleError(f"Circle radius must be > 0, got {self.radius_m}")
        if values["radius_m"] > limit:
            raise InvalidCircleError(f"Circle radius {self.radius_m} exceeds max {limit}")
        self.lat = values["lat"]
        self.lng = values["lng"]
        self.radius_m = values["radius_m"]


@dataclass(frozen=True)
class SubCircle:
    direction: str
    lat: float
    lng: float
    radius_m: float


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    r = config.EARTH_RADIUS_M
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return haversine_m(lat1, lng1, lat2, lng2) / 1000.0


def offset_coordinates(lat: float, lng: float, dx_km: float, dy_km: float) -> Dict[str, float]:
    """Shift a point by dx_km east and dy_km north.

    Flat-earth approximation, fine for offsets of a few tens of km away from
    the poles.
    """
    lat_offset = dy_km / config.KM_PER_DEGREE
    lng_offset = dx_km / (config.KM_PER_DEGREE * math.cos(math.radians(lat)))
    return {"lat": lat + lat_offset, "lng": lng + lng_offset}


def calculate_4_sub_circles(
    center_lat: float,
    center_lng: float,
    radius_m: float,
    sub_radius_ratio: Optional[float] = None,
    offset_ratio: Optional[float] = None,
) -> List[SubCircle]:
    """Return the NW, NE, SW, SE sub-circles of a search circle, in that order."""
    sub_ratio = config.SUB_RADIUS_RATIO if sub_radius_ratio is None else sub_radius_ratio
    off_ratio = config.OFFSET_RATIO if offset_ratio is None else offset_ratio

    radius_km = radius_m / 1000.0
    sub_radius_m = radius_m * sub_ratio
    offset_km = radius_km * off_ratio

    circles: List[SubCircle] = []
    for direction in SUB_CIRCLE_DIRECTIONS:
        east, north = _DIRECTION_SIGNS[direction]
        center = offset_coordinates(center_lat, center_lng, east * offset_km, north * offset_km)
        circles.append(
            SubCircle(
                direction=direction,
                lat=center["lat"],
                lng=center["lng"],
                radius_m=sub_radius_m,
            )
        )
    return circles
