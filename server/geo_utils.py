"""Geographic helpers: coordinates, great-circle distance and safe zones.

Everything here is pure and deterministic so the registry, chat router and
combat resolver can share it without worrying about state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from constants import EARTH_RADIUS_M, SAFE_ZONE_RADIUS_M


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {'lat': self.lat, 'lng': self.lng}

    @staticmethod
    def from_dict(data: Any) -> "Position":
        """Build a Position from an untrusted ``{lat, lng}`` payload.

        Raises ValueError when the payload is not a mapping, a coordinate is
        missing or not a finite number, or the values are outside the globe.
        """
        if not isinstance(data, dict):
            raise ValueError("position must be an object with lat and lng")
        lat = _coerce_coordinate(data.get('lat'), 'lat')
        lng = _coerce_coordinate(data.get('lng'), 'lng')
        if not -90.0 <= lat <= 90.0:
            raise ValueError("lat out of range")
        if not -180.0 <= lng <= 180.0:
            raise ValueError("lng out of range")
        return Position(lat=lat, lng=lng)


def _coerce_coordinate(value: Any, name: str) -> float:
    # bool is an int subclass; a coordinate of True is a client bug, not 1.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    out = float(value)
    if not math.isfinite(out):
        raise ValueError(f"{name} must be finite")
    return out


# Major cities (name, lat, lng). NPCs are anchored to these and each one is a
# PvP safe zone.
MAJOR_CITIES: List[Tuple[str, float, float]] = [
    ('New York', 40.758896, -73.985130),
    ('Tokyo', 35.6762, 139.6503),
    ('London', 51.5074, -0.1278),
    ('Sydney', -33.8688, 151.2093),
    ('Paris', 48.8566, 2.3522),
    ('Dubai', 25.2048, 55.2708),
    ('Singapore', 1.3521, 103.8198),
    ('Los Angeles', 34.0522, -118.2437),
    ('Berlin', 52.5200, 13.4050),
    ('Rio de Janeiro', -22.9068, -43.1729),
    ('Mumbai', 19.0760, 72.8777),
    ('Cairo', 30.0444, 31.2357),
]

SAFE_ZONES: List[Tuple[str, Position]] = [
    (name, Position(lat, lng)) for name, lat, lng in MAJOR_CITIES
]


def city_position(name: str) -> Optional[Position]:
    for city, lat, lng in MAJOR_CITIES:
        if city == name:
            return Position(lat, lng)
    return None


def distance_meters(a: Position, b: Position) -> float:
    """Haversine great-circle distance between two coordinates, in meters."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)

    h = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    # Rounding can push h a hair past 1.0 for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _planar_distance_meters(a: Position, b: Position) -> float:
    """Latitude-corrected equirectangular approximation; fine at city scale."""
    mean_lat = math.radians((a.lat + b.lat) / 2)
    dx = math.radians(b.lng - a.lng) * math.cos(mean_lat)
    dy = math.radians(b.lat - a.lat)
    return EARTH_RADIUS_M * math.hypot(dx, dy)


def safe_zone_name(position: Position,
                   zones: List[Tuple[str, Position]] | None = None,
                   radius_m: float = SAFE_ZONE_RADIUS_M) -> Optional[str]:
    """Return the name of the first safe zone containing ``position``, else None."""
    for name, center in (SAFE_ZONES if zones is None else zones):
        if _planar_distance_meters(position, center) <= radius_m:
            return name
    return None
