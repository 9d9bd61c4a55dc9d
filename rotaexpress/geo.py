"""
Geographic primitives for Rota Express.

This module holds the ``Coordinate`` value type and the great-circle
distance used to rank delivery stops by proximity to the origin. The
distance is computed with the Haversine formula on a spherical Earth of
radius 6371 km, which is plenty for ordering stops inside a city.

Example usage:

    from rotaexpress.geo import Coordinate, distance_km
    d = distance_km(Coordinate(-23.55, -46.63), Coordinate(-23.56, -46.65))
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def is_valid(self) -> bool:
        """Return True when both components are finite and within range."""
        return is_valid_coordinate(self.lat, self.lng)

    def as_tuple(self) -> tuple:
        return (self.lat, self.lng)


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """Check that ``lat``/``lng`` are finite numbers in the WGS84 range."""
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0


def coordinate_or_none(lat: float, lng: float) -> Optional[Coordinate]:
    """Build a ``Coordinate`` from raw values, or ``None`` if they are invalid."""
    if not is_valid_coordinate(lat, lng):
        return None
    return Coordinate(float(lat), float(lng))


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Compute the great-circle distance between two coordinates in kilometers.

    The result is symmetric in its arguments and exactly ``0.0`` when the
    two coordinates are equal. Inputs are not validated; callers must
    reject out-of-range values before they get here.
    """
    if a == b:
        return 0.0
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c
