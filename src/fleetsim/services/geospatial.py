"""Geospatial helper functions.

Route geometry in this package uses ``(lng, lat)`` pairs, matching GeoJSON and
the OSRM wire format. The scalar helpers take latitude first.
"""

from __future__ import annotations

import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0

Coordinate = tuple[float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two ``(lng, lat)`` points."""

    return haversine_km(a[1], a[0], b[1], b[0])


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the initial bearing from (lat1, lon1) to (lat2, lon2)."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def is_valid_coordinate(point: Sequence[float] | None) -> bool:
    """Return True for a finite ``(lng, lat)`` pair inside WGS84 bounds."""

    if point is None or len(point) != 2:
        return False
    lng, lat = point
    if lng is None or lat is None:
        return False
    try:
        lng_f, lat_f = float(lng), float(lat)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lng_f) and math.isfinite(lat_f)):
        return False
    return -180.0 <= lng_f <= 180.0 and -90.0 <= lat_f <= 90.0
