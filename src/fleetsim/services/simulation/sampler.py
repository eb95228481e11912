"""Walk a road polyline by fraction of its length."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Sequence

from shapely.geometry import LineString, Point
from shapely.ops import nearest_points

from ..geospatial import Coordinate, bearing_degrees, distance_km
from .models import Route


@dataclass(frozen=True, slots=True)
class RouteProjection:
    coordinates: Coordinate
    progress: float
    distance_km: float


def total_length(vertices: Sequence[Coordinate]) -> float:
    """Sum of Haversine segment lengths in kilometres."""

    return sum(distance_km(vertices[i - 1], vertices[i]) for i in range(1, len(vertices)))


def _clamp(progress: float) -> float:
    return min(max(progress, 0.0), 1.0)


def _segment_at(route: Route, target_km: float) -> int:
    """Index ``i`` of the segment ``vertices[i-1] -> vertices[i]`` containing ``target_km``."""

    index = bisect.bisect_left(route.cumulative_km, target_km, lo=1)
    return min(index, len(route.vertices) - 1)


def position_at_progress(route: Route, progress: float) -> Coordinate:
    """Interpolated ``(lng, lat)`` at ``progress * total_distance_km`` along the route.

    Longitude and latitude are interpolated independently inside the final
    segment, which is accurate enough at city scale.
    """
    if progress <= 0:
        return route.vertices[0]
    if progress >= 1:
        return route.vertices[-1]

    total = route.total_distance_km
    if total <= 0:
        return route.vertices[0]

    target = total * progress
    index = _segment_at(route, target)
    start_km = route.cumulative_km[index - 1]
    segment_km = route.cumulative_km[index] - start_km
    if segment_km <= 0:
        return route.vertices[index]

    fraction = (target - start_km) / segment_km
    lng1, lat1 = route.vertices[index - 1]
    lng2, lat2 = route.vertices[index]
    return (lng1 + (lng2 - lng1) * fraction, lat1 + (lat2 - lat1) * fraction)


def heading_at_progress(route: Route, progress: float) -> float:
    """Bearing of the segment the vehicle is on; 0 for degenerate routes."""

    if len(route.vertices) < 2 or route.total_distance_km <= 0:
        return 0.0
    target = route.total_distance_km * _clamp(progress)
    index = _segment_at(route, target)
    # Skip zero-length segments so a repeated vertex does not report north.
    while index < len(route.vertices) - 1 and route.vertices[index - 1] == route.vertices[index]:
        index += 1
    lng1, lat1 = route.vertices[index - 1]
    lng2, lat2 = route.vertices[index]
    return bearing_degrees(lat1, lng1, lat2, lng2)


def project_onto_route(route: Route, point: Coordinate) -> RouteProjection:
    """Closest point on the polyline to ``point`` and the route progress there.

    The projection is planar in lng/lat space; the reported distance is the
    Haversine distance from ``point`` to the projected point.
    """
    if len(route.vertices) == 1 or route.total_distance_km <= 0:
        anchor = route.vertices[0]
        return RouteProjection(coordinates=anchor, progress=0.0, distance_km=distance_km(point, anchor))

    target = Point(point)
    line = LineString(route.vertices)
    closest_point = nearest_points(line, target)[0]
    closest = (closest_point.x, closest_point.y)

    best_index = 1
    best_gap = float("inf")
    for index in range(1, len(route.vertices)):
        segment = LineString([route.vertices[index - 1], route.vertices[index]])
        gap = segment.distance(closest_point)
        if gap < best_gap:
            best_gap = gap
            best_index = index

    along_km = route.cumulative_km[best_index - 1] + distance_km(route.vertices[best_index - 1], closest)
    return RouteProjection(
        coordinates=closest,
        progress=_clamp(along_km / route.total_distance_km),
        distance_km=distance_km(point, closest),
    )
