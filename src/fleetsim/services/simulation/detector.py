"""Proximity-based delivery detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable

from ...config import settings
from ..geospatial import Coordinate, distance_km, is_valid_coordinate
from .models import Waypoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeliveryThresholds:
    """Radius/progress pairs for the per-tick check and the completion sweep."""

    transit_radius_km: float = 0.10
    transit_min_progress: float = 0.15
    final_radius_km: float = 0.15
    final_min_progress: float = 0.0

    @classmethod
    def from_settings(cls) -> "DeliveryThresholds":
        return cls(
            transit_radius_km=settings.transit_delivery_radius_km,
            transit_min_progress=settings.transit_min_progress,
            final_radius_km=settings.final_delivery_radius_km,
            final_min_progress=settings.final_min_progress,
        )


def check_deliveries(
    position: Coordinate,
    waypoints: Iterable[Waypoint],
    delivered: AbstractSet[str],
    min_progress: float,
    progress: float,
    radius_km: float,
    excluded: set[str] | None = None,
) -> list[str]:
    """Return package ids that are now deliverable, in waypoint order.

    ``delivered`` is never modified. Waypoints with missing or non-finite
    coordinates are skipped; when ``excluded`` is given they are added to it so
    the caller logs and skips them only once.
    """
    if progress <= min_progress:
        return []

    newly_delivered: list[str] = []
    for waypoint in waypoints:
        if waypoint.package_id in delivered or waypoint.package_id in newly_delivered:
            continue
        if excluded is not None and waypoint.package_id in excluded:
            continue
        if not is_valid_coordinate(waypoint.coordinates):
            logger.warning(
                f"Package {waypoint.package_id} has invalid destination coordinates "
                f"{waypoint.coordinates!r}; it cannot be delivered by proximity"
            )
            if excluded is not None:
                excluded.add(waypoint.package_id)
            continue

        distance = distance_km(position, waypoint.coordinates)
        if distance <= radius_km:
            logger.debug(f"Package {waypoint.package_id} within {distance * 1000:.0f} m at progress {progress:.3f}")
            newly_delivered.append(waypoint.package_id)
    return newly_delivered
