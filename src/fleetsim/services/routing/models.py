"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..geospatial import Coordinate


@dataclass(frozen=True, slots=True)
class ProviderRoute:
    """Road route returned by a routing provider, vertices in ``(lng, lat)`` order."""

    vertices: tuple[Coordinate, ...]
    total_distance_meters: float
    total_duration_seconds: float


class RoutingProvider(Protocol):
    def compute_route(self, ordered_stops: Sequence[Coordinate]) -> ProviderRoute:
        ...
