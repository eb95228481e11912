"""Simulation domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from ..geospatial import Coordinate, distance_km


@dataclass(frozen=True, slots=True)
class Route:
    """Road polyline in ``(lng, lat)`` order with cumulative segment lengths."""

    vertices: tuple[Coordinate, ...]
    cumulative_km: tuple[float, ...]

    @classmethod
    def from_vertices(cls, vertices: Sequence[Sequence[float]]) -> "Route":
        points = tuple((float(lng), float(lat)) for lng, lat in vertices)
        cumulative = [0.0] * len(points)
        for index in range(1, len(points)):
            cumulative[index] = cumulative[index - 1] + distance_km(points[index - 1], points[index])
        return cls(vertices=points, cumulative_km=tuple(cumulative))

    @property
    def total_distance_km(self) -> float:
        return self.cumulative_km[-1] if self.cumulative_km else 0.0

    def __len__(self) -> int:
        return len(self.vertices)


@dataclass(frozen=True, slots=True)
class Waypoint:
    """A route stop tied to exactly one package destination."""

    waypoint_id: str
    package_id: str
    coordinates: Optional[Coordinate]
    destination: str = ""
    estimated_arrival: Optional[str] = None
    delivered: bool = False
    route_progress: Optional[float] = None
    distance_from_route_km: Optional[float] = None


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class TickResult:
    vehicle_id: str
    progress: float
    position: Coordinate
    speed_kmh: float
    heading: float
    newly_delivered: tuple[str, ...] = ()
    completed: bool = False
    final_position: Optional[Coordinate] = None
    # Subset of newly_delivered picked up by the completion sweep.
    swept: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only copy of a session handed to observers and the API."""

    vehicle_id: str
    state: SessionState
    progress: float
    position: Coordinate
    speed_kmh: float
    time_scale: float
    delivered: frozenset[str]
    waypoints: tuple[Waypoint, ...]
    total_distance_km: float
    final_position: Optional[Coordinate] = None

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE


@dataclass(frozen=True, slots=True)
class SessionHandle:
    """Returned by session creation; identifies the session for later calls."""

    vehicle_id: str
    waypoint_count: int
    total_distance_km: float
    skipped_package_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class DeliveryProgress:
    total: int
    delivered: int
    remaining: int
    percentage: float


@dataclass(frozen=True, slots=True)
class FleetSummary:
    total_vehicles: int
    active_vehicles: int
    completed_vehicles: int
    total_deliveries: int
    completed_deliveries: int
