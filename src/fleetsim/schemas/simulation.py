"""Simulation request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..services.simulation.events import SimulationEvent, event_to_dict
from ..services.simulation.models import DeliveryProgress, SessionSnapshot, Waypoint


class WaypointInput(BaseModel):
    package_id: str
    coordinates: Optional[tuple[float, float]] = Field(None, description="Destination as [lng, lat].")
    waypoint_id: Optional[str] = None
    destination: str = ""
    estimated_arrival: Optional[str] = None
    delivered: bool = False

    def to_domain(self, vehicle_id: str) -> Waypoint:
        return Waypoint(
            waypoint_id=self.waypoint_id or f"{vehicle_id}:{self.package_id}",
            package_id=self.package_id,
            coordinates=self.coordinates,
            destination=self.destination,
            estimated_arrival=self.estimated_arrival,
            delivered=self.delivered,
        )


class SessionCreateRequest(BaseModel):
    """Attach an already computed route to a vehicle."""

    route: List[tuple[float, float]] = Field(..., description="Route vertices as [lng, lat] pairs.")
    waypoints: List[WaypointInput]
    base_speed: Optional[float] = Field(None, gt=0)
    time_scale: Optional[float] = Field(None, gt=0)


class TimeScaleRequest(BaseModel):
    factor: float = Field(..., gt=0, description="Simulated seconds per wall-clock second.")


class SessionHandleModel(BaseModel):
    vehicle_id: str
    waypoint_count: int
    total_distance_km: float
    skipped_package_ids: List[str] = Field(default_factory=list)


class GeneratedRouteModel(BaseModel):
    session: SessionHandleModel
    vertex_count: int
    total_distance_meters: float
    total_duration_seconds: float


class BulkGenerationModel(BaseModel):
    created: List[str]
    skipped: List[str]
    failed: Dict[str, str]


class WaypointModel(BaseModel):
    waypoint_id: str
    package_id: str
    coordinates: Optional[tuple[float, float]]
    destination: str
    estimated_arrival: Optional[str]
    delivered: bool
    route_progress: Optional[float]
    distance_from_route_km: Optional[float]

    @classmethod
    def from_domain(cls, waypoint: Waypoint) -> "WaypointModel":
        return cls(
            waypoint_id=waypoint.waypoint_id,
            package_id=waypoint.package_id,
            coordinates=waypoint.coordinates,
            destination=waypoint.destination,
            estimated_arrival=waypoint.estimated_arrival,
            delivered=waypoint.delivered,
            route_progress=waypoint.route_progress,
            distance_from_route_km=waypoint.distance_from_route_km,
        )


class DeliveryProgressModel(BaseModel):
    total: int
    delivered: int
    remaining: int
    percentage: float


class SessionStatusModel(BaseModel):
    vehicle_id: str
    state: Literal["idle", "active", "completed"]
    progress: float
    position: tuple[float, float]
    speed_kmh: float
    time_scale: float
    total_distance_km: float
    delivered: List[str]
    waypoints: List[WaypointModel]
    final_position: Optional[tuple[float, float]] = None
    delivery_progress: DeliveryProgressModel
    next_waypoint: Optional[WaypointModel] = None

    @classmethod
    def from_snapshot(
        cls,
        snapshot: SessionSnapshot,
        progress: DeliveryProgress,
        next_waypoint: Optional[Waypoint],
    ) -> "SessionStatusModel":
        return cls(
            vehicle_id=snapshot.vehicle_id,
            state=snapshot.state.value,
            progress=snapshot.progress,
            position=snapshot.position,
            speed_kmh=snapshot.speed_kmh,
            time_scale=snapshot.time_scale,
            total_distance_km=snapshot.total_distance_km,
            delivered=sorted(snapshot.delivered),
            waypoints=[WaypointModel.from_domain(waypoint) for waypoint in snapshot.waypoints],
            final_position=snapshot.final_position,
            delivery_progress=DeliveryProgressModel(
                total=progress.total,
                delivered=progress.delivered,
                remaining=progress.remaining,
                percentage=progress.percentage,
            ),
            next_waypoint=WaypointModel.from_domain(next_waypoint) if next_waypoint else None,
        )


class FleetSummaryModel(BaseModel):
    total_vehicles: int
    active_vehicles: int
    completed_vehicles: int
    total_deliveries: int
    completed_deliveries: int


class EventModel(BaseModel):
    kind: str
    sequence: int
    vehicle_id: str
    payload: dict

    @classmethod
    def from_event(cls, event: SimulationEvent) -> "EventModel":
        data = event_to_dict(event)
        return cls(
            kind=data.pop("kind"),
            sequence=data.pop("sequence"),
            vehicle_id=data.pop("vehicle_id"),
            payload=data,
        )


class EventFeedModel(BaseModel):
    events: List[EventModel]
    last_sequence: int
