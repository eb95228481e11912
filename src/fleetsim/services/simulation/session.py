"""Per-vehicle delivery session state."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

from ..geospatial import Coordinate
from .models import Route, SessionSnapshot, SessionState, TickResult, Waypoint


class DeliverySession:
    """Mutable simulation state for one vehicle.

    Sessions are owned by :class:`~.orchestrator.SimulationOrchestrator`, which
    serialises access with a per-session lock. ``commit`` is the only public
    mutator; the underscore transition helpers are reserved for the
    orchestrator. Readers should use :meth:`snapshot`.
    """

    def __init__(
        self,
        vehicle_id: str,
        route: Route,
        waypoints: Sequence[Waypoint],
        *,
        base_speed: float,
        time_scale: float,
        created_at: float,
        excluded: Sequence[str] = (),
    ) -> None:
        self.vehicle_id = vehicle_id
        self.route = route
        self.waypoints: tuple[Waypoint, ...] = tuple(waypoints)
        self.base_speed = base_speed
        self._time_scale = time_scale
        self._progress = 0.0
        self._position: Coordinate = route.vertices[0]
        self._speed_kmh = 0.0
        self._delivered: set[str] = {waypoint.package_id for waypoint in self.waypoints if waypoint.delivered}
        self._state = SessionState.IDLE
        self._last_tick_at = created_at
        self._final_position: Optional[Coordinate] = None
        # Waypoints with unusable coordinates; never delivered by proximity.
        self.excluded: set[str] = set(excluded)

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def position(self) -> Coordinate:
        return self._position

    @property
    def speed_kmh(self) -> float:
        return self._speed_kmh

    @property
    def delivered(self) -> frozenset[str]:
        return frozenset(self._delivered)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def time_scale(self) -> float:
        return self._time_scale

    @property
    def last_tick_at(self) -> float:
        return self._last_tick_at

    @property
    def final_position(self) -> Optional[Coordinate]:
        return self._final_position

    def commit(self, result: TickResult, now: float) -> None:
        """Apply one tick's outcome atomically."""

        if self._state is not SessionState.ACTIVE:
            raise RuntimeError(f"Cannot commit a tick to a {self._state.value} session ({self.vehicle_id})")
        if result.progress < self._progress:
            raise RuntimeError(
                f"Progress for {self.vehicle_id} would move backwards ({self._progress:.6f} -> {result.progress:.6f})"
            )
        unknown = set(result.newly_delivered) - {waypoint.package_id for waypoint in self.waypoints}
        if unknown:
            raise RuntimeError(f"Unknown package ids committed for {self.vehicle_id}: {sorted(unknown)}")

        self._progress = result.progress
        self._position = result.position
        self._speed_kmh = result.speed_kmh
        self._delivered.update(result.newly_delivered)
        self._last_tick_at = now
        if result.completed:
            self._state = SessionState.COMPLETED
            self._speed_kmh = 0.0
            self._final_position = result.final_position

    def _activate(self, now: float) -> None:
        self._state = SessionState.ACTIVE
        # Time spent paused is not simulated.
        self._last_tick_at = now

    def _pause(self) -> None:
        self._state = SessionState.IDLE
        self._speed_kmh = 0.0

    def _set_time_scale(self, factor: float) -> None:
        self._time_scale = factor

    def pending_waypoints(self) -> list[Waypoint]:
        return [
            waypoint
            for waypoint in self.waypoints
            if waypoint.package_id not in self._delivered and waypoint.package_id not in self.excluded
        ]

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            vehicle_id=self.vehicle_id,
            state=self._state,
            progress=self._progress,
            position=self._position,
            speed_kmh=self._speed_kmh,
            time_scale=self._time_scale,
            delivered=frozenset(self._delivered),
            waypoints=tuple(
                replace(waypoint, delivered=waypoint.package_id in self._delivered) for waypoint in self.waypoints
            ),
            total_distance_km=self.route.total_distance_km,
            final_position=self._final_position,
        )
