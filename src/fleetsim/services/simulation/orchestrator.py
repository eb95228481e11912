"""Simulation orchestration: session registry, tick loop and event dispatch."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence

from ...config import settings
from ..geospatial import Coordinate, is_valid_coordinate
from .detector import DeliveryThresholds, check_deliveries
from .errors import StateError, ValidationError
from .events import EventBus, PackageDelivered, PositionUpdated, RouteCompleted
from .models import (
    DeliveryProgress,
    FleetSummary,
    Route,
    SessionHandle,
    SessionSnapshot,
    SessionState,
    TickResult,
    Waypoint,
)
from .sampler import heading_at_progress, position_at_progress, project_onto_route
from .scheduler import Scheduler, ThreadScheduler
from .session import DeliverySession
from .speed import speed_at

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


@dataclass
class _SessionEntry:
    session: DeliverySession
    source_waypoints: tuple[Waypoint, ...]
    lock: threading.RLock = field(default_factory=threading.RLock)


class SimulationOrchestrator:
    """Owns every vehicle's :class:`DeliverySession` and drives its ticks.

    Each vehicle is ticked by its own scheduler key, so ticks for one vehicle
    never overlap while different vehicles advance independently. Observers
    subscribe to :attr:`events` and only ever receive immutable event objects.
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        thresholds: DeliveryThresholds | None = None,
        base_speed: float | None = None,
        mph_to_kmh: float | None = None,
        default_time_scale: float | None = None,
    ) -> None:
        self.scheduler = scheduler or ThreadScheduler(settings.tick_interval_seconds)
        self.events = events or EventBus()
        self.clock = clock
        self.thresholds = thresholds or DeliveryThresholds.from_settings()
        self.base_speed = base_speed if base_speed is not None else settings.base_speed
        self.mph_to_kmh = mph_to_kmh if mph_to_kmh is not None else settings.mph_to_kmh
        self.default_time_scale = default_time_scale if default_time_scale is not None else settings.default_time_scale
        self._entries: dict[str, _SessionEntry] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def create_session(
        self,
        vehicle_id: str,
        route: Route | Sequence[Coordinate],
        waypoints: Sequence[Waypoint],
        *,
        base_speed: float | None = None,
        time_scale: float | None = None,
    ) -> SessionHandle:
        """Validate inputs and register a new idle session, replacing any existing one.

        Raises:
            ValidationError: the route has fewer than two valid vertices, no
                waypoint has usable coordinates, package ids repeat, or a
                speed/time-scale override is not positive.
        """
        if not vehicle_id:
            raise ValidationError("Vehicle id is required.")
        vertices = route.vertices if isinstance(route, Route) else tuple(route)
        if len(vertices) < 2:
            raise ValidationError(f"Route for vehicle '{vehicle_id}' needs at least 2 vertices, got {len(vertices)}.")
        invalid_vertices = [index for index, vertex in enumerate(vertices) if not is_valid_coordinate(vertex)]
        if invalid_vertices:
            raise ValidationError(f"Route for vehicle '{vehicle_id}' has invalid vertices at {invalid_vertices[:5]}.")
        route = route if isinstance(route, Route) else Route.from_vertices(vertices)

        speed = base_speed if base_speed is not None else self.base_speed
        scale = time_scale if time_scale is not None else self.default_time_scale
        if speed <= 0:
            raise ValidationError(f"Base speed must be positive, got {speed}.")
        if scale <= 0:
            raise ValidationError(f"Time scale must be positive, got {scale}.")

        package_ids = [waypoint.package_id for waypoint in waypoints]
        duplicates = sorted({pid for pid in package_ids if package_ids.count(pid) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate package ids for vehicle '{vehicle_id}': {duplicates}")

        prepared: list[Waypoint] = []
        skipped: list[str] = []
        for waypoint in waypoints:
            if not is_valid_coordinate(waypoint.coordinates):
                logger.warning(
                    f"Package {waypoint.package_id} for vehicle {vehicle_id} is missing coordinates - skipping"
                )
                skipped.append(waypoint.package_id)
                prepared.append(waypoint)
                continue
            coordinates = (float(waypoint.coordinates[0]), float(waypoint.coordinates[1]))
            projection = project_onto_route(route, coordinates)
            prepared.append(
                replace(
                    waypoint,
                    coordinates=coordinates,
                    route_progress=projection.progress,
                    distance_from_route_km=projection.distance_km,
                )
            )

        if len(skipped) == len(prepared):
            raise ValidationError(f"Vehicle '{vehicle_id}' has no waypoints with valid coordinates.")

        session = DeliverySession(
            vehicle_id,
            route,
            prepared,
            base_speed=speed,
            time_scale=scale,
            created_at=self.clock(),
            excluded=skipped,
        )
        with self._registry_lock:
            previous = self._entries.pop(vehicle_id, None)
            self._entries[vehicle_id] = _SessionEntry(session=session, source_waypoints=tuple(waypoints))
        if previous is not None:
            self.scheduler.cancel(vehicle_id)
            logger.info(f"Replaced existing delivery session for vehicle {vehicle_id}")

        logger.info(
            f"Delivery session created for {vehicle_id}: {len(prepared) - len(skipped)} waypoints, "
            f"{route.total_distance_km:.2f} km"
        )
        return SessionHandle(
            vehicle_id=vehicle_id,
            waypoint_count=len(prepared) - len(skipped),
            total_distance_km=route.total_distance_km,
            skipped_package_ids=tuple(skipped),
        )

    def start(self, vehicle_id: str) -> bool:
        """Begin or resume ticking. Returns False when the route is already complete."""

        entry = self._entry(vehicle_id, "start")
        with entry.lock:
            session = entry.session
            if session.state is SessionState.COMPLETED:
                logger.warning(f"Vehicle {vehicle_id} has already completed its route; reset it to run again")
                return False
            if session.state is SessionState.IDLE:
                session._activate(self.clock())
                logger.info(f"Started delivery simulation for vehicle {vehicle_id} at {session.progress:.1%}")
        self.scheduler.schedule(vehicle_id, lambda: self._scheduled_tick(vehicle_id))
        return True

    def stop(self, vehicle_id: str) -> bool:
        """Pause the session. A tick already running commits, then stops rescheduling."""

        entry = self._entry(vehicle_id, "stop")
        self.scheduler.cancel(vehicle_id)
        with entry.lock:
            session = entry.session
            if session.state is not SessionState.ACTIVE:
                return False
            session._pause()
            logger.info(f"Stopped delivery simulation for vehicle {vehicle_id} at {session.progress:.1%}")
            return True

    def set_time_scale(self, vehicle_id: str, factor: float) -> None:
        """Change the simulated-time multiplier from the next tick on."""

        if factor is None or not factor > 0:
            raise ValidationError(f"Time scale must be positive, got {factor}.")
        entry = self._entry(vehicle_id, "set_time_scale")
        with entry.lock:
            entry.session._set_time_scale(float(factor))
        logger.info(f"Time scale for vehicle {vehicle_id} set to {factor}x")

    def reset(self, vehicle_id: str) -> SessionHandle:
        """Discard progress and rebuild the session from its original route and waypoints."""

        entry = self._entry(vehicle_id, "reset")
        session = entry.session
        return self.create_session(
            vehicle_id,
            session.route,
            entry.source_waypoints,
            base_speed=session.base_speed,
            time_scale=session.time_scale,
        )

    def remove_session(self, vehicle_id: str) -> bool:
        self.scheduler.cancel(vehicle_id)
        with self._registry_lock:
            existed = self._entries.pop(vehicle_id, None) is not None
        if existed:
            logger.info(f"Cleared delivery session for vehicle {vehicle_id}")
        return existed

    def clear(self) -> None:
        with self._registry_lock:
            vehicle_ids = list(self._entries)
            self._entries.clear()
        for vehicle_id in vehicle_ids:
            self.scheduler.cancel(vehicle_id)
        logger.info(f"Cleared {len(vehicle_ids)} delivery sessions")

    def shutdown(self) -> None:
        self.clear()
        self.scheduler.shutdown()

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------
    def tick(self, vehicle_id: str, now: float | None = None) -> Optional[TickResult]:
        """Advance one session by the wall-clock time since its last tick.

        Returns None when the session is not active.
        """
        entry = self._entry(vehicle_id, "tick")
        with entry.lock:
            session = entry.session
            if not session.active:
                return None
            now = self.clock() if now is None else now
            result = self._advance(session, now)
            session.commit(result, now)
            self._emit(session, result)
        return result

    def _advance(self, session: DeliverySession, now: float) -> TickResult:
        wall_delta = max(now - session.last_tick_at, 0.0)
        sim_delta = wall_delta * session.time_scale

        speed = speed_at(session.progress, session.base_speed)
        travelled_km = speed * self.mph_to_kmh / SECONDS_PER_HOUR * sim_delta
        total_km = session.route.total_distance_km
        increment = travelled_km / total_km if total_km > 0 else 1.0
        new_progress = min(session.progress + increment, 1.0)
        new_position = position_at_progress(session.route, new_progress)

        thresholds = self.thresholds
        newly_delivered = check_deliveries(
            new_position,
            session.waypoints,
            session.delivered,
            thresholds.transit_min_progress,
            new_progress,
            thresholds.transit_radius_km,
            excluded=session.excluded,
        )

        completed = new_progress >= 1.0
        final_position: Optional[Coordinate] = None
        swept: list[str] = []
        if completed:
            swept = check_deliveries(
                new_position,
                session.waypoints,
                session.delivered | set(newly_delivered),
                thresholds.final_min_progress,
                new_progress,
                thresholds.final_radius_km,
                excluded=session.excluded,
            )
            if swept:
                logger.info(f"Final sweep for {session.vehicle_id} delivered {swept}")
            newly_delivered.extend(swept)
            final_position = self._final_position(session, set(newly_delivered)) or new_position

        return TickResult(
            vehicle_id=session.vehicle_id,
            progress=new_progress,
            position=new_position,
            speed_kmh=speed,
            heading=heading_at_progress(session.route, new_progress),
            newly_delivered=tuple(newly_delivered),
            completed=completed,
            final_position=final_position,
            swept=tuple(swept),
        )

    @staticmethod
    def _final_position(session: DeliverySession, newly_delivered: set[str]) -> Optional[Coordinate]:
        """Destination of the delivered waypoint furthest along the route."""

        delivered = session.delivered | newly_delivered
        candidates = [
            waypoint
            for waypoint in session.waypoints
            if waypoint.package_id in delivered and waypoint.package_id not in session.excluded
        ]
        if not candidates:
            return None
        last = max(candidates, key=lambda waypoint: waypoint.route_progress or 0.0)
        return last.coordinates

    def _emit(self, session: DeliverySession, result: TickResult) -> None:
        destinations = {waypoint.package_id: waypoint.destination for waypoint in session.waypoints}
        in_transit = [pid for pid in result.newly_delivered if pid not in result.swept]
        for package_id in in_transit:
            self.events.publish(
                PackageDelivered(
                    vehicle_id=session.vehicle_id,
                    package_id=package_id,
                    destination=destinations.get(package_id, ""),
                )
            )
        self.events.publish(
            PositionUpdated(
                vehicle_id=session.vehicle_id,
                position=result.position,
                speed_kmh=result.speed_kmh,
                progress=result.progress,
                heading=result.heading,
            )
        )
        for package_id in result.swept:
            self.events.publish(
                PackageDelivered(
                    vehicle_id=session.vehicle_id,
                    package_id=package_id,
                    destination=destinations.get(package_id, ""),
                )
            )
        if result.completed:
            delivered_count = len(session.delivered)
            logger.info(
                f"Delivery session complete for {session.vehicle_id}: "
                f"{delivered_count}/{len(session.waypoints)} delivered, final position {result.final_position}"
            )
            self.events.publish(
                RouteCompleted(
                    vehicle_id=session.vehicle_id,
                    delivered_count=delivered_count,
                    final_position=result.final_position,
                )
            )

    def _scheduled_tick(self, vehicle_id: str) -> bool:
        try:
            self.tick(vehicle_id)
        except StateError:
            return False
        entry = self._entries.get(vehicle_id)
        return entry is not None and entry.session.active

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def _entry(self, vehicle_id: str, operation: str) -> _SessionEntry:
        with self._registry_lock:
            entry = self._entries.get(vehicle_id)
        if entry is None:
            logger.warning(f"No delivery session for vehicle {vehicle_id} ({operation})")
            raise StateError(vehicle_id, operation)
        return entry

    def has_session(self, vehicle_id: str) -> bool:
        with self._registry_lock:
            return vehicle_id in self._entries

    def has_active_session(self, vehicle_id: str) -> bool:
        with self._registry_lock:
            entry = self._entries.get(vehicle_id)
        return entry is not None and entry.session.active

    def vehicle_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._entries)

    def get_snapshot(self, vehicle_id: str) -> SessionSnapshot:
        entry = self._entry(vehicle_id, "snapshot")
        with entry.lock:
            return entry.session.snapshot()

    def snapshots(self) -> list[SessionSnapshot]:
        with self._registry_lock:
            entries = list(self._entries.values())
        snapshots = []
        for entry in entries:
            with entry.lock:
                snapshots.append(entry.session.snapshot())
        return snapshots

    def active_sessions(self) -> list[SessionSnapshot]:
        return [snapshot for snapshot in self.snapshots() if snapshot.active]

    def delivery_progress(self, vehicle_id: str) -> DeliveryProgress:
        snapshot = self.get_snapshot(vehicle_id)
        total = len(snapshot.waypoints)
        delivered = len(snapshot.delivered)
        return DeliveryProgress(
            total=total,
            delivered=delivered,
            remaining=total - delivered,
            percentage=(delivered / total) * 100 if total > 0 else 0.0,
        )

    def next_waypoint(self, vehicle_id: str) -> Optional[Waypoint]:
        """First undelivered waypoint still ahead of the vehicle."""

        entry = self._entry(vehicle_id, "next_waypoint")
        with entry.lock:
            session = entry.session
            ahead = [
                waypoint
                for waypoint in session.pending_waypoints()
                if (waypoint.route_progress or 0.0) >= session.progress
            ]
        if not ahead:
            return None
        return min(ahead, key=lambda waypoint: waypoint.route_progress or 0.0)

    def fleet_summary(self) -> FleetSummary:
        snapshots = self.snapshots()
        return FleetSummary(
            total_vehicles=len(snapshots),
            active_vehicles=sum(1 for snapshot in snapshots if snapshot.state is SessionState.ACTIVE),
            completed_vehicles=sum(1 for snapshot in snapshots if snapshot.state is SessionState.COMPLETED),
            total_deliveries=sum(len(snapshot.waypoints) for snapshot in snapshots),
            completed_deliveries=sum(len(snapshot.delivered) for snapshot in snapshots),
        )
