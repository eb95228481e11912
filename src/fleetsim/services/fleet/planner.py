"""Route generation for vehicles: store snapshot -> routing provider -> session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from ...data.fleet_repository import FleetStore
from ...models.domain import Vehicle
from ...persistence.failed_vehicles import FailedVehicleRegistry
from ..geospatial import is_valid_coordinate
from ..routing.models import ProviderRoute, RoutingProvider
from ..simulation.errors import DependencyFailure, UnknownVehicleError, ValidationError
from ..simulation.models import Route, SessionHandle, Waypoint
from ..simulation.orchestrator import SimulationOrchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GeneratedRoute:
    handle: SessionHandle
    route: ProviderRoute


@dataclass(slots=True)
class BulkGenerationResult:
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def build_waypoints(vehicle: Vehicle) -> list[Waypoint]:
    """One waypoint per assigned package, in assignment order."""

    return [
        Waypoint(
            waypoint_id=f"{vehicle.vehicle_id}:{package.package_id}",
            package_id=package.package_id,
            coordinates=package.coordinates,
            destination=package.destination,
            estimated_arrival=f"{15 + index * 10} min",
            delivered=package.delivered,
        )
        for index, package in enumerate(vehicle.packages)
    ]


class RoutePlanner:
    """Requests a road route per vehicle and hands it to the orchestrator.

    Failures are written to the :class:`FailedVehicleRegistry` so that bulk
    generation does not retry them on every run.
    """

    def __init__(
        self,
        orchestrator: SimulationOrchestrator,
        store: FleetStore,
        failed: FailedVehicleRegistry,
        router_factory: Callable[[], RoutingProvider],
    ) -> None:
        self.orchestrator = orchestrator
        self.store = store
        self.failed = failed
        self.router_factory = router_factory
        self._router: Optional[RoutingProvider] = None

    def _get_router(self) -> RoutingProvider:
        if self._router is None:
            try:
                self._router = self.router_factory()
            except ValueError as e:
                raise DependencyFailure(f"Routing provider is not configured: {e}") from e
        return self._router

    def generate_for_vehicle(self, vehicle_id: str, *, manual: bool = True) -> GeneratedRoute:
        """Build a fresh session for ``vehicle_id``.

        A manual request clears any earlier failure first. Any validation or
        provider failure is recorded against the vehicle and re-raised.
        """
        if manual and self.failed.clear(vehicle_id):
            logger.info(f"Cleared failed status for vehicle {vehicle_id} before manual retry")

        vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            raise UnknownVehicleError(f"Vehicle '{vehicle_id}' not found.")

        try:
            return self._generate(vehicle)
        except (ValidationError, DependencyFailure) as exc:
            self.failed.record(vehicle_id, str(exc))
            if isinstance(exc, DependencyFailure) and exc.vehicle_id is None:
                exc.vehicle_id = vehicle_id
            raise

    def _generate(self, vehicle: Vehicle) -> GeneratedRoute:
        if not is_valid_coordinate(vehicle.location):
            raise ValidationError(f"Vehicle '{vehicle.vehicle_id}' has no valid location.")

        waypoints = build_waypoints(vehicle)
        stops = [
            waypoint.coordinates
            for waypoint in waypoints
            if not waypoint.delivered and is_valid_coordinate(waypoint.coordinates)
        ]
        if not stops:
            raise ValidationError(f"Vehicle '{vehicle.vehicle_id}' has no undelivered packages with valid coordinates.")

        logger.info(f"Generating route for vehicle {vehicle.vehicle_id} with {len(stops)} stops")
        provider_route = self._get_router().compute_route([vehicle.location, *stops])
        handle = self.orchestrator.create_session(
            vehicle.vehicle_id,
            Route.from_vertices(provider_route.vertices),
            waypoints,
        )
        return GeneratedRoute(handle=handle, route=provider_route)

    def generate_all(self) -> BulkGenerationResult:
        """Generate routes for every eligible vehicle, skipping recorded failures."""

        result = BulkGenerationResult()
        for vehicle in self.store.list_vehicles():
            if vehicle.vehicle_id in self.failed:
                logger.info(f"Skipping previously failed vehicle: {vehicle.vehicle_id}")
                result.skipped.append(vehicle.vehicle_id)
                continue
            if not vehicle.packages or vehicle.location is None:
                result.skipped.append(vehicle.vehicle_id)
                continue
            try:
                self.generate_for_vehicle(vehicle.vehicle_id, manual=False)
            except (ValidationError, DependencyFailure) as exc:
                result.failed[vehicle.vehicle_id] = str(exc)
                continue
            result.created.append(vehicle.vehicle_id)
        logger.info(
            f"Bulk route generation: {len(result.created)} created, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result
