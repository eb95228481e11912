"""Event observers that connect the simulation to storage."""

from __future__ import annotations

import logging

from ...data.fleet_repository import FleetStore
from ...persistence.filesystem import FileStorage
from ..outputs.delivery_formatter import session_to_csv, session_to_json
from ..simulation.errors import StateError
from ..simulation.events import PackageDelivered, RouteCompleted, SimulationEvent
from ..simulation.orchestrator import SimulationOrchestrator

logger = logging.getLogger(__name__)


class DeliveryWriteBack:
    """Ask the fleet store to mark each delivered package."""

    def __init__(self, store: FleetStore) -> None:
        self.store = store

    def __call__(self, event: SimulationEvent) -> None:
        if not isinstance(event, PackageDelivered):
            return
        try:
            updated = self.store.mark_delivered(event.package_id)
        except Exception as e:
            logger.error(f"Failed to write back delivery of {event.package_id} for {event.vehicle_id}: {e}")
            return
        if not updated:
            logger.warning(f"Fleet store has no package {event.package_id} to mark delivered")


class RunRecorder:
    """Write ``summary.json`` and ``deliveries.csv`` when a route completes."""

    def __init__(self, orchestrator: SimulationOrchestrator, storage: FileStorage) -> None:
        self.orchestrator = orchestrator
        self.storage = storage

    def __call__(self, event: SimulationEvent) -> None:
        if not isinstance(event, RouteCompleted):
            return
        try:
            snapshot = self.orchestrator.get_snapshot(event.vehicle_id)
        except StateError:
            return
        run_dir = self.storage.make_run_directory(prefix=f"delivery_{event.vehicle_id}")
        self.storage.write_json(run_dir / "summary.json", session_to_json(snapshot))
        self.storage.write_csv(run_dir / "deliveries.csv", session_to_csv(snapshot))
        logger.info(f"Recorded completed run for {event.vehicle_id} in {run_dir}")
