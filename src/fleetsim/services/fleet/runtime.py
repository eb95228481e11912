"""Wiring of the orchestrator, planner, stores and observers for one process."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from ...config import settings
from ...data.fleet_repository import FleetStore, get_fleet_store
from ...persistence.failed_vehicles import FailedVehicleRegistry
from ...persistence.filesystem import FileStorage
from ..routing.models import RoutingProvider
from ..routing.osrm_client import OSRMClient
from ..simulation.events import EventLog
from ..simulation.orchestrator import SimulationOrchestrator
from ..simulation.scheduler import Scheduler
from .observers import DeliveryWriteBack, RunRecorder
from .planner import RoutePlanner


@dataclass(slots=True)
class FleetRuntime:
    orchestrator: SimulationOrchestrator
    planner: RoutePlanner
    store: FleetStore
    failed: FailedVehicleRegistry
    event_log: EventLog

    def shutdown(self) -> None:
        self.orchestrator.shutdown()


def build_runtime(
    *,
    scheduler: Scheduler | None = None,
    store: FleetStore | None = None,
    router_factory: Callable[[], RoutingProvider] | None = None,
    storage: FileStorage | None = None,
    failed: FailedVehicleRegistry | None = None,
    clock: Callable[[], float] = time.monotonic,
    persist_runs: bool | None = None,
) -> FleetRuntime:
    orchestrator = SimulationOrchestrator(scheduler=scheduler, clock=clock)
    store = store or get_fleet_store()
    event_log = EventLog(maxlen=settings.event_log_size)

    orchestrator.events.subscribe(event_log)
    orchestrator.events.subscribe(DeliveryWriteBack(store))
    if settings.persist_completed_runs if persist_runs is None else persist_runs:
        orchestrator.events.subscribe(RunRecorder(orchestrator, storage or FileStorage()))

    failed = failed or FailedVehicleRegistry()
    planner = RoutePlanner(orchestrator, store, failed, router_factory or OSRMClient)
    return FleetRuntime(
        orchestrator=orchestrator,
        planner=planner,
        store=store,
        failed=failed,
        event_log=event_log,
    )
