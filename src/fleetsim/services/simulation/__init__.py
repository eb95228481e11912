"""Delivery simulation engine: route sampling, speed profile, proximity detection and session orchestration."""

from .errors import DependencyFailure, SimulationError, StateError, UnknownVehicleError, ValidationError
from .events import EventBus, EventLog, PackageDelivered, PositionUpdated, RouteCompleted
from .models import Route, SessionHandle, SessionSnapshot, SessionState, Waypoint
from .orchestrator import SimulationOrchestrator
from .scheduler import ManualScheduler, ThreadScheduler

__all__ = [
    "DependencyFailure",
    "EventBus",
    "EventLog",
    "ManualScheduler",
    "PackageDelivered",
    "PositionUpdated",
    "Route",
    "RouteCompleted",
    "SessionHandle",
    "SessionSnapshot",
    "SessionState",
    "SimulationError",
    "SimulationOrchestrator",
    "StateError",
    "ThreadScheduler",
    "UnknownVehicleError",
    "ValidationError",
    "Waypoint",
]
