"""Simulation error taxonomy."""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for recoverable simulation errors."""


class ValidationError(SimulationError, ValueError):
    """Malformed input at session creation; no session is created."""


class DependencyFailure(SimulationError):
    """The routing provider failed or returned no usable route."""

    def __init__(self, message: str, vehicle_id: str | None = None) -> None:
        super().__init__(message)
        self.vehicle_id = vehicle_id


class StateError(SimulationError, LookupError):
    """An operation referenced a vehicle that has no session."""

    def __init__(self, vehicle_id: str, operation: str) -> None:
        super().__init__(f"No delivery session for vehicle '{vehicle_id}' ({operation})")
        self.vehicle_id = vehicle_id
        self.operation = operation


class UnknownVehicleError(SimulationError, LookupError):
    """The fleet store has no vehicle with the requested id."""
