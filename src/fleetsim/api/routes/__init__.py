"""Route group exports."""

from . import health, routes, simulation, vehicles

__all__ = ["health", "vehicles", "routes", "simulation"]
