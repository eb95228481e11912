"""Typed simulation events and the observer bus."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from typing import Callable, Optional, Union

from ..geospatial import Coordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PositionUpdated:
    vehicle_id: str
    position: Coordinate
    speed_kmh: float
    progress: float
    heading: float
    sequence: int = 0
    kind: str = field(default="position_updated", init=False)


@dataclass(frozen=True, slots=True)
class PackageDelivered:
    vehicle_id: str
    package_id: str
    destination: str = ""
    sequence: int = 0
    kind: str = field(default="package_delivered", init=False)


@dataclass(frozen=True, slots=True)
class RouteCompleted:
    vehicle_id: str
    delivered_count: int
    final_position: Optional[Coordinate] = None
    sequence: int = 0
    kind: str = field(default="route_completed", init=False)


SimulationEvent = Union[PositionUpdated, PackageDelivered, RouteCompleted]
Observer = Callable[[SimulationEvent], None]


def event_to_dict(event: SimulationEvent) -> dict:
    return asdict(event)


class EventBus:
    """Fan events out to subscribers, stamping each with a sequence number.

    Observers run outside the bus lock, so a slow observer only delays the
    publisher that called it. Events for one vehicle arrive in order because
    that vehicle's ticks are serialised; events for different vehicles may
    interleave. A failing observer is logged and skipped; it never interrupts
    a tick.
    """

    def __init__(self) -> None:
        self._observers: list[Observer] = []
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def publish(self, event: SimulationEvent) -> SimulationEvent:
        with self._lock:
            stamped = replace(event, sequence=next(self._counter))
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(stamped)
            except Exception:
                logger.exception(f"Observer {observer!r} failed handling {stamped.kind} for {stamped.vehicle_id}")
        return stamped


class EventLog:
    """Bounded in-memory feed of recent events, polled by the HTTP API."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._events: deque[SimulationEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, event: SimulationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def since(self, after: int = 0, vehicle_id: str | None = None) -> list[SimulationEvent]:
        with self._lock:
            events = sorted(self._events, key=lambda event: event.sequence)
        return [
            event
            for event in events
            if event.sequence > after and (vehicle_id is None or event.vehicle_id == vehicle_id)
        ]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
