import threading
import time

import pytest

from fleetsim.services.geospatial import distance_km
from fleetsim.services.simulation.detector import DeliveryThresholds
from fleetsim.services.simulation.errors import StateError, ValidationError
from fleetsim.services.simulation.events import PackageDelivered, PositionUpdated, RouteCompleted
from fleetsim.services.simulation.models import SessionState, Waypoint
from fleetsim.services.simulation.orchestrator import SimulationOrchestrator
from fleetsim.services.simulation.scheduler import ManualScheduler

NORTH_ROUTE = [(0.0, 0.0), (0.0, 0.02)]


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _orchestrator(clock: FakeClock) -> SimulationOrchestrator:
    return SimulationOrchestrator(
        scheduler=ManualScheduler(),
        clock=clock,
        thresholds=DeliveryThresholds(),
        base_speed=35.0,
        mph_to_kmh=1.60934,
        default_time_scale=1.0,
    )


def _waypoint(pid: str, lng: float | None, lat: float | None, **kwargs) -> Waypoint:
    coordinates = None if lng is None or lat is None else (lng, lat)
    return Waypoint(waypoint_id=f"V1:{pid}", package_id=pid, coordinates=coordinates, **kwargs)


def _collect(orchestrator: SimulationOrchestrator) -> list:
    events: list = []
    orchestrator.events.subscribe(events.append)
    return events


def _tick_until(orchestrator, clock, vehicle_id, predicate, step: float = 1.0, limit: int = 5000) -> None:
    for _ in range(limit):
        if predicate():
            return
        clock.advance(step)
        orchestrator.tick(vehicle_id)
    raise AssertionError("condition not reached")


def test_single_tick_completes_short_route_at_high_time_scale() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    orchestrator.create_session(
        "V1",
        [(0.0, 0.0), (0.0, 0.01)],
        [_waypoint("P1", 0.0, 0.01)],
        base_speed=36.0,
        time_scale=3600.0,
    )

    assert orchestrator.start("V1") is True
    clock.advance(1.0)
    result = orchestrator.tick("V1")

    assert result is not None
    assert result.completed
    assert result.progress == 1.0
    snapshot = orchestrator.get_snapshot("V1")
    assert snapshot.state is SessionState.COMPLETED
    assert snapshot.delivered == frozenset({"P1"})
    assert snapshot.speed_kmh == 0.0
    assert snapshot.final_position == (0.0, 0.01)
    assert [event.kind for event in events] == ["package_delivered", "position_updated", "route_completed"]
    assert events[-1].delivered_count == 1
    assert [event.sequence for event in events] == sorted(event.sequence for event in events)


def test_route_with_single_vertex_is_rejected() -> None:
    orchestrator = _orchestrator(FakeClock())

    with pytest.raises(ValidationError):
        orchestrator.create_session("V1", [(0.0, 0.0)], [_waypoint("P1", 0.0, 0.0)])

    assert not orchestrator.has_session("V1")


@pytest.mark.parametrize(
    "route, waypoints, overrides",
    [
        ([(0.0, 0.0), (float("nan"), 0.01)], [_waypoint("P1", 0.0, 0.01)], {}),
        (NORTH_ROUTE, [_waypoint("P1", None, None)], {}),
        (NORTH_ROUTE, [_waypoint("P1", 0.0, 0.01), _waypoint("P1", 0.0, 0.015)], {}),
        (NORTH_ROUTE, [_waypoint("P1", 0.0, 0.01)], {"time_scale": 0.0}),
        (NORTH_ROUTE, [_waypoint("P1", 0.0, 0.01)], {"base_speed": -5.0}),
    ],
)
def test_create_session_validation(route, waypoints, overrides) -> None:
    orchestrator = _orchestrator(FakeClock())

    with pytest.raises(ValidationError):
        orchestrator.create_session("V1", route, waypoints, **overrides)

    assert orchestrator.vehicle_ids() == []


def test_nearby_package_is_not_delivered_by_proximity_to_another() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    destinations = {"P1": (0.0, 0.0100), "P2": (0.0, 0.0107)}
    orchestrator.create_session(
        "V1", NORTH_ROUTE, [_waypoint(pid, *coords) for pid, coords in destinations.items()]
    )
    orchestrator.start("V1")

    _tick_until(orchestrator, clock, "V1", lambda: len(orchestrator.get_snapshot("V1").delivered) == 2)

    delivered_at: dict[str, int] = {}
    pending: list[str] = []
    tick = 0
    for event in events:
        if isinstance(event, PackageDelivered):
            pending.append(event.package_id)
        elif isinstance(event, PositionUpdated):
            tick += 1
            for package_id in pending:
                # Delivered during this tick, so the position must be inside its own radius.
                assert distance_km(event.position, destinations[package_id]) <= 0.1
                delivered_at[package_id] = tick
            pending = []

    assert delivered_at["P1"] < delivered_at["P2"]


def test_stop_and_resume_keeps_progress_and_delivered_set() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    orchestrator.create_session(
        "V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.005), _waypoint("P2", 0.0, 0.015)]
    )
    orchestrator.start("V1")
    _tick_until(orchestrator, clock, "V1", lambda: "P1" in orchestrator.get_snapshot("V1").delivered)

    assert orchestrator.stop("V1") is True
    paused = orchestrator.get_snapshot("V1")
    assert paused.state is SessionState.IDLE
    assert paused.speed_kmh == 0.0
    assert not orchestrator.scheduler.is_scheduled("V1")
    assert orchestrator.tick("V1") is None

    clock.advance(600.0)
    orchestrator.start("V1")
    orchestrator.tick("V1")

    resumed = orchestrator.get_snapshot("V1")
    assert resumed.progress == paused.progress
    assert resumed.delivered == paused.delivered

    _tick_until(orchestrator, clock, "V1", lambda: orchestrator.get_snapshot("V1").state is SessionState.COMPLETED)
    delivered_events = [event.package_id for event in events if isinstance(event, PackageDelivered)]
    assert sorted(delivered_events) == ["P1", "P2"]


def test_progress_never_decreases_and_position_follows_route() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)])
    orchestrator.start("V1")

    _tick_until(orchestrator, clock, "V1", lambda: not orchestrator.has_active_session("V1"), step=5.0)

    updates = [event for event in events if isinstance(event, PositionUpdated)]
    progresses = [event.progress for event in updates]
    assert progresses == sorted(progresses)
    assert progresses[-1] == 1.0
    assert all(event.position[0] == 0.0 for event in updates)
    assert all(event.heading == pytest.approx(0.0) for event in updates)


def test_final_sweep_delivers_package_just_off_route_end() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    # ~122 m east of the final vertex: outside the in-transit radius, inside the final one.
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0011, 0.02)], time_scale=3600.0)
    orchestrator.start("V1")

    clock.advance(1.0)
    result = orchestrator.tick("V1")

    assert result.completed
    assert result.swept == ("P1",)
    assert [event.kind for event in events] == ["position_updated", "package_delivered", "route_completed"]
    assert result.final_position == (0.0011, 0.02)


def test_final_position_is_last_delivered_destination() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0005, 0.01)])
    orchestrator.start("V1")

    _tick_until(orchestrator, clock, "V1", lambda: not orchestrator.has_active_session("V1"))

    snapshot = orchestrator.get_snapshot("V1")
    assert snapshot.delivered == frozenset({"P1"})
    assert snapshot.position == (0.0, 0.02)
    assert snapshot.final_position == (0.0005, 0.01)


def test_route_completed_with_nothing_delivered_ends_on_route() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.01, 0.01)], time_scale=3600.0)
    orchestrator.start("V1")

    clock.advance(1.0)
    orchestrator.tick("V1")

    completed = events[-1]
    assert isinstance(completed, RouteCompleted)
    assert completed.delivered_count == 0
    assert completed.final_position == (0.0, 0.02)


def test_waypoints_with_invalid_coordinates_are_skipped() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    handle = orchestrator.create_session(
        "V1", NORTH_ROUTE, [_waypoint("P-bad", None, None), _waypoint("P1", 0.0, 0.02)], time_scale=3600.0
    )

    assert handle.waypoint_count == 1
    assert handle.skipped_package_ids == ("P-bad",)
    assert handle.total_distance_km == pytest.approx(2.2239, abs=1e-3)

    orchestrator.start("V1")
    clock.advance(1.0)
    orchestrator.tick("V1")

    progress = orchestrator.delivery_progress("V1")
    assert progress.total == 2
    assert progress.delivered == 1
    assert progress.remaining == 1
    assert progress.percentage == pytest.approx(50.0)


def test_waypoints_are_projected_onto_route() -> None:
    orchestrator = _orchestrator(FakeClock())
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.001, 0.005)])

    waypoint = orchestrator.get_snapshot("V1").waypoints[0]

    assert waypoint.route_progress == pytest.approx(0.25, abs=1e-4)
    assert waypoint.distance_from_route_km == pytest.approx(0.1112, abs=1e-3)


def test_time_scale_multiplies_distance_per_tick() -> None:
    results = []
    for factor in (1.0, 2.0):
        clock = FakeClock()
        orchestrator = _orchestrator(clock)
        orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)])
        orchestrator.set_time_scale("V1", factor)
        orchestrator.start("V1")
        clock.advance(1.0)
        results.append(orchestrator.tick("V1").progress)

    # 35 mph * 0.3 ramp start = 10.5 mph for one simulated second.
    expected = 10.5 * 1.60934 / 3600 / 2.2239
    assert results[0] == pytest.approx(expected, rel=1e-3)
    assert results[1] == pytest.approx(2 * results[0])


def test_set_time_scale_rejects_non_positive() -> None:
    orchestrator = _orchestrator(FakeClock())
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)])

    with pytest.raises(ValidationError):
        orchestrator.set_time_scale("V1", 0)

    assert orchestrator.get_snapshot("V1").time_scale == 1.0


@pytest.mark.parametrize("operation", ["start", "stop", "reset", "get_snapshot", "tick", "next_waypoint"])
def test_unknown_vehicle_raises_state_error(operation) -> None:
    orchestrator = _orchestrator(FakeClock())

    with pytest.raises(StateError):
        getattr(orchestrator, operation)("missing")

    assert orchestrator.vehicle_ids() == []


def test_start_on_completed_session_is_refused_until_reset() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)], time_scale=3600.0)
    orchestrator.start("V1")
    clock.advance(1.0)
    orchestrator.tick("V1")

    assert orchestrator.start("V1") is False

    handle = orchestrator.reset("V1")
    snapshot = orchestrator.get_snapshot("V1")
    assert handle.waypoint_count == 1
    assert snapshot.state is SessionState.IDLE
    assert snapshot.progress == 0.0
    assert snapshot.delivered == frozenset()
    assert snapshot.time_scale == 3600.0
    assert orchestrator.start("V1") is True


def test_scheduler_drives_session_to_completion() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)], time_scale=60.0)
    orchestrator.start("V1")
    scheduler = orchestrator.scheduler

    assert scheduler.is_scheduled("V1")
    for _ in range(1000):
        if not scheduler.is_scheduled("V1"):
            break
        clock.advance(1.0)
        scheduler.run_pending()

    assert orchestrator.get_snapshot("V1").state is SessionState.COMPLETED
    assert not scheduler.is_scheduled("V1")


def test_pre_delivered_packages_start_in_delivered_set() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    events = _collect(orchestrator)
    orchestrator.create_session(
        "V1",
        NORTH_ROUTE,
        [_waypoint("P0", 0.0, 0.01, delivered=True), _waypoint("P1", 0.0, 0.02)],
        time_scale=3600.0,
    )

    assert orchestrator.get_snapshot("V1").delivered == frozenset({"P0"})

    orchestrator.start("V1")
    clock.advance(1.0)
    orchestrator.tick("V1")

    delivered_events = [event.package_id for event in events if isinstance(event, PackageDelivered)]
    assert delivered_events == ["P1"]
    assert events[-1].delivered_count == 2


def test_next_waypoint_uses_route_order() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_session(
        "V1", NORTH_ROUTE, [_waypoint("late", 0.0, 0.015), _waypoint("early", 0.0, 0.005)]
    )

    assert orchestrator.next_waypoint("V1").package_id == "early"

    orchestrator.start("V1")
    _tick_until(orchestrator, clock, "V1", lambda: "early" in orchestrator.get_snapshot("V1").delivered)

    assert orchestrator.next_waypoint("V1").package_id == "late"


def test_fleet_summary_and_session_removal() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)], time_scale=3600.0)
    orchestrator.create_session("V2", NORTH_ROUTE, [_waypoint("P2", 0.0, 0.01), _waypoint("P3", 0.0, 0.02)])
    orchestrator.start("V1")
    orchestrator.start("V2")
    clock.advance(1.0)
    orchestrator.tick("V1")

    summary = orchestrator.fleet_summary()
    assert summary.total_vehicles == 2
    assert summary.active_vehicles == 1
    assert summary.completed_vehicles == 1
    assert summary.total_deliveries == 3
    assert summary.completed_deliveries == 1
    assert [snapshot.vehicle_id for snapshot in orchestrator.active_sessions()] == ["V2"]

    assert orchestrator.remove_session("V2") is True
    assert orchestrator.remove_session("V2") is False
    assert not orchestrator.scheduler.is_scheduled("V2")

    orchestrator.clear()
    assert orchestrator.vehicle_ids() == []


def test_creating_session_again_replaces_existing_one() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)])
    orchestrator.start("V1")
    clock.advance(30.0)
    orchestrator.tick("V1")

    orchestrator.create_session("V1", [(0.0, 0.0), (0.01, 0.0)], [_waypoint("P9", 0.01, 0.0)])

    snapshot = orchestrator.get_snapshot("V1")
    assert snapshot.state is SessionState.IDLE
    assert snapshot.progress == 0.0
    assert [waypoint.package_id for waypoint in snapshot.waypoints] == ["P9"]
    assert not orchestrator.scheduler.is_scheduled("V1")


def test_failing_observer_does_not_interrupt_tick() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)

    def broken(event) -> None:
        raise RuntimeError("observer failure")

    orchestrator.events.subscribe(broken)
    events = _collect(orchestrator)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)])
    orchestrator.start("V1")
    clock.advance(1.0)

    assert orchestrator.tick("V1") is not None
    assert [event.kind for event in events] == ["position_updated"]


def test_slow_observer_for_one_vehicle_does_not_block_another() -> None:
    clock = FakeClock()
    orchestrator = _orchestrator(clock)
    entered = threading.Event()
    release = threading.Event()

    def slow_for_v1(event) -> None:
        if event.vehicle_id == "V1":
            entered.set()
            release.wait(2.0)

    orchestrator.events.subscribe(slow_for_v1)
    orchestrator.create_session("V1", NORTH_ROUTE, [_waypoint("P1", 0.0, 0.02)])
    orchestrator.create_session("V2", NORTH_ROUTE, [_waypoint("P2", 0.0, 0.02)])
    orchestrator.start("V1")
    orchestrator.start("V2")
    clock.advance(1.0)

    worker = threading.Thread(target=orchestrator.tick, args=("V1",))
    worker.start()
    try:
        assert entered.wait(2.0)
        started = time.monotonic()
        assert orchestrator.tick("V2") is not None
        elapsed = time.monotonic() - started
    finally:
        release.set()
        worker.join(2.0)

    assert elapsed < 0.5
    assert orchestrator.get_snapshot("V1").progress > 0.0
