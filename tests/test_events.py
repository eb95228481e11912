from fleetsim.services.simulation.events import (
    EventBus,
    EventLog,
    PackageDelivered,
    PositionUpdated,
    RouteCompleted,
    event_to_dict,
)


def _position(vehicle_id: str = "V1", progress: float = 0.1) -> PositionUpdated:
    return PositionUpdated(vehicle_id=vehicle_id, position=(0.0, 0.0), speed_kmh=10.5, progress=progress, heading=0.0)


def test_bus_stamps_increasing_sequence_numbers() -> None:
    bus = EventBus()
    seen = []
    bus.subscribe(seen.append)

    first = bus.publish(_position())
    second = bus.publish(PackageDelivered(vehicle_id="V1", package_id="P1"))

    assert (first.sequence, second.sequence) == (1, 2)
    assert seen == [first, second]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)

    bus.publish(_position())
    unsubscribe()
    unsubscribe()
    bus.publish(_position())

    assert len(seen) == 1


def test_event_to_dict_includes_kind() -> None:
    event = RouteCompleted(vehicle_id="V1", delivered_count=3, final_position=(1.0, 2.0), sequence=7)

    assert event_to_dict(event) == {
        "vehicle_id": "V1",
        "delivered_count": 3,
        "final_position": (1.0, 2.0),
        "sequence": 7,
        "kind": "route_completed",
    }


def test_event_log_filters_by_sequence_and_vehicle() -> None:
    bus = EventBus()
    log = EventLog(maxlen=10)
    bus.subscribe(log)

    bus.publish(_position("V1"))
    bus.publish(_position("V2"))
    bus.publish(PackageDelivered(vehicle_id="V1", package_id="P1"))

    assert [event.sequence for event in log.since()] == [1, 2, 3]
    assert [event.sequence for event in log.since(after=1)] == [2, 3]
    assert [event.kind for event in log.since(vehicle_id="V1")] == ["position_updated", "package_delivered"]

    log.clear()
    assert log.since() == []


def test_event_log_is_bounded() -> None:
    bus = EventBus()
    log = EventLog(maxlen=2)
    bus.subscribe(log)

    for step in range(5):
        bus.publish(_position(progress=step / 10))

    assert [event.sequence for event in log.since()] == [4, 5]


def test_event_log_returns_events_in_sequence_order() -> None:
    log = EventLog(maxlen=10)

    log(PackageDelivered(vehicle_id="V2", package_id="P2", sequence=5))
    log(PackageDelivered(vehicle_id="V1", package_id="P1", sequence=4))

    assert [event.sequence for event in log.since()] == [4, 5]
    assert [event.sequence for event in log.since(after=4)] == [5]
