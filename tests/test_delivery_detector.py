from fleetsim.services.geospatial import distance_km
from fleetsim.services.simulation.detector import DeliveryThresholds, check_deliveries
from fleetsim.services.simulation.models import Waypoint


def _waypoint(pid: str, coordinates) -> Waypoint:
    return Waypoint(waypoint_id=f"V1:{pid}", package_id=pid, coordinates=coordinates)


def test_default_thresholds() -> None:
    thresholds = DeliveryThresholds()

    assert thresholds.transit_radius_km == 0.10
    assert thresholds.transit_min_progress == 0.15
    assert thresholds.final_radius_km == 0.15
    assert thresholds.final_min_progress == 0.0


def test_nothing_delivered_at_or_below_min_progress() -> None:
    waypoints = [_waypoint("P1", (0.0, 0.0))]

    assert check_deliveries((0.0, 0.0), waypoints, frozenset(), 0.15, 0.15, 0.1) == []
    assert check_deliveries((0.0, 0.0), waypoints, frozenset(), 0.15, 0.16, 0.1) == ["P1"]


def test_radius_boundary() -> None:
    # 0.00089 deg of latitude is ~99 m, 0.0009 is ~100.08 m.
    waypoints = [_waypoint("inside", (0.0, 0.00089)), _waypoint("outside", (0.0, -0.0009))]

    assert check_deliveries((0.0, 0.0), waypoints, frozenset(), 0.0, 0.5, 0.1) == ["inside"]


def test_distance_exactly_at_radius_is_delivered() -> None:
    position = (0.0, 0.0)
    waypoints = [_waypoint("P1", (0.0, 0.0009))]
    radius = distance_km(position, waypoints[0].coordinates)

    assert check_deliveries(position, waypoints, frozenset(), 0.0, 0.5, radius) == ["P1"]
    assert check_deliveries(position, waypoints, frozenset(), 0.0, 0.5, radius - 1e-9) == []


def test_already_delivered_is_skipped_and_input_not_mutated() -> None:
    waypoints = [_waypoint("P1", (0.0, 0.0)), _waypoint("P2", (0.0, 0.0))]
    delivered = {"P1"}

    found = check_deliveries((0.0, 0.0), waypoints, delivered, 0.0, 0.5, 0.1)

    assert found == ["P2"]
    assert delivered == {"P1"}


def test_returns_ids_in_waypoint_order_without_duplicates() -> None:
    waypoints = [_waypoint("B", (0.0, 0.0)), _waypoint("A", (0.0, 0.0001)), _waypoint("B", (0.0, 0.0))]

    assert check_deliveries((0.0, 0.0), waypoints, frozenset(), 0.0, 0.5, 0.1) == ["B", "A"]


def test_invalid_coordinates_are_excluded() -> None:
    waypoints = [_waypoint("bad", None), _waypoint("nan", (float("nan"), 0.0)), _waypoint("ok", (0.0, 0.0))]
    excluded: set[str] = set()

    found = check_deliveries((0.0, 0.0), waypoints, frozenset(), 0.0, 0.5, 0.1, excluded=excluded)

    assert found == ["ok"]
    assert excluded == {"bad", "nan"}
    # Excluded ids are skipped without being inspected again.
    assert check_deliveries((0.0, 0.0), waypoints[:2], frozenset(), 0.0, 0.5, 0.1, excluded=excluded) == []


def test_unrelated_package_outside_radius_is_not_delivered() -> None:
    # Destinations ~78 m apart; vehicle is ~23 m short of the first and ~101 m short of the second.
    waypoints = [_waypoint("near", (0.0, 0.0100)), _waypoint("far", (0.0, 0.0107))]

    found = check_deliveries((0.0, 0.00979), waypoints, frozenset(), 0.15, 0.5, 0.1)

    assert found == ["near"]


def test_second_check_at_same_position_delivers_nothing_new() -> None:
    waypoints = [_waypoint("P1", (0.0, 0.0005)), _waypoint("P2", (0.0, 0.05))]

    first = check_deliveries((0.0, 0.0), waypoints, frozenset(), 0.15, 0.5, 0.1)
    delivered = frozenset(first)

    assert first == ["P1"]
    assert check_deliveries((0.0, 0.0), waypoints, delivered, 0.15, 0.5, 0.1) == []
