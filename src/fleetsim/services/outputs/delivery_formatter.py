"""Serializers for completed delivery runs."""

from __future__ import annotations

import csv
import io

from ..simulation.models import SessionSnapshot


def session_to_json(snapshot: SessionSnapshot) -> dict:
    return {
        "vehicle_id": snapshot.vehicle_id,
        "state": snapshot.state.value,
        "progress": snapshot.progress,
        "total_distance_km": snapshot.total_distance_km,
        "delivered_count": len(snapshot.delivered),
        "waypoint_count": len(snapshot.waypoints),
        "final_position": list(snapshot.final_position) if snapshot.final_position else None,
        "waypoints": [
            {
                "waypoint_id": waypoint.waypoint_id,
                "package_id": waypoint.package_id,
                "destination": waypoint.destination,
                "coordinates": list(waypoint.coordinates) if waypoint.coordinates else None,
                "route_progress": waypoint.route_progress,
                "distance_from_route_km": waypoint.distance_from_route_km,
                "delivered": waypoint.delivered,
            }
            for waypoint in snapshot.waypoints
        ],
    }


def session_to_csv(snapshot: SessionSnapshot) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "vehicle_id",
        "package_id",
        "destination",
        "lng",
        "lat",
        "route_progress",
        "distance_from_route_km",
        "delivered",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for waypoint in snapshot.waypoints:
        lng, lat = waypoint.coordinates if waypoint.coordinates else (None, None)
        writer.writerow(
            {
                "vehicle_id": snapshot.vehicle_id,
                "package_id": waypoint.package_id,
                "destination": waypoint.destination,
                "lng": lng,
                "lat": lat,
                "route_progress": waypoint.route_progress,
                "distance_from_route_km": waypoint.distance_from_route_km,
                "delivered": waypoint.delivered,
            }
        )
    return buffer.getvalue()
