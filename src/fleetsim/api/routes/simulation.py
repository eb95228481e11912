"""Simulation control endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...schemas.simulation import (
    EventFeedModel,
    EventModel,
    FleetSummaryModel,
    SessionCreateRequest,
    SessionHandleModel,
    SessionStatusModel,
    TimeScaleRequest,
)
from ...services.fleet.runtime import FleetRuntime
from ...services.simulation.errors import StateError, ValidationError
from ...services.simulation.models import SessionHandle
from ...services.simulation.orchestrator import SimulationOrchestrator
from ..dependencies import get_runtime

router = APIRouter(prefix="/simulation", tags=["simulation"])


def _handle_model(handle: SessionHandle) -> SessionHandleModel:
    return SessionHandleModel(
        vehicle_id=handle.vehicle_id,
        waypoint_count=handle.waypoint_count,
        total_distance_km=handle.total_distance_km,
        skipped_package_ids=list(handle.skipped_package_ids),
    )


def _status(orchestrator: SimulationOrchestrator, vehicle_id: str) -> SessionStatusModel:
    return SessionStatusModel.from_snapshot(
        orchestrator.get_snapshot(vehicle_id),
        orchestrator.delivery_progress(vehicle_id),
        orchestrator.next_waypoint(vehicle_id),
    )


@router.get("/summary", response_model=FleetSummaryModel, status_code=status.HTTP_200_OK)
def fleet_summary(runtime: FleetRuntime = Depends(get_runtime)) -> FleetSummaryModel:
    summary = runtime.orchestrator.fleet_summary()
    return FleetSummaryModel(
        total_vehicles=summary.total_vehicles,
        active_vehicles=summary.active_vehicles,
        completed_vehicles=summary.completed_vehicles,
        total_deliveries=summary.total_deliveries,
        completed_deliveries=summary.completed_deliveries,
    )


@router.get("/events", response_model=EventFeedModel, status_code=status.HTTP_200_OK)
def events(
    after: int = Query(default=0, ge=0, description="Return events with a sequence number above this."),
    vehicle_id: str | None = Query(default=None),
    runtime: FleetRuntime = Depends(get_runtime),
) -> EventFeedModel:
    feed = runtime.event_log.since(after, vehicle_id)
    return EventFeedModel(
        events=[EventModel.from_event(event) for event in feed],
        last_sequence=feed[-1].sequence if feed else after,
    )


@router.post("/{vehicle_id}/session", response_model=SessionHandleModel, status_code=status.HTTP_201_CREATED)
def create_session(
    vehicle_id: str,
    payload: SessionCreateRequest,
    runtime: FleetRuntime = Depends(get_runtime),
) -> SessionHandleModel:
    """Attach an externally computed route to a vehicle."""
    try:
        handle = runtime.orchestrator.create_session(
            vehicle_id,
            payload.route,
            [waypoint.to_domain(vehicle_id) for waypoint in payload.waypoints],
            base_speed=payload.base_speed,
            time_scale=payload.time_scale,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _handle_model(handle)


@router.get("/{vehicle_id}", response_model=SessionStatusModel, status_code=status.HTTP_200_OK)
def session_status(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> SessionStatusModel:
    try:
        return _status(runtime.orchestrator, vehicle_id)
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{vehicle_id}/start", response_model=SessionStatusModel, status_code=status.HTTP_200_OK)
def start(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> SessionStatusModel:
    try:
        started = runtime.orchestrator.start(vehicle_id)
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if not started:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Vehicle {vehicle_id} has already completed its route",
        )
    return _status(runtime.orchestrator, vehicle_id)


@router.post("/{vehicle_id}/stop", response_model=SessionStatusModel, status_code=status.HTTP_200_OK)
def stop(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> SessionStatusModel:
    try:
        runtime.orchestrator.stop(vehicle_id)
        return _status(runtime.orchestrator, vehicle_id)
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{vehicle_id}/reset", response_model=SessionHandleModel, status_code=status.HTTP_200_OK)
def reset(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> SessionHandleModel:
    try:
        return _handle_model(runtime.orchestrator.reset(vehicle_id))
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.put("/{vehicle_id}/time-scale", response_model=SessionStatusModel, status_code=status.HTTP_200_OK)
def set_time_scale(
    vehicle_id: str,
    payload: TimeScaleRequest,
    runtime: FleetRuntime = Depends(get_runtime),
) -> SessionStatusModel:
    try:
        runtime.orchestrator.set_time_scale(vehicle_id, payload.factor)
        return _status(runtime.orchestrator, vehicle_id)
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete("/{vehicle_id}", status_code=status.HTTP_200_OK)
def remove_session(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> dict:
    if not runtime.orchestrator.remove_session(vehicle_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No delivery session for vehicle '{vehicle_id}'",
        )
    return {"success": True, "message": f"Delivery session for {vehicle_id} cleared"}
