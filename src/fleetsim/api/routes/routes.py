"""Route generation endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.fleet import FailedVehicleModel
from ...schemas.simulation import BulkGenerationModel, GeneratedRouteModel, SessionHandleModel
from ...services.fleet.runtime import FleetRuntime
from ...services.simulation.errors import DependencyFailure, UnknownVehicleError, ValidationError
from ..dependencies import get_runtime

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("/generate", response_model=BulkGenerationModel, status_code=status.HTTP_200_OK)
def generate_all(runtime: FleetRuntime = Depends(get_runtime)) -> BulkGenerationModel:
    """Generate routes for every vehicle, skipping vehicles that failed before."""
    try:
        result = runtime.planner.generate_all()
    except (FileNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error generating routes: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate routes: {str(exc)}",
        ) from exc
    return BulkGenerationModel(created=result.created, skipped=result.skipped, failed=result.failed)


@router.post("/generate/{vehicle_id}", response_model=GeneratedRouteModel, status_code=status.HTTP_200_OK)
def generate_for_vehicle(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> GeneratedRouteModel:
    """Manual (re)generation for one vehicle; clears its failed status first."""
    try:
        generated = runtime.planner.generate_for_vehicle(vehicle_id, manual=True)
    except UnknownVehicleError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DependencyFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to create route for vehicle {vehicle_id}: {exc}",
        ) from exc
    except (FileNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error generating route for vehicle {vehicle_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate route for vehicle {vehicle_id}: {str(exc)}",
        ) from exc

    handle = generated.handle
    return GeneratedRouteModel(
        session=SessionHandleModel(
            vehicle_id=handle.vehicle_id,
            waypoint_count=handle.waypoint_count,
            total_distance_km=handle.total_distance_km,
            skipped_package_ids=list(handle.skipped_package_ids),
        ),
        vertex_count=len(generated.route.vertices),
        total_distance_meters=generated.route.total_distance_meters,
        total_duration_seconds=generated.route.total_duration_seconds,
    )


@router.get("/failed", response_model=List[FailedVehicleModel], status_code=status.HTTP_200_OK)
def list_failed(runtime: FleetRuntime = Depends(get_runtime)) -> List[FailedVehicleModel]:
    return [
        FailedVehicleModel(vehicle_id=vehicle_id, reason=entry.get("reason", ""), failed_at=entry.get("failed_at"))
        for vehicle_id, entry in runtime.failed.entries().items()
    ]


@router.delete("/failed/{vehicle_id}", status_code=status.HTTP_200_OK)
def clear_failed(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> dict:
    if not runtime.failed.clear(vehicle_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Vehicle {vehicle_id} is not marked as failed",
        )
    return {"success": True, "message": f"Vehicle {vehicle_id} will be retried by bulk generation"}
