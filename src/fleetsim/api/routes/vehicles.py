"""Vehicle endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.fleet import VehicleModel
from ...services.fleet.runtime import FleetRuntime
from ..dependencies import get_runtime

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("", response_model=List[VehicleModel], status_code=status.HTTP_200_OK)
def list_vehicles(runtime: FleetRuntime = Depends(get_runtime)) -> List[VehicleModel]:
    try:
        vehicles = runtime.store.list_vehicles()
    except (FileNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error loading vehicles: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load vehicles: {str(exc)}",
        ) from exc
    return [
        VehicleModel.from_domain(
            vehicle,
            failed=vehicle.vehicle_id in runtime.failed,
            has_session=runtime.orchestrator.has_session(vehicle.vehicle_id),
        )
        for vehicle in vehicles
    ]


@router.get("/{vehicle_id}", response_model=VehicleModel, status_code=status.HTTP_200_OK)
def get_vehicle(vehicle_id: str, runtime: FleetRuntime = Depends(get_runtime)) -> VehicleModel:
    try:
        vehicle = runtime.store.get_vehicle(vehicle_id)
    except (FileNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if vehicle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Vehicle '{vehicle_id}' not found")
    return VehicleModel.from_domain(
        vehicle,
        failed=vehicle_id in runtime.failed,
        has_session=runtime.orchestrator.has_session(vehicle_id),
    )
