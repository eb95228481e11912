"""Vehicle and package response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from ..models.domain import Vehicle


class PackageModel(BaseModel):
    package_id: str
    destination: str
    destination_lat: Optional[float]
    destination_lng: Optional[float]
    status: str
    recipient_name: Optional[str] = None
    weight: Optional[float] = None


class VehicleModel(BaseModel):
    vehicle_id: str
    name: str
    driver: Optional[str]
    status: str
    lat: Optional[float]
    lng: Optional[float]
    failed: bool = False
    has_session: bool = False
    packages: List[PackageModel]

    @classmethod
    def from_domain(cls, vehicle: Vehicle, *, failed: bool = False, has_session: bool = False) -> "VehicleModel":
        return cls(
            vehicle_id=vehicle.vehicle_id,
            name=vehicle.name,
            driver=vehicle.driver,
            status=vehicle.status,
            lat=vehicle.lat,
            lng=vehicle.lng,
            failed=failed,
            has_session=has_session,
            packages=[
                PackageModel(
                    package_id=package.package_id,
                    destination=package.destination,
                    destination_lat=package.destination_lat,
                    destination_lng=package.destination_lng,
                    status=package.status,
                    recipient_name=package.recipient_name,
                    weight=package.weight,
                )
                for package in vehicle.packages
            ],
        )


class FailedVehicleModel(BaseModel):
    vehicle_id: str
    reason: str
    failed_at: Optional[str] = None
