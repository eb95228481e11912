"""Domain models for vehicle and package records."""

from dataclasses import dataclass, field
from typing import List, Optional

DELIVERED_STATUS = "delivered"


@dataclass(slots=True)
class Package:
    """A parcel assigned to a vehicle, with its delivery destination."""

    package_id: str
    vehicle_id: Optional[str]
    destination: str
    destination_lat: Optional[float]
    destination_lng: Optional[float]
    status: str = "pending"
    recipient_name: Optional[str] = None
    weight: Optional[float] = None

    @property
    def coordinates(self) -> Optional[tuple[float, float]]:
        if self.destination_lat is None or self.destination_lng is None:
            return None
        return (self.destination_lng, self.destination_lat)

    @property
    def delivered(self) -> bool:
        return self.status == DELIVERED_STATUS


@dataclass(slots=True)
class Vehicle:
    """A fleet vehicle with its current location and assigned packages."""

    vehicle_id: str
    name: str
    lat: Optional[float]
    lng: Optional[float]
    driver: Optional[str] = None
    status: str = "idle"
    packages: List[Package] = field(default_factory=list)

    @property
    def location(self) -> Optional[tuple[float, float]]:
        if self.lat is None or self.lng is None:
            return None
        return (self.lng, self.lat)
