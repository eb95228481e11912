"""Vehicle and package store with a database-first approach, falling back to a JSON file."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import DELIVERED_STATUS, Package, Vehicle

logger = logging.getLogger(__name__)


class FleetStore(Protocol):
    def list_vehicles(self) -> list[Vehicle]:
        ...

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        ...

    def mark_delivered(self, package_id: str) -> bool:
        ...


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


def _package_from_row(row: dict) -> Package:
    return Package(
        package_id=str(row["package_id"]).strip(),
        vehicle_id=(str(row.get("vehicle_id") or "").strip() or None),
        destination=str(row.get("destination") or "").strip(),
        destination_lat=_coerce_float(row.get("destination_lat")),
        destination_lng=_coerce_float(row.get("destination_lng")),
        status=str(row.get("status") or "pending").strip().lower(),
        recipient_name=row.get("recipient_name"),
        weight=_coerce_float(row.get("weight")),
    )


def _vehicle_from_row(row: dict, packages: list[Package]) -> Vehicle:
    vehicle_id = str(row["vehicle_id"]).strip()
    return Vehicle(
        vehicle_id=vehicle_id,
        name=str(row.get("name") or vehicle_id),
        lat=_coerce_float(row.get("lat")),
        lng=_coerce_float(row.get("lng")),
        driver=row.get("driver"),
        status=str(row.get("status") or "idle"),
        packages=[package for package in packages if package.vehicle_id == vehicle_id],
    )


def _rows_to_vehicles(vehicle_rows: list[dict], package_rows: list[dict]) -> list[Vehicle]:
    packages: list[Package] = []
    for row in package_rows:
        try:
            packages.append(_package_from_row(row))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping invalid package row: {e}")
    vehicles: list[Vehicle] = []
    for row in vehicle_rows:
        try:
            vehicles.append(_vehicle_from_row(row, packages))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping invalid vehicle row: {e}")
    return vehicles


class JsonFleetStore:
    """Fleet snapshot kept in a JSON file with ``vehicles`` and ``packages`` arrays."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or settings.fleet_file
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            raise FileNotFoundError(f"Fleet file not found: {self.path}")
        with self.path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"Fleet file '{self.path}' must contain a JSON object.")
        return data

    def list_vehicles(self) -> list[Vehicle]:
        with self._lock:
            data = self._read()
        return _rows_to_vehicles(data.get("vehicles", []), data.get("packages", []))

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return next((vehicle for vehicle in self.list_vehicles() if vehicle.vehicle_id == vehicle_id), None)

    def mark_delivered(self, package_id: str) -> bool:
        with self._lock:
            data = self._read()
            for row in data.get("packages", []):
                if str(row.get("package_id")) == package_id:
                    row["status"] = DELIVERED_STATUS
                    break
            else:
                return False
            with self.path.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
        return True


class SupabaseFleetStore:
    """Fleet snapshot read from the ``vehicles`` and ``packages`` tables."""

    def __init__(self, client) -> None:
        self.client = client

    def list_vehicles(self) -> list[Vehicle]:
        vehicles = self.client.table("vehicles").select("*").execute()
        packages = self.client.table("packages").select("*").execute()
        return _rows_to_vehicles(vehicles.data or [], packages.data or [])

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        vehicles = self.client.table("vehicles").select("*").eq("vehicle_id", vehicle_id).limit(1).execute()
        if not vehicles.data:
            return None
        packages = self.client.table("packages").select("*").eq("vehicle_id", vehicle_id).execute()
        found = _rows_to_vehicles(vehicles.data, packages.data or [])
        return found[0] if found else None

    def mark_delivered(self, package_id: str) -> bool:
        result = (
            self.client.table("packages")
            .update({"status": DELIVERED_STATUS})
            .eq("package_id", package_id)
            .execute()
        )
        return bool(result.data)


def get_fleet_store() -> FleetStore:
    """Supabase when configured, otherwise the JSON fleet file."""

    client = get_supabase_client()
    if client is not None:
        return SupabaseFleetStore(client)
    return JsonFleetStore()
