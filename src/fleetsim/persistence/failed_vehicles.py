"""Persistent set of vehicles whose route generation failed."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from ..config import settings
from .filesystem import FileStorage

logger = logging.getLogger(__name__)


class FailedVehicleRegistry:
    """JSON-backed ``vehicle_id -> reason`` map.

    Bulk route generation skips vehicles listed here; a manual retry for a
    single vehicle clears its entry first.
    """

    def __init__(self, path: Path | None = None, storage: FileStorage | None = None) -> None:
        self.path = path or settings.failed_vehicles_file
        self.storage = storage or FileStorage(root=self.path.parent)
        self._lock = threading.Lock()
        self._entries: dict[str, dict] = self._load()

    def _load(self) -> dict[str, dict]:
        try:
            data = self.storage.read_json(self.path, default={})
        except ValueError as e:
            logger.warning(f"Ignoring unreadable failed-vehicle file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        self.storage.write_json(self.path, self._entries)

    def record(self, vehicle_id: str, reason: str) -> None:
        with self._lock:
            self._entries[vehicle_id] = {
                "reason": reason,
                "failed_at": datetime.now(timezone.utc).isoformat(),
            }
            self._save()
        logger.warning(f"Vehicle {vehicle_id} marked as failed: {reason}")

    def clear(self, vehicle_id: str) -> bool:
        with self._lock:
            existed = self._entries.pop(vehicle_id, None) is not None
            if existed:
                self._save()
        return existed

    def __contains__(self, vehicle_id: object) -> bool:
        with self._lock:
            return vehicle_id in self._entries

    def entries(self) -> dict[str, dict]:
        with self._lock:
            return {vehicle_id: dict(entry) for vehicle_id, entry in self._entries.items()}
