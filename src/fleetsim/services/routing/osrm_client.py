"""HTTP client for the OSRM route service."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import httpx

from ...config import settings
from ..geospatial import Coordinate, is_valid_coordinate
from ..simulation.errors import DependencyFailure, ValidationError
from .models import ProviderRoute

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_stops: int | None = None,
        min_stop_separation: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self.max_stops = max_stops if max_stops is not None else settings.max_route_stops
        self.min_stop_separation = (
            min_stop_separation if min_stop_separation is not None else settings.min_stop_separation_degrees
        )
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def prepare_stops(self, ordered_stops: Sequence[Coordinate]) -> list[Coordinate]:
        """Validate stops and drop any that sit on top of the previous one.

        Raises:
            ValidationError: fewer than two stops, too many stops, an invalid
                coordinate, or fewer than two distinct stops after merging.
        """
        if len(ordered_stops) < 2:
            raise ValidationError("At least 2 coordinates required for routing.")
        if len(ordered_stops) > self.max_stops:
            raise ValidationError(f"Maximum {self.max_stops} waypoints allowed, got {len(ordered_stops)}.")
        for index, stop in enumerate(ordered_stops):
            if not is_valid_coordinate(stop):
                raise ValidationError(f"Invalid coordinate at index {index}: {stop!r}")

        filtered: list[Coordinate] = [(float(ordered_stops[0][0]), float(ordered_stops[0][1]))]
        for lng, lat in ordered_stops[1:]:
            prev_lng, prev_lat = filtered[-1]
            separation = ((lng - prev_lng) ** 2 + (lat - prev_lat) ** 2) ** 0.5
            if separation > self.min_stop_separation:
                filtered.append((float(lng), float(lat)))
            else:
                logger.debug(f"Skipping stop {(lng, lat)} too close to previous ({separation * 111000:.0f} m)")

        if len(filtered) < 2:
            raise ValidationError(
                "Not enough distinct coordinates for routing - destinations are too close together."
            )
        return filtered

    def route(self, coordinates: Sequence[Coordinate]) -> dict:
        """Raw OSRM ``/route`` response for ``(lng, lat)`` stops, with retries."""

        coordinate_str = ";".join(f"{lng:.6f},{lat:.6f}" for lng, lat in coordinates)
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()

                    if data.get("code") != "Ok":
                        error_msg = data.get("message", "Unknown OSRM route error")
                        raise ValueError(f"OSRM route request failed: {error_msg}")

                    return data
                except httpx.HTTPStatusError:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {self.max_retries} attempts: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.ConnectError, httpx.NetworkError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to connect to OSRM service at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                except (httpx.HTTPError, ValueError):
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
        finally:
            client.close()

    def compute_route(self, ordered_stops: Sequence[Coordinate]) -> ProviderRoute:
        """Road route through ``ordered_stops`` (``(lng, lat)`` pairs).

        Raises:
            ValidationError: the stops themselves are unusable.
            DependencyFailure: OSRM could not be reached or returned no route.
        """
        stops = self.prepare_stops(ordered_stops)
        try:
            data = self.route(stops)
        except (httpx.HTTPError, ConnectionError, ValueError) as exc:
            raise DependencyFailure(f"Routing provider failed: {exc}") from exc

        routes = data.get("routes") or []
        if not routes:
            raise DependencyFailure("Routing provider returned no routes.")
        best = routes[0]
        geometry = best.get("geometry")
        if isinstance(geometry, str):
            vertices = [(lng, lat) for lat, lng in decode_polyline(geometry)]
        elif isinstance(geometry, dict):
            vertices = [(float(lng), float(lat)) for lng, lat in geometry.get("coordinates", [])]
        else:
            vertices = []
        if len(vertices) < 2:
            raise DependencyFailure("Routing provider returned a route without geometry.")

        logger.info(
            f"OSRM route: {len(stops)} stops, {len(vertices)} vertices, "
            f"{best.get('distance', 0.0) / 1000:.2f} km, {best.get('duration', 0.0) / 60:.1f} min"
        )
        return ProviderRoute(
            vertices=tuple(vertices),
            total_distance_meters=float(best.get("distance", 0.0)),
            total_duration_seconds=float(best.get("duration", 0.0)),
        )


def decode_polyline(polyline: str, precision: int = 5) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0
    factor = 10 ** precision

    while index < len(polyline):
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlat = ~(result >> 1) if (result & 1) else (result >> 1)
        lat += dlat

        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlon = ~(result >> 1) if (result & 1) else (result >> 1)
        lon += dlon

        coordinates.append((lat / factor, lon / factor))

    return coordinates


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health with a minimal two-point route request."""

    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        test_coords = "13.388860,52.517037;13.385983,52.496891"
        url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        data = response.json()
        return data.get("code") == "Ok"
    except httpx.HTTPError:
        return False
    except ValueError:
        return False
