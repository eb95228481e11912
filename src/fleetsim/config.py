"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FLEETSIM_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "FleetSim Delivery Simulation API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for fleet data and run outputs.")
    fleet_file: Path = Field(
        default=Path("data/fleet.json"),
        description="Vehicles and packages used when no database is configured.",
    )
    failed_vehicles_file: Path = Field(
        default=Path("data/failed_vehicles.json"),
        description="Vehicles whose route generation failed and are skipped by bulk runs.",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing routes.",
    )
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)
    osrm_timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_route_stops: int = Field(default=25, ge=2)
    min_stop_separation_degrees: float = Field(
        default=0.001,
        ge=0.0,
        description="Consecutive stops closer than this (planar degrees, ~111 m) are merged before routing.",
    )

    # Simulation
    base_speed: float = Field(default=35.0, gt=0.0, description="Cruising speed fed to the speed profile.")
    mph_to_kmh: float = Field(default=1.60934, gt=0.0)
    tick_interval_seconds: float = Field(default=0.016, gt=0.0)
    default_time_scale: float = Field(default=1.0, gt=0.0)
    transit_delivery_radius_km: float = Field(default=0.10, gt=0.0)
    transit_min_progress: float = Field(default=0.15, ge=0.0, le=1.0)
    final_delivery_radius_km: float = Field(default=0.15, gt=0.0)
    final_min_progress: float = Field(default=0.0, ge=0.0, le=1.0)
    event_log_size: int = Field(default=1000, ge=1)
    persist_completed_runs: bool = True

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", "fleet_file", "failed_vehicles_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
