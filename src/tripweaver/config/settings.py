# src/tripweaver/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/tripweaver/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `TRIPWEAVER_LOG_LEVEL`, `TRIPWEAVER_TIMEZONE`)
- an external YAML file via `TRIPWEAVER_CONFIG_PATH`

Design rule:
- Tuning knobs live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from tripweaver.core.env import load_dotenv_if_present, resolve_config_path
from tripweaver.core.time import parse_clock


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `tripweaver.config`."""
    text = resources.files("tripweaver.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "TripWeaver"
    timezone: str = "UTC"
    log_level: str = "INFO"


class NormalizationSettings(BaseModel):
    min_reliable_ratings: int = Field(3, ge=1)
    quality_mean_tolerance: float = Field(0.1, ge=0)
    quality_std_tolerance: float = Field(0.2, ge=0)


class FairnessSettings(BaseModel):
    accept_threshold: float = 0.05
    reject_threshold: float = -0.05
    balanced_threshold: float = Field(0.7, ge=0, le=1)
    low_disparity_threshold: float = Field(0.8, ge=0, le=1)
    medium_disparity_threshold: float = Field(0.6, ge=0, le=1)
    severe_threshold: float = Field(0.5, ge=0, le=1)
    satisfaction_gap_threshold: float = Field(2.0, ge=0)
    low_selection_ratio: float = Field(0.3, ge=0, le=1)


class RoutingSettings(BaseModel):
    cluster_radius_km: float = Field(50, gt=0)
    max_iterations: int = Field(50, ge=1)
    objective_weights: dict[Literal["fairness", "quantity"], float] = Field(
        default_factory=lambda: {"fairness": 0.6, "quantity": 0.4}
    )
    early_termination_threshold: float = Field(0.95, ge=0, le=1)
    random_explorations: int = Field(15, ge=0)
    random_seed: int = 20240101
    top_candidates_to_improve: int = Field(5, ge=0)
    desirability_starts: int = Field(3, ge=0)


class TransportSettings(BaseModel):
    walking_max_km: float = Field(2, ge=0)
    long_haul_km: float = Field(300, gt=0)
    walking_speed_kmh: float = Field(5, gt=0)
    walking_overhead_minutes: float = Field(5, ge=0)
    driving_speed_kmh: float = Field(60, gt=0)
    driving_overhead_minutes: float = Field(10, ge=0)
    long_drive_km: float = Field(200, gt=0)
    long_drive_speed_kmh: float = Field(80, gt=0)
    long_drive_break_minutes: float = Field(15, ge=0)
    flying_speed_kmh: float = Field(700, gt=0)
    airport_overhead_minutes: float = Field(60, ge=0)
    intercontinental_km: float = Field(3000, gt=0)
    intercontinental_overhead_minutes: float = Field(90, ge=0)
    ground_access_minutes: float = Field(0, ge=0)
    min_minutes: dict[Literal["walking", "driving", "flying"], int] = Field(
        default_factory=lambda: {"walking": 5, "driving": 10, "flying": 60}
    )

    @model_validator(mode="after")
    def _validate_thresholds(self) -> "TransportSettings":
        if self.long_haul_km <= self.walking_max_km:
            raise ValueError("transport.long_haul_km must be greater than transport.walking_max_km")
        return self


class MealSettings(BaseModel):
    name: Literal["breakfast", "lunch", "dinner"]
    start: str
    minutes: int = Field(..., gt=0)

    @field_validator("start")
    @classmethod
    def _validate_start(cls, value: str) -> str:
        parse_clock(value)
        return value

    @property
    def start_minute(self) -> int:
        return parse_clock(self.start)


def _default_meals() -> list[MealSettings]:
    return [
        MealSettings(name="breakfast", start="08:00", minutes=45),
        MealSettings(name="lunch", start="12:00", minutes=60),
        MealSettings(name="dinner", start="18:30", minutes=90),
    ]


class SchedulingSettings(BaseModel):
    day_start: str = "08:00"
    day_end: str = "20:00"
    final_destination_cutoff: str = "20:00"
    max_daily_minutes: int = Field(600, gt=0, le=24 * 60)
    default_stay_minutes: int = Field(60, ge=0)
    min_stay_minutes: int = Field(30, ge=0)
    include_meals: bool = True
    meals: list[MealSettings] = Field(default_factory=_default_meals)

    @field_validator("day_start", "day_end", "final_destination_cutoff")
    @classmethod
    def _validate_clock(cls, value: str) -> str:
        parse_clock(value)
        return value

    @model_validator(mode="after")
    def _validate_window(self) -> "SchedulingSettings":
        if parse_clock(self.day_end) <= parse_clock(self.day_start):
            raise ValueError("scheduling.day_end must be after scheduling.day_start")
        return self

    @property
    def day_start_minute(self) -> int:
        return parse_clock(self.day_start)

    @property
    def day_end_minute(self) -> int:
        return parse_clock(self.day_end)

    @property
    def final_cutoff_minute(self) -> int:
        return parse_clock(self.final_destination_cutoff)


class ValidationSettings(BaseModel):
    long_day_hours: float = Field(12, gt=0)
    short_flight_km: float = Field(100, ge=0)
    long_walk_km: float = Field(5, ge=0)
    unrealistic_travel_minutes: int = Field(720, gt=0)
    max_visits_per_day: int = Field(6, ge=1)
    packed_utilization: float = Field(0.85, gt=0, le=1)
    flight_heavy_ratio: float = Field(0.5, ge=0, le=1)


class PipelineSettings(BaseModel):
    min_destinations: int = Field(2, ge=0)
    record_timings: bool = True


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    normalization: NormalizationSettings = Field(default_factory=NormalizationSettings)
    fairness: FairnessSettings = Field(default_factory=FairnessSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small; everything else belongs in YAML.
    """
    load_dotenv_if_present()
    data = dict(data)
    log_level = os.getenv("TRIPWEAVER_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    timezone = os.getenv("TRIPWEAVER_TIMEZONE")
    if timezone:
        data.setdefault("app", {})["timezone"] = timezone

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("TRIPWEAVER_CONFIG_PATH")
    raw = _read_yaml_file(resolve_config_path(config_path)) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
