"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- engine inputs (`OptimizationRequest`, `Destination`, `UserPreference`)
- intermediate results that are also useful on their own (`FairnessResult`, `RouteSolution`)
- the scheduled itinerary (`DailySchedule`, `DestinationVisit`) and `OptimizationResult`

Keeping these models in one place helps:
- validation (reject bad inputs early),
- typed refactors,
- consistent JSON output across CLI/API.

Input records are frozen: the scheduler never attaches fields to a `Destination`; it creates
separate `DestinationVisit` records linked by id instead.
"""

from __future__ import annotations

from datetime import date as Date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TransportMode = Literal["walking", "driving", "flying"]
ConstraintKind = Literal["hotel_segment", "airport_departure", "airport_arrival", "none"]
VisitKind = Literal["visit", "fixed", "lodging", "endpoint"]
Severity = Literal["error", "warning"]


class GeoPoint(BaseModel):
    """A geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


# ---- Hard constraints (tagged union on `kind`) ----


class ArrivalBy(BaseModel):
    """The place must be reached at `at` (e.g., landing at an airport)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["arrival_by"] = "arrival_by"
    at: datetime


class DepartBy(BaseModel):
    """The place must be left at `at` (e.g., a flight departure)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["depart_by"] = "depart_by"
    at: datetime


class MultiDayBooking(BaseModel):
    """A booking with fixed check-in/check-out (hotel-style)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["multi_day_booking"] = "multi_day_booking"
    check_in: datetime
    check_out: datetime

    @model_validator(mode="after")
    def _validate_order(self) -> "MultiDayBooking":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


Constraint = Annotated[Union[ArrivalBy, DepartBy, MultiDayBooking], Field(discriminator="kind")]

_FLAT_CONSTRAINT_KEYS = ("arrival_by", "depart_by", "check_in", "check_out", "multi_day_booking")


class Destination(BaseModel):
    """A candidate place to visit, optionally pinned by a hard time constraint."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    location: GeoPoint
    stay_minutes: int | None = Field(default=None, ge=0)
    category: str = "attraction"
    constraint: Constraint | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_constraint_fields(cls, data: Any) -> Any:
        # Accept the flat booking fields many clients send and fold them into `constraint`.
        if not isinstance(data, dict) or not any(k in data for k in _FLAT_CONSTRAINT_KEYS):
            return data
        data = dict(data)
        arrival_by = data.pop("arrival_by", None)
        depart_by = data.pop("depart_by", None)
        check_in = data.pop("check_in", None)
        check_out = data.pop("check_out", None)
        data.pop("multi_day_booking", None)
        if data.get("constraint") is not None:
            return data

        check_in = check_in or (arrival_by if depart_by else None)
        check_out = check_out or (depart_by if arrival_by else None)
        if check_in and check_out:
            data["constraint"] = {"kind": "multi_day_booking", "check_in": check_in, "check_out": check_out}
        elif arrival_by:
            data["constraint"] = {"kind": "arrival_by", "at": arrival_by}
        elif depart_by:
            data["constraint"] = {"kind": "depart_by", "at": depart_by}
        elif check_in or check_out:
            raise ValueError(f"Destination '{data.get('id')}' needs both check_in and check_out")
        return data

    @property
    def constraint_kind(self) -> ConstraintKind:
        if isinstance(self.constraint, MultiDayBooking):
            return "hotel_segment"
        if isinstance(self.constraint, DepartBy):
            return "airport_departure"
        if isinstance(self.constraint, ArrivalBy):
            return "airport_arrival"
        return "none"

    @property
    def is_constrained(self) -> bool:
        return self.constraint is not None


class Endpoint(BaseModel):
    """Trip departure or return location."""

    model_config = ConfigDict(frozen=True)

    id: str = "departure"
    name: str = "Departure"
    location: GeoPoint


# ---- Preferences ----


class UserPreference(BaseModel):
    """One member's rating of one destination."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    session_id: str | None = None
    destination_id: str
    rating: float = Field(..., ge=1, le=5)
    requested_minutes: int | None = Field(default=None, ge=0)

    @property
    def user_key(self) -> str:
        return self.user_id or self.session_id or "unknown"


class StandardizedPreference(UserPreference):
    """A preference plus its per-user z-score."""

    standardized_score: float


class UserStatistics(BaseModel):
    user_key: str
    mean: float
    std_dev: float = Field(..., gt=0)
    count: int = Field(..., ge=0)


class ValidationIssue(BaseModel):
    """Tagged error/warning record emitted by any stage."""

    severity: Severity
    code: str
    message: str
    destination_id: str | None = None
    day_number: int | None = None
    detail: dict[str, Any] = Field(default_factory=dict)


# ---- Fairness ----


class UserSatisfaction(BaseModel):
    user_key: str
    satisfaction_score: float
    selected_destinations: int = Field(..., ge=0)
    total_destinations: int = Field(..., ge=0)


class FairnessResult(BaseModel):
    gini: float = Field(..., ge=-1, le=1)
    fairness_score: float = Field(..., ge=0, le=1)
    user_satisfactions: list[UserSatisfaction] = Field(default_factory=list)
    lowest: UserSatisfaction | None = None
    highest: UserSatisfaction | None = None


class FairnessAnalysis(BaseModel):
    is_balanced: bool
    disparity_level: Literal["low", "medium", "high"]
    recommendations: list[str] = Field(default_factory=list)


class IncrementalFairness(BaseModel):
    current_fairness: float
    new_fairness: float
    fairness_change: float
    recommendation: Literal["accept", "reject", "neutral"]


# ---- Routing ----


class DestinationCluster(BaseModel):
    """A group of nearby destinations treated as one routing stop."""

    id: str
    destination_ids: list[str] = Field(..., min_length=1)
    center: GeoPoint
    total_stay_minutes: int = Field(0, ge=0)
    total_desirability: float = 0.0


class TransportSegment(BaseModel):
    """One hop between two places."""

    from_id: str
    to_id: str
    mode: TransportMode
    distance_km: float = Field(..., ge=0)
    travel_minutes: int
    departure: datetime | None = None
    arrival: datetime | None = None


class RouteSolution(BaseModel):
    """The outcome of one route-selection attempt (only the best one is kept)."""

    strategy: str = "nearest_neighbor"
    cluster_ids: list[str] = Field(default_factory=list)
    destination_ids: list[str] = Field(default_factory=list)
    segments: list[TransportSegment] = Field(default_factory=list)
    total_distance_km: float = 0.0
    total_time_hours: float = 0.0
    fairness_score: float = Field(1.0, ge=0, le=1)
    quantity_score: float = Field(0.0, ge=0, le=1)
    composite_score: float = 0.0
    efficiency_score: float = Field(1.0, ge=0, le=1)
    member_satisfaction: dict[str, float] = Field(default_factory=dict)
    feasible: bool = True
    issues: list[str] = Field(default_factory=list)


# ---- Scheduling ----


class DestinationVisit(BaseModel):
    """A scheduled occurrence of a destination on one day."""

    item_type: Literal["visit"] = "visit"
    destination_id: str
    name: str
    kind: VisitKind = "visit"
    constraint_kind: ConstraintKind = "none"
    day_number: int = Field(..., ge=1)
    order_in_day: int = Field(..., ge=1)
    arrival: datetime
    departure: datetime
    stay_minutes: int = Field(..., ge=0)
    cluster_id: str | None = None
    transport_from_previous: TransportSegment | None = None
    transport_to_next: TransportSegment | None = None
    original_place_id: str | None = None
    split_index: int | None = None
    split_total_days: int | None = None
    split_part: Literal[1, 2] | None = None


class MealBreak(BaseModel):
    item_type: Literal["meal"] = "meal"
    meal: Literal["breakfast", "lunch", "dinner"]
    start: datetime
    end: datetime
    minutes: int = Field(..., gt=0)


ScheduleItem = Annotated[Union[DestinationVisit, MealBreak], Field(discriminator="item_type")]


class DailySchedule(BaseModel):
    day_number: int = Field(..., ge=1)
    date: Date
    items: list[ScheduleItem] = Field(default_factory=list)
    total_travel_time: int = 0
    total_visit_time: int = 0
    total_meal_time: int = 0

    @property
    def visits(self) -> list[DestinationVisit]:
        return [i for i in self.items if isinstance(i, DestinationVisit)]

    @property
    def meals(self) -> list[MealBreak]:
        return [i for i in self.items if isinstance(i, MealBreak)]

    @property
    def used_minutes(self) -> int:
        return self.total_travel_time + self.total_visit_time + self.total_meal_time


# ---- Engine boundary ----


class OptimizationRequest(BaseModel):
    """Input record for one optimization run."""

    trip_id: str = "trip"
    departure: Endpoint
    return_location: Endpoint | None = None
    trip_start: Date
    trip_end: Date | None = None
    timezone: str | None = None
    destinations: list[Destination] = Field(default_factory=list)
    preferences: list[UserPreference] = Field(default_factory=list)
    clusters: list[DestinationCluster] | None = None
    max_destinations: int | None = Field(default=None, ge=1)
    settings_overrides: dict[str, Any] | None = None

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return value
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{value}'") from e
        return value


class OptimizationSummary(BaseModel):
    destination_count: int = 0
    scheduled_visit_count: int = 0
    dropped_count: int = 0
    day_count: int = 0
    total_distance_km: float = 0.0
    total_travel_minutes: int = 0
    total_visit_minutes: int = 0
    total_meal_minutes: int = 0
    fairness_score: float = 1.0
    optimization_score: dict[str, float] = Field(default_factory=dict)
    error_count: int = 0
    warning_count: int = 0


class OptimizationResult(BaseModel):
    """Output record of one optimization run."""

    trip_id: str
    status: Literal["ok", "invalid", "not_attempted"]
    reason: str | None = None
    trip_start: Date
    route: RouteSolution | None = None
    days: list[DailySchedule] = Field(default_factory=list)
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    dropped_destination_ids: list[str] = Field(default_factory=list)
    summary: OptimizationSummary = Field(default_factory=OptimizationSummary)
    meta: dict[str, Any] = Field(default_factory=dict)


# ---- API payloads ----


class FairnessDeltaRequest(BaseModel):
    """Body of an incremental fairness query (what happens if these ids are added/removed)."""

    current_ids: list[str] = Field(default_factory=list)
    candidate_ids: list[str] = Field(..., min_length=1)
    action: Literal["add", "remove"] = "add"
    preferences: list[UserPreference] = Field(default_factory=list)


class NormalizeRequest(BaseModel):
    preferences: list[UserPreference] = Field(..., min_length=1)
