"""
Day-schedule construction.

Walks the segmented place sequence with the shared day clock and produces one
`DailySchedule` per calendar day:

- flexible places get their incoming hop added to the clock and may roll to the next day,
- fixed places keep their external times (cross-midnight events become Part 1 / Part 2),
- lodging parts of multi-day bookings are listed on their day without consuming the budget,
- meals are added afterwards, only where they overlap nothing (travel included) and still fit
  the budget.

Overnight hops and shortened stays are reported as `OVERNIGHT_TRANSFER` / `STAY_TRUNCATED`
warnings on the build result.

Visits are fresh `DestinationVisit` records; the input places are never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from tripweaver.config.settings import SchedulingSettings, TransportSettings
from tripweaver.core.time import day_minute_to_datetime, split_cumulative, trip_origin
from tripweaver.domain.models import DailySchedule, DestinationVisit, MealBreak, TransportSegment, ValidationIssue
from tripweaver.scheduling.clock import TimelineWalker
from tripweaver.scheduling.segments import PlannedPlace
from tripweaver.transport.calculator import plan_hop

logger = logging.getLogger(__name__)


@dataclass
class _RawVisit:
    place: PlannedPlace
    day: int
    arrival: int
    departure: int
    hop: TransportSegment | None = None
    hop_counted: bool = False
    split_part: int | None = None
    to_next: TransportSegment | None = None

    @property
    def blocking(self) -> bool:
        return self.place.kind != "lodging"


@dataclass(frozen=True)
class ScheduleBuildResult:
    days: list[DailySchedule]
    dropped: list[PlannedPlace] = field(default_factory=list)
    hops: list[TransportSegment] = field(default_factory=list)
    notices: list[ValidationIssue] = field(default_factory=list)


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def plan_meals(
    visits: list[_RawVisit],
    settings: SchedulingSettings,
    *,
    in_transit: list[tuple[int, int]] | None = None,
) -> list[tuple[str, int, int]]:
    """Meal slots (name, start, end) that overlap nothing already scheduled and fit the budget.

    Hops that are not on the clock (into fixed events, overnight) still block meals but do not
    use budget; `in_transit` adds such windows belonging to visits on later days.
    """
    if not settings.include_meals or not any(v.place.kind in {"visit", "fixed"} for v in visits):
        return []
    busy: list[tuple[int, int]] = list(in_transit or [])
    used = 0
    for v in visits:
        if not v.blocking:
            continue
        busy.append((v.arrival, v.departure))
        used += v.departure - v.arrival
        if v.hop is not None:
            busy.append((v.arrival - v.hop.travel_minutes, v.arrival))
            if v.hop_counted:
                used += v.hop.travel_minutes

    meals: list[tuple[str, int, int]] = []
    for meal in sorted(settings.meals, key=lambda m: m.start_minute):
        start, end = meal.start_minute, meal.start_minute + meal.minutes
        if any(_overlaps(start, end, b_start, b_end) for b_start, b_end in busy):
            continue
        if used + meal.minutes > settings.max_daily_minutes:
            continue
        busy.append((start, end))
        used += meal.minutes
        meals.append((meal.name, start, end))
    return meals


class _Builder:
    def __init__(
        self,
        *,
        trip_start: date,
        timezone: str,
        settings: SchedulingSettings,
        transport: TransportSettings,
        max_days: int | None,
    ) -> None:
        self.trip_start = trip_start
        self.timezone = timezone
        self.origin = trip_origin(trip_start, timezone)
        self.settings = settings
        self.transport = transport
        self.max_days = max_days
        self.visits: list[_RawVisit] = []
        self.dropped: list[PlannedPlace] = []
        self.notices: list[ValidationIssue] = []

    def _at(self, cumulative_minute: int) -> datetime:
        return self.origin + timedelta(minutes=cumulative_minute)

    def _timed_hop(self, hop: TransportSegment, day: int, arrival: int) -> TransportSegment:
        arrival_abs = (day - 1) * 24 * 60 + arrival
        return hop.model_copy(
            update={
                "departure": self._at(arrival_abs - hop.travel_minutes),
                "arrival": self._at(arrival_abs),
            }
        )

    def _append(self, visit: _RawVisit) -> None:
        if visit.blocking and visit.hop is not None:
            for previous in reversed(self.visits):
                if previous.blocking:
                    previous.to_next = visit.hop
                    break
        self.visits.append(visit)

    def walk(self, places: list[PlannedPlace]) -> None:
        blocking_parts = [part for p in places if p.blocking for part in p.parts()]
        walker = TimelineWalker(self.settings, blocking_parts)
        previous: PlannedPlace | None = None

        for place in places:
            if place.kind == "lodging":
                day, local_start = split_cumulative(place.start or 0)
                local_end = local_start + place.stay_minutes
                self._append(_RawVisit(place, day, local_start, local_end))
                continue

            hop = (
                plan_hop(previous.id, previous.location, place.id, place.location, self.transport)
                if previous is not None
                else None
            )

            if place.blocking:
                # ---- Fixed event: external times, incoming travel is not added to the clock ----
                for index, (part, placed) in enumerate(zip(place.parts(), walker.place_fixed(place.parts()))):
                    timed = self._timed_hop(hop, placed.day, placed.arrival) if hop and index == 0 else None
                    self._append(
                        _RawVisit(place, placed.day, placed.arrival, placed.departure, timed, False, part.split_part)
                    )
                previous = place
                continue

            if previous is None and place.kind == "endpoint":
                placed = walker.place_start()
                self._append(_RawVisit(place, placed.day, placed.arrival, placed.departure))
                previous = place
                continue

            # ---- Flexible place: travel + stay on the clock, may roll to the next day ----
            trial = walker.copy()
            placed = trial.place_flexible(
                hop.travel_minutes if hop else 0, place.stay_minutes, final=place.is_final
            )
            if self.max_days is not None and placed.day > self.max_days and place.kind == "visit":
                logger.warning("Dropping '%s': it would land on day %d of %d", place.id, placed.day, self.max_days)
                self.dropped.append(place)
                continue
            walker = trial
            timed = self._timed_hop(hop, placed.day, placed.arrival) if hop else None
            counted = hop is not None and not placed.overnight
            self._append(_RawVisit(place, placed.day, placed.arrival, placed.departure, timed, counted))
            if placed.overnight:
                self.notices.append(
                    ValidationIssue(
                        severity="warning",
                        code="OVERNIGHT_TRANSFER",
                        message=(
                            f"The {hop.travel_minutes}-minute hop to '{place.name}' does not fit a day; "
                            "it is travelled off the day budget."
                        ),
                        destination_id=place.id,
                        day_number=placed.day,
                        detail={"travel_minutes": hop.travel_minutes, "mode": hop.mode},
                    )
                )
            if placed.truncated:
                self.notices.append(
                    ValidationIssue(
                        severity="warning",
                        code="STAY_TRUNCATED",
                        message=f"Stay at '{place.name}' shortened to {placed.stay} of {place.stay_minutes} minutes.",
                        destination_id=place.id,
                        day_number=placed.day,
                        detail={"requested_minutes": place.stay_minutes, "scheduled_minutes": placed.stay},
                    )
                )
            previous = place

    def _render(self, visit: _RawVisit, day_date: date, order: int) -> DestinationVisit:
        place = visit.place
        return DestinationVisit(
            destination_id=place.destination_id,
            name=place.name,
            kind=place.kind,
            constraint_kind=place.constraint_kind,
            day_number=visit.day,
            order_in_day=order,
            arrival=day_minute_to_datetime(day_date, visit.arrival, self.timezone),
            departure=day_minute_to_datetime(day_date, visit.departure, self.timezone),
            stay_minutes=max(0, visit.departure - visit.arrival),
            cluster_id=place.cluster_id,
            transport_from_previous=visit.hop,
            transport_to_next=visit.to_next,
            original_place_id=place.original_place_id or (place.destination_id if visit.split_part else None),
            split_index=place.split_index,
            split_total_days=place.split_total_days,
            split_part=visit.split_part,
        )

    def _in_transit(self, day: int) -> list[tuple[int, int]]:
        """Day-local windows of hops that start on `day` but belong to a visit on a later day."""
        base = (day - 1) * 24 * 60
        windows: list[tuple[int, int]] = []
        for v in self.visits:
            if v.day <= day or v.hop is None:
                continue
            arrival = (v.day - 1) * 24 * 60 + v.arrival - base
            departure = arrival - v.hop.travel_minutes
            if departure < 24 * 60:
                windows.append((departure, min(arrival, 24 * 60)))
        return windows

    def days(self) -> list[DailySchedule]:
        last_day = max((v.day for v in self.visits), default=1)
        schedules: list[DailySchedule] = []
        for day in range(1, last_day + 1):
            day_date = self.trip_start + timedelta(days=day - 1)
            day_visits = [v for v in self.visits if v.day == day]
            meals = plan_meals(day_visits, self.settings, in_transit=self._in_transit(day))

            items: list[DestinationVisit | MealBreak] = []
            pending_meals = list(meals)
            for order, visit in enumerate(day_visits, start=1):
                while pending_meals and visit.blocking and visit.arrival >= pending_meals[0][1]:
                    items.append(self._meal(pending_meals.pop(0), day_date))
                items.append(self._render(visit, day_date, order))
            items.extend(self._meal(m, day_date) for m in pending_meals)

            schedules.append(
                DailySchedule(
                    day_number=day,
                    date=day_date,
                    items=items,
                    total_travel_time=sum(v.hop.travel_minutes for v in day_visits if v.hop_counted and v.hop),
                    total_visit_time=sum(v.departure - v.arrival for v in day_visits if v.blocking),
                    total_meal_time=sum(end - start for _, start, end in meals),
                )
            )
        return schedules

    def _meal(self, meal: tuple[str, int, int], day_date: date) -> MealBreak:
        name, start, end = meal
        return MealBreak(
            meal=name,
            start=day_minute_to_datetime(day_date, start, self.timezone),
            end=day_minute_to_datetime(day_date, end, self.timezone),
            minutes=end - start,
        )


def build_daily_schedules(
    places: list[PlannedPlace],
    *,
    trip_start: date,
    timezone: str,
    settings: SchedulingSettings,
    transport: TransportSettings,
    max_days: int | None = None,
) -> ScheduleBuildResult:
    """Turn a segmented place sequence into day-by-day schedules with absolute dates.

    `max_days` bounds flexible visits only: one that would land after the last allowed day
    is dropped and reported, while fixed events and endpoints are always scheduled.
    """
    builder = _Builder(
        trip_start=trip_start,
        timezone=timezone,
        settings=settings,
        transport=transport,
        max_days=max_days,
    )
    builder.walk(places)
    days = builder.days()
    hops = [v.hop for v in builder.visits if v.hop is not None]
    logger.info(
        "Built %d day(s): %d visit(s), %d dropped",
        len(days),
        sum(len(d.visits) for d in days),
        len(builder.dropped),
    )
    return ScheduleBuildResult(days=days, dropped=builder.dropped, hops=hops, notices=builder.notices)
