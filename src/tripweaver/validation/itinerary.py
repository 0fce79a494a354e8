"""
Itinerary validation.

Runs after scheduling and never raises: every finding becomes a `ValidationIssue`.
Errors mark the result invalid (time reversal, negative duration, trip-end overrun);
warnings are advisory (duplicates, long or packed days, odd transport choices).

Lodging parts of multi-day bookings run in the background of a day, so they are skipped by
the ordering and span checks.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from tripweaver.config.settings import Settings
from tripweaver.domain.models import DailySchedule, DestinationVisit, ValidationIssue
from tripweaver.transport.calculator import validate_transport_mode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationReport:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _timed(day: DailySchedule) -> list[DestinationVisit]:
    return [v for v in day.visits if v.kind != "lodging"]


def _error(code: str, message: str, **kwargs) -> ValidationIssue:
    return ValidationIssue(severity="error", code=code, message=message, **kwargs)


def _warning(code: str, message: str, **kwargs) -> ValidationIssue:
    return ValidationIssue(severity="warning", code=code, message=message, **kwargs)


def check_time_order(day: DailySchedule) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    previous: DestinationVisit | None = None
    for visit in day.visits:
        if visit.departure < visit.arrival:
            issues.append(
                _error(
                    "NEGATIVE_DURATION",
                    f"'{visit.name}' departs before it arrives.",
                    destination_id=visit.destination_id,
                    day_number=day.day_number,
                    detail={"arrival": visit.arrival.isoformat(), "departure": visit.departure.isoformat()},
                )
            )
        if visit.kind == "lodging":
            continue
        if previous is not None and visit.arrival < previous.departure:
            issues.append(
                _error(
                    "TIME_REVERSAL",
                    f"'{visit.name}' starts before '{previous.name}' ends.",
                    destination_id=visit.destination_id,
                    day_number=day.day_number,
                    detail={
                        "previous_id": previous.destination_id,
                        "previous_departure": previous.departure.isoformat(),
                        "arrival": visit.arrival.isoformat(),
                    },
                )
            )
        previous = visit
    return issues


def check_trip_window(days: list[DailySchedule], trip_end: date | None) -> list[ValidationIssue]:
    if trip_end is None or not days:
        return []
    last = days[-1]
    if last.date <= trip_end:
        return []
    late = [v.destination_id for d in days if d.date > trip_end for v in d.visits]
    return [
        _error(
            "TRIP_END_EXCEEDED",
            f"Itinerary ends on {last.date.isoformat()}, after the trip end {trip_end.isoformat()}.",
            day_number=last.day_number,
            detail={"end_date": last.date.isoformat(), "trip_end": trip_end.isoformat(), "destination_ids": late},
        )
    ]


def check_duplicates(days: list[DailySchedule]) -> list[ValidationIssue]:
    # Part 2 of a cross-midnight event and lodging splits are the same booking, not repeats.
    counts = Counter(
        v.destination_id
        for d in days
        for v in d.visits
        if v.kind in {"visit", "fixed"} and v.split_part != 2
    )
    return [
        _warning(
            "DUPLICATE_VISIT",
            f"Destination '{destination_id}' is visited {count} times.",
            destination_id=destination_id,
            detail={"count": count},
        )
        for destination_id, count in sorted(counts.items())
        if count > 1
    ]


def check_day_load(day: DailySchedule, settings: Settings) -> list[ValidationIssue]:
    rules = settings.validation
    issues: list[ValidationIssue] = []
    timed = _timed(day)

    if not timed:
        issues.append(_warning("EMPTY_DAY", f"Day {day.day_number} has nothing scheduled.", day_number=day.day_number))
        return issues

    span = (max(v.departure for v in timed) - min(v.arrival for v in timed)).total_seconds() / 60
    if span > rules.long_day_hours * 60:
        issues.append(
            _warning(
                "LONG_DAY",
                f"Day {day.day_number} spans {span / 60:.1f} hours.",
                day_number=day.day_number,
                detail={"span_minutes": int(span)},
            )
        )

    visits = sum(1 for v in timed if v.kind == "visit")
    if visits > rules.max_visits_per_day:
        issues.append(
            _warning(
                "TOO_MANY_DESTINATIONS",
                f"Day {day.day_number} has {visits} visits.",
                day_number=day.day_number,
                detail={"visits": visits, "max": rules.max_visits_per_day},
            )
        )

    cap = settings.scheduling.max_daily_minutes
    if day.used_minutes >= rules.packed_utilization * cap:
        issues.append(
            _warning(
                "PACKED_SCHEDULE",
                f"Day {day.day_number} uses {day.used_minutes} of {cap} minutes.",
                day_number=day.day_number,
                detail={"used_minutes": day.used_minutes, "cap_minutes": cap},
            )
        )
    return issues


def check_transport(day: DailySchedule, settings: Settings) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for visit in day.visits:
        segment = visit.transport_from_previous
        if segment is None:
            continue
        for issue in validate_transport_mode(segment, settings.validation):
            issues.append(issue.model_copy(update={"day_number": day.day_number}))
        if segment.travel_minutes > settings.validation.unrealistic_travel_minutes:
            issues.append(
                _warning(
                    "UNREALISTIC_TRAVEL",
                    f"Travel to '{visit.name}' takes {segment.travel_minutes} minutes.",
                    destination_id=visit.destination_id,
                    day_number=day.day_number,
                    detail={"travel_minutes": segment.travel_minutes, "mode": segment.mode},
                )
            )
    return issues


def check_flight_share(days: list[DailySchedule], settings: Settings) -> list[ValidationIssue]:
    if len(days) < 2:
        return []
    flight_days = sum(
        1
        for d in days
        if any(v.transport_from_previous and v.transport_from_previous.mode == "flying" for v in d.visits)
    )
    ratio = flight_days / len(days)
    if ratio <= settings.validation.flight_heavy_ratio:
        return []
    return [
        _warning(
            "FLIGHT_HEAVY",
            f"Flights on {flight_days} of {len(days)} days.",
            detail={"flight_days": flight_days, "days": len(days)},
        )
    ]


def validate_itinerary(
    days: list[DailySchedule],
    *,
    settings: Settings,
    trip_end: date | None = None,
) -> ValidationReport:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    for day in days:
        errors.extend(check_time_order(day))
    errors.extend(check_trip_window(days, trip_end))

    warnings.extend(check_duplicates(days))
    for day in days:
        warnings.extend(check_day_load(day, settings))
        warnings.extend(check_transport(day, settings))
    warnings.extend(check_flight_share(days, settings))

    if errors:
        logger.warning("Itinerary has %d error(s): %s", len(errors), sorted({e.code for e in errors}))
    return ValidationReport(errors=errors, warnings=warnings)
