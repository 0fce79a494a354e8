"""
Structural checks on an optimization request, run before any optimization work.

Errors here mean the engine does not attempt the run (`status="not_attempted"`);
warnings are carried through to the result.
"""

from __future__ import annotations

from collections import Counter

from tripweaver.config.settings import Settings
from tripweaver.core.time import to_cumulative_minutes, trip_origin
from tripweaver.domain.models import (
    ArrivalBy,
    DepartBy,
    MultiDayBooking,
    OptimizationRequest,
    ValidationIssue,
)


def _constraint_times(request: OptimizationRequest):
    for d in request.destinations:
        c = d.constraint
        if isinstance(c, MultiDayBooking):
            yield d.id, c.check_in
        elif isinstance(c, (ArrivalBy, DepartBy)):
            yield d.id, c.at


def validate_request(request: OptimizationRequest, settings: Settings, *, timezone: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    minimum = settings.pipeline.min_destinations
    if len(request.destinations) < minimum:
        issues.append(
            ValidationIssue(
                severity="error",
                code="INSUFFICIENT_DESTINATIONS",
                message=f"At least {minimum} destinations are required, got {len(request.destinations)}.",
                detail={"count": len(request.destinations), "minimum": minimum},
            )
        )

    if request.trip_end is not None and request.trip_end < request.trip_start:
        issues.append(
            ValidationIssue(
                severity="error",
                code="INVALID_DATE_RANGE",
                message="trip_end is before trip_start.",
                detail={"trip_start": request.trip_start.isoformat(), "trip_end": request.trip_end.isoformat()},
            )
        )

    counts = Counter(d.id for d in request.destinations)
    for destination_id, count in sorted(counts.items()):
        if count > 1:
            issues.append(
                ValidationIssue(
                    severity="error",
                    code="DUPLICATE_DESTINATION_ID",
                    message=f"Destination id '{destination_id}' appears {count} times.",
                    destination_id=destination_id,
                    detail={"count": count},
                )
            )

    origin = trip_origin(request.trip_start, timezone)
    for destination_id, at in _constraint_times(request):
        if to_cumulative_minutes(at, origin) < 0:
            issues.append(
                ValidationIssue(
                    severity="error",
                    code="CONSTRAINT_BEFORE_TRIP_START",
                    message=f"Destination '{destination_id}' is pinned to {at.isoformat()}, before the trip starts.",
                    destination_id=destination_id,
                    detail={"at": at.isoformat(), "trip_start": request.trip_start.isoformat()},
                )
            )

    known = set(counts)
    unknown = sorted({p.destination_id for p in request.preferences if p.destination_id not in known})
    for cluster in request.clusters or []:
        unknown.extend(sorted(i for i in cluster.destination_ids if i not in known and i not in unknown))
    for destination_id in unknown:
        issues.append(
            ValidationIssue(
                severity="warning",
                code="UNKNOWN_DESTINATION_REFERENCE",
                message=f"Reference to unknown destination '{destination_id}' is ignored.",
                destination_id=destination_id,
            )
        )

    if not request.preferences:
        issues.append(
            ValidationIssue(
                severity="warning",
                code="MISSING_GROUP_MEMBERS",
                message="No member preferences were supplied; fairness cannot distinguish destinations.",
            )
        )
    return issues
