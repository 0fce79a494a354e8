"""
Constraint segmentation.

Input: flexible places in route order (endpoints included) plus constrained destinations.
Output: one chronological sequence partitioned into segments:

- a *fixed* segment per constrained place (or per virtual split of a multi-day booking),
- *flexible* segments for the runs of unconstrained places between them.

Constrained places are expressed in cumulative minutes since the trip-start midnight, so
arithmetic never depends on wall-clock timezones. Flexible places are never reordered; the
segmenter only decides which constrained boundary each of them falls before, by dry-running
the same day clock the schedule builder uses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Literal

from tripweaver.config.settings import SchedulingSettings
from tripweaver.core.time import MINUTES_PER_DAY, split_cumulative, to_cumulative_minutes
from tripweaver.domain.models import (
    ArrivalBy,
    ConstraintKind,
    DepartBy,
    Destination,
    Endpoint,
    GeoPoint,
    MultiDayBooking,
    VisitKind,
)
from tripweaver.scheduling.clock import FixedPart, TimelineWalker, fixed_parts, overnight_hop

logger = logging.getLogger(__name__)

TravelFn = Callable[["PlannedPlace", "PlannedPlace"], int]


@dataclass(frozen=True)
class PlannedPlace:
    """A place as the scheduler sees it (never mutated; adjusted copies are made instead)."""

    destination_id: str
    name: str
    location: GeoPoint
    stay_minutes: int
    kind: VisitKind = "visit"
    constraint_kind: ConstraintKind = "none"
    start: int | None = None
    end: int | None = None
    cluster_id: str | None = None
    original_place_id: str | None = None
    split_index: int | None = None
    split_total_days: int | None = None
    is_final: bool = False

    @property
    def fixed(self) -> bool:
        return self.start is not None

    @property
    def blocking(self) -> bool:
        return self.fixed and self.kind != "lodging"

    @property
    def key(self) -> str:
        return f"{self.destination_id}#{self.split_index or 0}"

    @property
    def id(self) -> str:
        return self.destination_id

    def parts(self) -> list[FixedPart]:
        if self.start is None or self.end is None:
            return []
        return fixed_parts(self.key, self.start, self.end)


@dataclass(frozen=True)
class ConstraintSegment:
    kind: Literal["flexible", "fixed"]
    places: list[PlannedPlace]
    start_minute: int | None = None
    end_minute: int | None = None
    deleted: list[PlannedPlace] = field(default_factory=list)


@dataclass(frozen=True)
class SegmentationResult:
    segments: list[ConstraintSegment]
    deleted: list[PlannedPlace] = field(default_factory=list)

    @property
    def places(self) -> list[PlannedPlace]:
        return [p for s in self.segments for p in s.places]


# ---- Conversions ----


def flexible_place(destination: Destination, *, default_stay: int, cluster_id: str | None = None) -> PlannedPlace:
    return PlannedPlace(
        destination_id=destination.id,
        name=destination.name,
        location=destination.location,
        stay_minutes=destination.stay_minutes if destination.stay_minutes is not None else default_stay,
        cluster_id=cluster_id,
    )


def endpoint_place(endpoint: Endpoint, *, is_final: bool = False) -> PlannedPlace:
    return PlannedPlace(
        destination_id=endpoint.id,
        name=endpoint.name,
        location=endpoint.location,
        stay_minutes=0,
        kind="endpoint",
        is_final=is_final,
    )


def split_multi_day_booking(destination: Destination, origin: datetime) -> list[PlannedPlace]:
    """One lodging part per calendar day the booking spans.

    The check-in day runs from check-in to the end of the day, middle days are whole days,
    and the check-out day runs from midnight to check-out; stays add up to the full booking.
    """
    booking = destination.constraint
    if not isinstance(booking, MultiDayBooking):
        raise ValueError(f"Destination '{destination.id}' is not a multi-day booking")
    start = to_cumulative_minutes(booking.check_in, origin)
    end = to_cumulative_minutes(booking.check_out, origin)

    windows: list[tuple[int, int]] = []
    first_day, _ = split_cumulative(start)
    last_day, _ = split_cumulative(max(start, end - 1))
    for day in range(first_day, last_day + 1):
        lo = max(start, (day - 1) * MINUTES_PER_DAY)
        hi = min(end, day * MINUTES_PER_DAY)
        if hi > lo:
            windows.append((lo, hi))

    total = len(windows)
    return [
        PlannedPlace(
            destination_id=destination.id if total == 1 else f"{destination.id}_day{index}",
            name=destination.name,
            location=destination.location,
            stay_minutes=hi - lo,
            kind="lodging",
            constraint_kind="hotel_segment",
            start=lo,
            end=hi,
            original_place_id=destination.id,
            split_index=index,
            split_total_days=total,
        )
        for index, (lo, hi) in enumerate(windows, start=1)
    ]


def constrained_places(destination: Destination, origin: datetime, *, default_stay: int) -> list[PlannedPlace]:
    """Expand a constrained destination into fixed places (cumulative minutes)."""
    constraint = destination.constraint
    stay = destination.stay_minutes if destination.stay_minutes is not None else default_stay
    if isinstance(constraint, MultiDayBooking):
        return split_multi_day_booking(destination, origin)
    if isinstance(constraint, ArrivalBy):
        start = to_cumulative_minutes(constraint.at, origin)
        end = start + stay
    elif isinstance(constraint, DepartBy):
        # The stay is cut at the trip-start midnight.
        end = to_cumulative_minutes(constraint.at, origin)
        start = max(0, end - stay)
    else:
        raise ValueError(f"Destination '{destination.id}' has no hard constraint")
    return [
        PlannedPlace(
            destination_id=destination.id,
            name=destination.name,
            location=destination.location,
            stay_minutes=end - start,
            kind="fixed",
            constraint_kind=destination.constraint_kind,
            start=start,
            end=end,
        )
    ]


# ---- Sequencing ----


def interleave(
    flexible: list[PlannedPlace],
    fixed: list[PlannedPlace],
    *,
    travel: TravelFn,
    settings: SchedulingSettings,
) -> list[PlannedPlace]:
    """Merge fixed places into the flexible route without reordering either list.

    Blocking fixed places go before the first flexible place that could not finish before
    them; lodging parts go in by start time. The final destination always comes last.
    """
    blocking = sorted((p for p in fixed if p.blocking), key=lambda p: (p.start, p.key))
    lodging = sorted((p for p in fixed if not p.blocking), key=lambda p: (p.start, p.key))
    walker = TimelineWalker(settings, [part for p in blocking for part in p.parts()])

    sequence: list[PlannedPlace] = []
    previous: PlannedPlace | None = None

    def flush_lodging(until: int) -> None:
        while lodging and lodging[0].start <= until:
            sequence.append(lodging.pop(0))

    def emit_fixed(place: PlannedPlace) -> None:
        nonlocal previous
        flush_lodging(place.start)
        sequence.append(place)
        walker.place_fixed(place.parts())
        previous = place

    for place in flexible:
        if place.is_final:
            while blocking:
                emit_fixed(blocking.pop(0))
            flush_lodging(10**9)
            sequence.append(place)
            previous = place
            continue
        if previous is None and place.kind == "endpoint":
            walker.place_start()
            sequence.append(place)
            previous = place
            continue

        while blocking:
            hop = travel(previous, place) if previous is not None else 0
            trial = walker.copy().place_flexible(hop, place.stay_minutes)
            if (trial.day - 1) * MINUTES_PER_DAY + trial.departure > blocking[0].start:
                emit_fixed(blocking.pop(0))
            else:
                break

        hop = travel(previous, place) if previous is not None else 0
        placed = walker.place_flexible(hop, place.stay_minutes)
        flush_lodging((placed.day - 1) * MINUTES_PER_DAY + placed.arrival)
        sequence.append(place)
        previous = place

    while blocking:
        emit_fixed(blocking.pop(0))
    flush_lodging(10**9)
    return sequence


def build_segments(sequence: list[PlannedPlace]) -> list[ConstraintSegment]:
    """Partition a chronological sequence at every fixed place (order preserved).

    Flexible segments carry the window between the neighbouring *blocking* places
    (`None` when open-ended); lodging parts are boundaries but do not consume time.
    """
    segments: list[ConstraintSegment] = []
    run: list[PlannedPlace] = []
    last_blocking_end: int | None = None

    def next_blocking_start(index: int) -> int | None:
        for p in sequence[index:]:
            if p.blocking:
                return p.start
        return None

    for index, place in enumerate(sequence):
        if place.fixed:
            if run:
                segments.append(
                    ConstraintSegment("flexible", run, last_blocking_end, next_blocking_start(index))
                )
                run = []
            segments.append(ConstraintSegment("fixed", [place], place.start, place.end))
            if place.blocking:
                last_blocking_end = place.end
        else:
            run.append(place)
    if run:
        segments.append(ConstraintSegment("flexible", run, last_blocking_end, None))
    return segments


def usable_minutes(start: int, end: int, settings: SchedulingSettings) -> int:
    """Schedulable minutes in [start, end): daily windows, each capped by the daily budget."""
    if end <= start:
        return 0
    total = 0
    first_day, _ = split_cumulative(start)
    last_day, _ = split_cumulative(end - 1)
    for day in range(first_day, last_day + 1):
        base = (day - 1) * MINUTES_PER_DAY
        lo = max(start, base + settings.day_start_minute)
        hi = min(end, base + settings.day_end_minute)
        total += min(max(0, hi - lo), settings.max_daily_minutes)
    return total


def fit_flexible_segment(
    segment: ConstraintSegment,
    available_minutes: int,
    *,
    travel_minutes: int,
    min_stay: int,
) -> ConstraintSegment:
    """Shrink stays by one common ratio so the segment fits; drop what still does not fit.

    Stays never go below `min_stay` (or the original stay if that is already shorter).
    Endpoints are always kept.
    """
    movable = [p for p in segment.places if p.kind == "visit"]
    requested = sum(p.stay_minutes for p in movable)
    budget = available_minutes - travel_minutes
    if requested <= budget or not movable:
        return segment

    ratio = max(0.0, budget / requested) if requested else 0.0
    adjusted = {p.key: max(min(min_stay, p.stay_minutes), int(p.stay_minutes * ratio)) for p in movable}

    if sum(adjusted.values()) > budget:
        # Not enough time even at the minimum: keep places in order while they fit.
        remaining = budget
        kept: dict[str, int] = {}
        for p in movable:
            floor_stay = min(min_stay, p.stay_minutes)
            if floor_stay <= remaining:
                kept[p.key] = floor_stay
                remaining -= floor_stay
        adjusted = kept

    places: list[PlannedPlace] = []
    deleted: list[PlannedPlace] = []
    for p in segment.places:
        if p.kind != "visit":
            places.append(p)
        elif p.key in adjusted:
            places.append(replace(p, stay_minutes=adjusted[p.key]))
        else:
            deleted.append(p)
    if deleted:
        logger.warning(
            "Dropped %d place(s) that do not fit a %d-minute window", len(deleted), available_minutes
        )
    return replace(segment, places=places, deleted=[*segment.deleted, *deleted])


def segment_itinerary(
    flexible: list[PlannedPlace],
    fixed: list[PlannedPlace],
    *,
    travel: TravelFn,
    settings: SchedulingSettings,
    trip_days: int | None = None,
) -> SegmentationResult:
    """Sequence, partition, and fit an itinerary ahead of day scheduling."""
    sequence = interleave(flexible, fixed, travel=travel, settings=settings)
    segments = build_segments(sequence)

    fitted: list[ConstraintSegment] = []
    deleted: list[PlannedPlace] = []
    for segment in segments:
        window_end = segment.end_minute
        if window_end is None and trip_days is not None:
            window_end = trip_days * MINUTES_PER_DAY
        if segment.kind != "flexible" or window_end is None:
            fitted.append(segment)
            continue

        window_start = segment.start_minute if segment.start_minute is not None else 0
        hops = 0
        for a, b in zip(segment.places, segment.places[1:]):
            minutes = travel(a, b)
            if not overnight_hop(minutes, b.stay_minutes, settings, final=b.is_final):
                hops += minutes
        available = usable_minutes(window_start, window_end, settings)
        result = fit_flexible_segment(
            segment,
            available,
            travel_minutes=hops,
            min_stay=settings.min_stay_minutes,
        )
        fitted.append(result)
        deleted.extend(result.deleted)
    return SegmentationResult(fitted, deleted)
