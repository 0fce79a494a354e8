"""
Day clock shared by the segmenter (dry runs) and the day-schedule builder.

Rules implemented here:
- Each day opens at `day_start` with a budget of `max_daily_minutes` covering travel and stays.
- A flexible place that does not fit the remaining budget (or would run past `day_end`)
  moves to the next day together with its incoming hop; hops are never split.
- The final destination uses `final_destination_cutoff` instead of `day_end`, but never
  exceeds the budget.
- Fixed (constrained) parts keep their times; minutes already promised to fixed parts later
  on the same day are reserved so flexible places cannot eat into them.
- A fixed part longer than the whole budget gets its day to itself.
- A hop that cannot fit an empty day together with its stay is travelled off the clock: the
  place opens on the first morning the hop can reach, with its full stay.
- The departure point sits at `day_start` on day 1, or at the first fixed part if that
  starts earlier.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from tripweaver.config.settings import SchedulingSettings
from tripweaver.core.time import MINUTES_PER_DAY, split_cumulative


@dataclass(frozen=True)
class FixedPart:
    """One calendar-day slice of a fixed event, in day-local minutes."""

    key: str
    day: int
    start: int
    end: int
    split_part: int | None = None

    @property
    def minutes(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Placement:
    day: int
    arrival: int
    departure: int
    travel: int
    stay: int
    truncated: bool = False
    overnight: bool = False


def fits_one_day(travel: int, stay: int, settings: SchedulingSettings, *, final: bool = False) -> bool:
    """Whether a hop plus its stay fit an otherwise empty day."""
    limit = settings.final_cutoff_minute if final else settings.day_end_minute
    return travel + stay <= settings.max_daily_minutes and settings.day_start_minute + travel + stay <= limit


def overnight_hop(travel: int, stay: int, settings: SchedulingSettings, *, final: bool = False) -> bool:
    """A hop that only the stay, not the hop plus the stay, fits into a day."""
    return (
        travel > 0
        and fits_one_day(0, stay, settings, final=final)
        and not fits_one_day(travel, stay, settings, final=final)
    )


def fixed_parts(key: str, start: int, end: int) -> list[FixedPart]:
    """Slice a fixed interval (cumulative minutes) at midnight into at most two parts."""
    day, local_start = split_cumulative(start)
    local_end = local_start + (end - start)
    if local_end <= MINUTES_PER_DAY:
        return [FixedPart(key, day, local_start, local_end)]
    return [
        FixedPart(key, day, local_start, MINUTES_PER_DAY, split_part=1),
        FixedPart(key, day + 1, 0, min(local_end - MINUTES_PER_DAY, MINUTES_PER_DAY), split_part=2),
    ]


@dataclass
class TimelineWalker:
    settings: SchedulingSettings
    pending: list[FixedPart] = field(default_factory=list)
    day: int = 1
    minute: int = 0
    used: int = 0
    items_today: int = 0

    def __post_init__(self) -> None:
        self.minute = self.settings.day_start_minute
        self.pending = sorted(self.pending, key=lambda p: (p.day, p.start, p.key))
        self.exclusive_days = {p.day for p in self.pending if p.minutes > self.settings.max_daily_minutes}

    def copy(self) -> "TimelineWalker":
        clone = copy.copy(self)
        clone.pending = list(self.pending)
        clone.exclusive_days = set(self.exclusive_days)
        return clone

    def reserved(self, day: int) -> int:
        return sum(p.minutes for p in self.pending if p.day == day and day not in self.exclusive_days)

    def open_day(self, day: int) -> None:
        self.day = day
        self.minute = self.settings.day_start_minute
        self.used = 0
        self.items_today = 0

    def next_day(self) -> None:
        day = self.day + 1
        while day in self.exclusive_days:
            day += 1
        self.open_day(day)

    def place_flexible(self, travel: int, stay: int, *, final: bool = False) -> Placement:
        """Place a flexible stop after a hop of `travel` minutes.

        `Placement.travel` is the part of the hop charged to the day; it is 0 for an overnight hop.
        """
        cap = self.settings.max_daily_minutes
        requested = stay
        overnight = overnight_hop(travel, stay, self.settings, final=final)
        if overnight:
            reachable = (self.day - 1) * MINUTES_PER_DAY + self.minute + travel
            self.next_day()
            while (self.day - 1) * MINUTES_PER_DAY + self.settings.day_start_minute < reachable:
                self.next_day()
            travel = 0
        while True:
            limit = self.settings.final_cutoff_minute if final else self.settings.day_end_minute
            blocked = self.day in self.exclusive_days
            reserved = self.reserved(self.day)
            start = max(self.minute, self.settings.day_start_minute)
            arrival = start + travel
            fits = (
                not blocked
                and self.used + travel + stay + reserved <= cap
                and arrival + stay <= limit
            )
            if fits:
                break
            if not blocked and self.items_today == 0 and reserved == 0:
                # Nothing else competes for this day: clamp instead of rolling forever.
                break
            self.next_day()

        arrival = min(arrival, limit)
        room = min(limit - arrival, cap - self.used - travel - reserved)
        stay = max(0, min(stay, room))
        self.minute = arrival + stay
        self.used += travel + stay
        self.items_today += 1
        return Placement(self.day, arrival, arrival + stay, travel, stay, stay < requested, overnight)

    def place_start(self) -> Placement:
        """The trip's departure point; no budget consumed."""
        minute = min([self.minute, *(p.start for p in self.pending if p.day == self.day)])
        return Placement(self.day, minute, minute, 0, 0)

    def place_fixed(self, parts: list[FixedPart]) -> list[Placement]:
        """Place the parts of one fixed event at their external times."""
        placements: list[Placement] = []
        for part in parts:
            self.pending = [p for p in self.pending if not (p.key == part.key and p.day == part.day)]
            if part.day > self.day:
                self.open_day(part.day)
            if part.day == self.day:
                self.minute = max(self.minute, part.end)
                self.used += part.minutes
                self.items_today += 1
            placements.append(Placement(part.day, part.start, part.end, 0, part.minutes))
        return placements
