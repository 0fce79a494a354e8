"""
Transport mode selection and travel-time estimates.

Distances are straight-line (haversine) kilometers; real routing APIs are out of scope, so
each mode's speed and fixed overhead absorb detours, parking, and airport procedures.

Mode thresholds (all configurable under `transport`):
- distance <= walking_max_km          -> walking
- distance <  long_haul_km            -> driving
- otherwise                           -> flying
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from tripweaver.config.settings import TransportSettings, ValidationSettings
from tripweaver.core.geo import HasLatLon, haversine_km
from tripweaver.domain.models import TransportMode, TransportSegment, ValidationIssue


def select_mode(distance_km: float, settings: TransportSettings) -> TransportMode:
    if distance_km <= settings.walking_max_km:
        return "walking"
    if distance_km < settings.long_haul_km:
        return "driving"
    return "flying"


def travel_minutes(distance_km: float, mode: TransportMode, settings: TransportSettings) -> int:
    """Door-to-door minutes for one hop, rounded and floored per mode."""
    d = max(0.0, float(distance_km))
    if mode == "walking":
        minutes = d / settings.walking_speed_kmh * 60 + settings.walking_overhead_minutes
    elif mode == "driving":
        if d >= settings.long_drive_km:
            minutes = d / settings.long_drive_speed_kmh * 60 + settings.long_drive_break_minutes
        else:
            minutes = d / settings.driving_speed_kmh * 60
        minutes += settings.driving_overhead_minutes
    elif mode == "flying":
        overhead = (
            settings.intercontinental_overhead_minutes
            if d >= settings.intercontinental_km
            else settings.airport_overhead_minutes
        )
        minutes = d / settings.flying_speed_kmh * 60 + overhead + settings.ground_access_minutes
    else:
        raise ValueError(f"Unknown transport mode '{mode}'")
    return max(int(settings.min_minutes.get(mode, 1)), int(round(minutes)), 1)


def plan_hop(
    from_id: str,
    from_point: HasLatLon,
    to_id: str,
    to_point: HasLatLon,
    settings: TransportSettings,
) -> TransportSegment:
    """Untimed hop between two points; the schedule builder attaches timestamps."""
    distance = haversine_km(from_point, to_point)
    mode = select_mode(distance, settings)
    return TransportSegment(
        from_id=from_id,
        to_id=to_id,
        mode=mode,
        distance_km=round(distance, 3),
        travel_minutes=travel_minutes(distance, mode, settings),
    )


def validate_transport_mode(segment: TransportSegment, settings: ValidationSettings) -> list[ValidationIssue]:
    """Advisory checks for hops whose mode looks impractical."""
    issues: list[ValidationIssue] = []
    if segment.mode == "flying" and segment.distance_km < settings.short_flight_km:
        issues.append(
            ValidationIssue(
                severity="warning",
                code="SHORT_FLIGHT",
                message=f"Flight of {segment.distance_km:.0f} km may be inefficient; consider ground transport.",
                destination_id=segment.to_id,
                detail={"from_id": segment.from_id, "distance_km": segment.distance_km},
            )
        )
    if segment.mode == "walking" and segment.distance_km > settings.long_walk_km:
        issues.append(
            ValidationIssue(
                severity="warning",
                code="LONG_WALK",
                message=f"Walking {segment.distance_km:.1f} km between places is a long walk.",
                destination_id=segment.to_id,
                detail={"from_id": segment.from_id, "distance_km": segment.distance_km},
            )
        )
    if segment.travel_minutes < 0:
        issues.append(
            ValidationIssue(
                severity="warning",
                code="NEGATIVE_TRAVEL_TIME",
                message="Computed travel time is negative; this indicates an upstream calculation bug.",
                destination_id=segment.to_id,
                detail={"from_id": segment.from_id, "travel_minutes": segment.travel_minutes},
            )
        )
    return issues


@dataclass(frozen=True)
class TransportStats:
    total_distance_km: float
    total_minutes: int
    mode_breakdown: dict[str, dict[str, float]] = field(default_factory=dict)
    mode_changes: int = 0
    dominant_mode: str | None = None

    def as_dict(self) -> dict:
        return {
            "total_distance_km": self.total_distance_km,
            "total_minutes": self.total_minutes,
            "mode_breakdown": self.mode_breakdown,
            "mode_changes": self.mode_changes,
            "dominant_mode": self.dominant_mode,
        }


def transport_stats(segments: list[TransportSegment]) -> TransportStats:
    breakdown: dict[str, dict[str, float]] = {}
    for seg in segments:
        row = breakdown.setdefault(seg.mode, {"count": 0, "distance_km": 0.0, "minutes": 0})
        row["count"] += 1
        row["distance_km"] = round(row["distance_km"] + seg.distance_km, 3)
        row["minutes"] += seg.travel_minutes

    changes = sum(1 for a, b in zip(segments, segments[1:]) if a.mode != b.mode)
    counts = Counter(seg.mode for seg in segments)
    # Most hops wins; ties go to the mode covering more distance.
    dominant = (
        max(counts, key=lambda m: (counts[m], breakdown[m]["distance_km"])) if counts else None
    )
    return TransportStats(
        total_distance_km=round(sum(s.distance_km for s in segments), 3),
        total_minutes=sum(s.travel_minutes for s in segments),
        mode_breakdown=breakdown,
        mode_changes=changes,
        dominant_mode=dominant,
    )
