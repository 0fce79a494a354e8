from __future__ import annotations

import pytest

from tripweaver.config.settings import get_settings
from tripweaver.domain.models import GeoPoint, TransportSegment
from tripweaver.transport.calculator import (
    plan_hop,
    select_mode,
    transport_stats,
    travel_minutes,
    validate_transport_mode,
)

# One degree of latitude on a 6371 km sphere.
KM_PER_DEGREE = 6371 * 3.141592653589793 / 180


def _north_of(origin: GeoPoint, km: float) -> GeoPoint:
    return GeoPoint(lat=origin.lat + km / KM_PER_DEGREE, lon=origin.lon)


def test_short_hop_is_walking_with_overhead():
    settings = get_settings().transport
    a = GeoPoint(lat=48.85, lon=2.35)
    hop = plan_hop("a", a, "b", _north_of(a, 1.5), settings)

    assert hop.mode == "walking"
    assert hop.distance_km == pytest.approx(1.5, abs=1e-3)
    # 1.5 km at 5 km/h = 18 min, plus 5 min overhead.
    assert hop.travel_minutes == 23


def test_long_haul_hop_is_flying_with_airport_overhead():
    settings = get_settings().transport
    a = GeoPoint(lat=10.0, lon=20.0)
    hop = plan_hop("a", a, "b", _north_of(a, 350), settings)

    assert hop.mode == "flying"
    # 350 km at 700 km/h = 30 min, plus 60 min airport processing.
    assert hop.travel_minutes == 90


def test_mode_thresholds_use_single_long_haul_value():
    settings = get_settings().transport
    assert select_mode(0.0, settings) == "walking"
    assert select_mode(2.0, settings) == "walking"
    assert select_mode(2.01, settings) == "driving"
    assert select_mode(299.9, settings) == "driving"
    assert select_mode(300.0, settings) == "flying"


def test_long_haul_threshold_is_configurable():
    settings = get_settings().transport.model_copy(update={"long_haul_km": 500})
    assert select_mode(350, settings) == "driving"


def test_driving_times_include_overheads_and_long_drive_break():
    settings = get_settings().transport
    assert travel_minutes(100, "driving", settings) == 110
    # 240 km at 80 km/h = 180 min, plus a 15 min break and 10 min parking overhead.
    assert travel_minutes(240, "driving", settings) == 205


def test_intercontinental_flights_use_larger_overhead():
    settings = get_settings().transport
    assert travel_minutes(3500, "flying", settings) == 300 + 90


def test_per_mode_minimum_travel_times():
    settings = get_settings().transport
    assert travel_minutes(0, "walking", settings) == 5
    assert travel_minutes(0, "driving", settings) == 10
    assert travel_minutes(0, "flying", settings) == 60


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError, match="Unknown transport mode"):
        travel_minutes(10, "teleport", get_settings().transport)  # type: ignore[arg-type]


def test_validate_transport_mode_flags_impractical_hops():
    rules = get_settings().validation
    short_flight = TransportSegment(from_id="a", to_id="b", mode="flying", distance_km=80, travel_minutes=67)
    long_walk = TransportSegment(from_id="a", to_id="b", mode="walking", distance_km=6, travel_minutes=77)
    negative = TransportSegment(from_id="a", to_id="b", mode="driving", distance_km=10, travel_minutes=-3)
    fine = TransportSegment(from_id="a", to_id="b", mode="driving", distance_km=50, travel_minutes=60)

    assert [i.code for i in validate_transport_mode(short_flight, rules)] == ["SHORT_FLIGHT"]
    assert [i.code for i in validate_transport_mode(long_walk, rules)] == ["LONG_WALK"]
    assert [i.code for i in validate_transport_mode(negative, rules)] == ["NEGATIVE_TRAVEL_TIME"]
    assert validate_transport_mode(fine, rules) == []
    assert all(i.severity == "warning" for i in validate_transport_mode(short_flight, rules))


def test_transport_stats_breakdown_and_mode_changes():
    segments = [
        TransportSegment(from_id="a", to_id="b", mode="walking", distance_km=1.0, travel_minutes=17),
        TransportSegment(from_id="b", to_id="c", mode="driving", distance_km=40.0, travel_minutes=50),
        TransportSegment(from_id="c", to_id="d", mode="driving", distance_km=20.0, travel_minutes=30),
    ]
    stats = transport_stats(segments)

    assert stats.total_distance_km == 61.0
    assert stats.total_minutes == 97
    assert stats.mode_changes == 1
    assert stats.dominant_mode == "driving"
    assert stats.mode_breakdown["driving"]["count"] == 2
    assert transport_stats([]).dominant_mode is None
