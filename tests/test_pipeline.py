from __future__ import annotations

from datetime import date

import pytest

from tripweaver.domain.models import OptimizationRequest
from tripweaver.pipeline.optimize import optimize_trip

PARIS_DESTINATIONS = [
    {"id": "louvre", "name": "Louvre", "location": {"lat": 48.8606, "lon": 2.3376}, "stay_minutes": 120},
    {"id": "orsay", "name": "Musée d'Orsay", "location": {"lat": 48.8600, "lon": 2.3266}, "stay_minutes": 90},
    {"id": "eiffel", "name": "Eiffel Tower", "location": {"lat": 48.8584, "lon": 2.2945}, "stay_minutes": 90},
    {"id": "notre-dame", "name": "Notre-Dame", "location": {"lat": 48.8530, "lon": 2.3499}, "stay_minutes": 60},
]

RATINGS = {
    "alice": {"louvre": 5, "orsay": 4, "eiffel": 2, "notre-dame": 1},
    "bob": {"louvre": 2, "orsay": 1, "eiffel": 5, "notre-dame": 4},
}


def _request(**overrides) -> OptimizationRequest:
    payload = {
        "trip_id": "paris-weekend",
        "departure": {"id": "hotel", "name": "Hotel", "location": {"lat": 48.8566, "lon": 2.3522}},
        "trip_start": "2024-05-01",
        "trip_end": "2024-05-02",
        "timezone": "Europe/Paris",
        "destinations": PARIS_DESTINATIONS,
        "preferences": [
            {"user_id": user, "destination_id": dest, "rating": rating}
            for user, ratings in RATINGS.items()
            for dest, rating in ratings.items()
        ],
    }
    payload.update(overrides)
    return OptimizationRequest.model_validate(payload)


def test_optimize_small_city_trip():
    result = optimize_trip(_request())

    assert result.status == "ok"
    assert result.errors == []
    assert len(result.days) == 1
    first = result.days[0].visits[0]
    assert (first.destination_id, first.kind) == ("hotel", "endpoint")
    assert first.arrival.isoformat() == "2024-05-01T08:00:00+02:00"

    scheduled = {v.destination_id for d in result.days for v in d.visits if v.kind == "visit"}
    assert scheduled == {"louvre", "orsay", "eiffel", "notre-dame"}
    assert sorted(result.route.destination_ids) == sorted(scheduled)
    assert result.summary.scheduled_visit_count == 4
    assert result.summary.dropped_count == 0
    # Both members rated every scheduled place, so their z-scores cancel out evenly.
    assert result.summary.fairness_score == 1.0
    assert result.meta["fairness"]["gini"] == 0.0
    assert set(result.route.member_satisfaction) == {"alice", "bob"}
    for day in result.days:
        assert day.used_minutes <= 600

    for key in ("settings_snapshot", "normalization", "selection", "two_opt", "fairness", "transport", "timings_ms"):
        assert key in result.meta
    assert result.meta["settings_snapshot"]["timezone"] == "Europe/Paris"


def test_optimize_is_deterministic_without_timings():
    request = _request(settings_overrides={"pipeline": {"record_timings": False}})

    first = optimize_trip(request)
    second = optimize_trip(request)

    assert "timings_ms" not in first.meta
    assert first.model_dump_json() == second.model_dump_json()


def test_optimize_does_not_attempt_invalid_requests():
    result = optimize_trip(_request(destinations=PARIS_DESTINATIONS[:1]))

    assert result.status == "not_attempted"
    assert [e.code for e in result.errors] == ["INSUFFICIENT_DESTINATIONS"]
    assert result.days == []
    assert result.route is None
    assert result.reason

    backwards = optimize_trip(_request(trip_end="2024-04-28"))
    assert backwards.status == "not_attempted"
    assert [e.code for e in backwards.errors] == ["INVALID_DATE_RANGE"]


def test_optimize_splits_multi_day_hotel_across_days():
    hotel = {
        "id": "hotel-booking",
        "name": "Hôtel du Louvre",
        "location": {"lat": 48.8631, "lon": 2.3354},
        "check_in": "2024-05-01T15:00:00+02:00",
        "check_out": "2024-05-03T11:00:00+02:00",
    }
    result = optimize_trip(_request(trip_end="2024-05-03", destinations=[*PARIS_DESTINATIONS[:2], hotel]))

    assert result.status == "ok"
    assert [d.date for d in result.days] == [date(2024, 5, 1), date(2024, 5, 2), date(2024, 5, 3)]
    lodging = [v for d in result.days for v in d.visits if v.kind == "lodging"]
    assert [v.destination_id for v in lodging] == ["hotel-booking_day1", "hotel-booking_day2", "hotel-booking_day3"]
    assert {v.split_total_days for v in lodging} == {3}
    assert {v.original_place_id for v in lodging} == {"hotel-booking"}
    assert lodging[0].arrival.isoformat() == "2024-05-01T15:00:00+02:00"
    assert lodging[2].departure.isoformat() == "2024-05-03T11:00:00+02:00"
    assert result.summary.scheduled_visit_count == 3


def test_optimize_keeps_fixed_events_at_their_time():
    tour = {
        "id": "seine-cruise",
        "name": "Seine cruise",
        "location": {"lat": 48.8622, "lon": 2.3050},
        "stay_minutes": 60,
        "arrival_by": "2024-05-01T14:00:00+02:00",
    }
    result = optimize_trip(_request(destinations=[*PARIS_DESTINATIONS, tour]))

    cruise = [v for d in result.days for v in d.visits if v.destination_id == "seine-cruise"]
    assert len(cruise) == 1
    assert cruise[0].kind == "fixed"
    assert cruise[0].arrival.isoformat() == "2024-05-01T14:00:00+02:00"
    assert cruise[0].departure.isoformat() == "2024-05-01T15:00:00+02:00"


def test_optimize_accepts_an_arrival_before_the_day_starts():
    landing = {
        "id": "orly",
        "name": "Orly arrival",
        "location": {"lat": 48.7262, "lon": 2.3652},
        "stay_minutes": 30,
        "arrival_by": "2024-05-01T06:00:00+02:00",
    }
    result = optimize_trip(_request(destinations=[*PARIS_DESTINATIONS, landing]))

    assert result.status == "ok"
    assert result.errors == []
    hotel, orly = result.days[0].visits[:2]
    assert (hotel.destination_id, orly.destination_id) == ("hotel", "orly")
    assert hotel.arrival.isoformat() == "2024-05-01T06:00:00+02:00"
    assert orly.arrival.isoformat() == "2024-05-01T06:00:00+02:00"
    assert orly.departure.isoformat() == "2024-05-01T06:30:00+02:00"


def test_optimize_caps_destinations_fairly():
    result = optimize_trip(_request(max_destinations=2))

    # Each member gets their favourite: alice -> louvre, bob -> eiffel.
    scheduled = {v.destination_id for d in result.days for v in d.visits if v.kind == "visit"}
    assert scheduled == {"louvre", "eiffel"}
    assert sorted(result.dropped_destination_ids) == ["notre-dame", "orsay"]
    dropped_warnings = sorted(w.destination_id for w in result.warnings if w.code == "DESTINATION_DROPPED")
    assert dropped_warnings == ["notre-dame", "orsay"]


def test_optimize_applies_request_overrides():
    result = optimize_trip(_request(settings_overrides={"scheduling": {"include_meals": False}}))
    assert all(d.meals == [] for d in result.days)
    assert result.meta["settings_snapshot"]["overrides_enabled"] is True


def test_optimize_rejects_disallowed_overrides():
    with pytest.raises(ValueError, match="disallowed key"):
        optimize_trip(_request(settings_overrides={"app": {"timezone": "UTC"}}))


def test_optimize_merges_duplicate_destinations():
    duplicate = {**PARIS_DESTINATIONS[0], "id": "louvre-again", "stay_minutes": 150}
    result = optimize_trip(_request(destinations=[*PARIS_DESTINATIONS, duplicate]))

    scheduled = [v.destination_id for d in result.days for v in d.visits if v.kind == "visit"]
    assert "louvre" not in scheduled
    assert scheduled.count("louvre-again") == 1
