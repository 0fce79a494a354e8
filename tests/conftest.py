from __future__ import annotations

import copy

import pytest

PAYLOAD = {
    "trip_id": "lyon-day",
    "departure": {"id": "station", "name": "Part-Dieu", "location": {"lat": 45.7605, "lon": 4.8597}},
    "trip_start": "2024-06-10",
    "trip_end": "2024-06-10",
    "timezone": "Europe/Paris",
    "destinations": [
        {"id": "fourviere", "name": "Fourvière", "location": {"lat": 45.7623, "lon": 4.8225}, "stay_minutes": 90},
        {"id": "vieux-lyon", "name": "Vieux Lyon", "location": {"lat": 45.7622, "lon": 4.8271}, "stay_minutes": 120},
        {"id": "parc", "name": "Parc de la Tête d'Or", "location": {"lat": 45.7772, "lon": 4.8553}, "stay_minutes": 60},
    ],
    "preferences": [
        {"user_id": "ana", "destination_id": "fourviere", "rating": 5},
        {"user_id": "ana", "destination_id": "vieux-lyon", "rating": 3},
        {"user_id": "ana", "destination_id": "parc", "rating": 1},
        {"user_id": "ben", "destination_id": "fourviere", "rating": 2},
        {"user_id": "ben", "destination_id": "vieux-lyon", "rating": 4},
        {"user_id": "ben", "destination_id": "parc", "rating": 5},
    ],
}


@pytest.fixture
def payload() -> dict:
    """A small one-day group trip in Lyon (fresh copy per test)."""
    return copy.deepcopy(PAYLOAD)
