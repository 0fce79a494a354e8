from __future__ import annotations

import random

import pytest

from tripweaver.domain.models import Destination, StandardizedPreference, UserPreference
from tripweaver.fairness.gini import (
    analyze_fairness_distribution,
    calculate_fairness,
    calculate_incremental_fairness,
    gini_coefficient,
)
from tripweaver.fairness.selection import merge_duplicate_destinations, select_round_robin
from tripweaver.preferences.normalize import normalize_preferences


def _sp(user: str, dest: str, score: float, rating: float = 3) -> StandardizedPreference:
    return StandardizedPreference(user_id=user, destination_id=dest, rating=rating, standardized_score=score)


def test_gini_matches_worked_example():
    gini = gini_coefficient([1, 5, 9])
    assert gini == pytest.approx(0.3556, abs=1e-3)
    assert 1 - abs(gini) == pytest.approx(0.644, abs=1e-3)


def test_gini_is_order_independent_and_zero_for_equal_values():
    assert gini_coefficient([9, 1, 5]) == pytest.approx(gini_coefficient([1, 5, 9]))
    assert gini_coefficient([2, 2, 2]) == pytest.approx(0.0)
    assert gini_coefficient([1, -1]) == 0.0
    assert gini_coefficient([4]) == 0.0


def test_gini_and_fairness_stay_in_bounds_for_signed_scores():
    rng = random.Random(7)
    for _ in range(200):
        values = [rng.uniform(-3, 3) for _ in range(rng.randint(2, 6))]
        gini = gini_coefficient(values)
        assert -1.0 <= gini <= 1.0
        assert 0.0 <= 1 - abs(gini) <= 1.0


def test_fairness_from_selection():
    standardized = [
        _sp("a", "x", 1.0),
        _sp("b", "x", 2.0),
        _sp("b", "y", 3.0),
        _sp("c", "y", 6.0),
        _sp("c", "z", 3.0),
    ]
    result = calculate_fairness(["x", "y"], standardized, ["a", "b", "c"])

    # Satisfactions: a=1, b=5, c=6
    assert [s.satisfaction_score for s in result.user_satisfactions] == [1.0, 5.0, 6.0]
    assert result.lowest.user_key == "a"
    assert result.highest.user_key == "c"
    assert result.user_satisfactions[2].selected_destinations == 1
    assert result.user_satisfactions[2].total_destinations == 2
    assert 0.0 <= result.fairness_score <= 1.0


def test_selecting_every_rated_destination_is_perfectly_fair():
    ratings = {
        "ana": [5, 4, 4, 2, 1],
        "ben": [1, 3, 5, 5, 2],
        "cy": [3.5, 2, 4.5, 1, 5],
    }
    prefs = [
        UserPreference(user_id=user, destination_id=dest, rating=rating)
        for user, values in ratings.items()
        for dest, rating in zip("vwxyz", values)
    ]
    standardized = normalize_preferences(prefs).standardized

    # Each member's z-scores cancel out up to float rounding.
    result = calculate_fairness(list("vwxyz"), standardized, list(ratings))

    assert result.gini == 0.0
    assert result.fairness_score == 1.0
    assert gini_coefficient([1e-16, -2e-16, 1e-16]) == 0.0


def test_single_participant_is_perfectly_fair():
    result = calculate_fairness(["x"], [_sp("solo", "x", -1.2)], ["solo"])
    assert result.gini == 0.0
    assert result.fairness_score == 1.0


def test_no_participants_is_perfectly_fair():
    assert calculate_fairness(["x"], [], []).fairness_score == 1.0


def test_incremental_fairness_recommendations():
    standardized = [
        _sp("a", "x", 1.0),
        _sp("a", "y", -1.0),
        _sp("b", "x", -1.0),
        _sp("b", "y", 1.0),
    ]
    add = calculate_incremental_fairness(["x"], ["y"], standardized, ["a", "b"], "add")
    assert add.current_fairness == pytest.approx(1.0)  # totals to 0 -> treated as equal
    assert add.recommendation in {"accept", "reject", "neutral"}
    assert add.fairness_change == pytest.approx(add.new_fairness - add.current_fairness)

    standardized = [_sp("a", "x", 1.0), _sp("b", "y", 1.0), _sp("b", "z", 1.0)]
    better = calculate_incremental_fairness(["y"], ["x"], standardized, ["a", "b"], "add")
    assert better.new_fairness > better.current_fairness
    assert better.recommendation == "accept"

    worse = calculate_incremental_fairness(["x", "y"], ["x"], standardized, ["a", "b"], "remove")
    assert worse.recommendation == "reject"


def test_incremental_fairness_rejects_unknown_action():
    with pytest.raises(ValueError, match="Unknown action"):
        calculate_incremental_fairness([], ["x"], [], [], "swap")  # type: ignore[arg-type]


def test_distribution_analysis_levels_and_recommendations():
    standardized = [
        _sp("a", "x", 0.1),
        _sp("a", "w1", 1.0),
        _sp("a", "w2", 1.0),
        _sp("a", "w3", 1.0),
        _sp("a", "w4", 1.0),
        _sp("b", "x", 5.0),
    ]
    result = calculate_fairness(["x"], standardized, ["a", "b"])
    analysis = analyze_fairness_distribution(result)

    assert analysis.disparity_level == "high"
    assert not analysis.is_balanced
    assert any("preferred by a" in r for r in analysis.recommendations)
    assert any("very few selected" in r for r in analysis.recommendations)

    balanced = analyze_fairness_distribution(calculate_fairness(["x"], [_sp("a", "x", 1), _sp("b", "x", 1)], ["a", "b"]))
    assert balanced.disparity_level == "low"
    assert balanced.is_balanced
    assert balanced.recommendations == []


def test_round_robin_gives_each_member_their_favourite_first():
    standardized = [
        _sp("a", "d1", 1.5),
        _sp("a", "d2", 1.0),
        _sp("b", "d1", 1.2),
        _sp("b", "d3", 1.1),
        _sp("c", "d4", 0.9),
    ]
    picked = select_round_robin(["d1", "d2", "d3", "d4", "d5"], standardized, 3)
    # a -> d1, b -> d3 (d1 taken), c -> d4; output keeps input order.
    assert picked == ["d1", "d3", "d4"]
    assert select_round_robin(["d1", "d2"], standardized, 5) == ["d1", "d2"]


def test_merge_duplicate_destinations_keeps_longest_stay():
    destinations = [
        Destination(id="louvre-1", name="Louvre", location={"lat": 48.86061, "lon": 2.33764}, stay_minutes=90),
        Destination(id="louvre-2", name="louvre ", location={"lat": 48.860612, "lon": 2.337641}, stay_minutes=180),
        Destination(id="orsay", name="Orsay", location={"lat": 48.86, "lon": 2.3266}),
    ]
    kept, aliases = merge_duplicate_destinations(destinations)

    assert [d.id for d in kept] == ["louvre-2", "orsay"]
    assert aliases == {"louvre-1": "louvre-2"}
