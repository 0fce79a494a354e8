from __future__ import annotations

from math import sqrt

import pytest

from tripweaver.domain.models import UserPreference
from tripweaver.preferences.normalize import (
    analyze_normalization_quality,
    compute_user_statistics,
    interpret_standardized_score,
    normalize_preferences,
)


def _prefs(user: str, ratings: list[float]) -> list[UserPreference]:
    return [
        UserPreference(user_id=user, destination_id=f"d{i}", rating=r) for i, r in enumerate(ratings, start=1)
    ]


def test_single_user_ratings_become_z_scores():
    result = normalize_preferences(_prefs("alice", [5, 4, 3]))

    scores = [p.standardized_score for p in result.standardized]
    assert scores == pytest.approx([1.2247, 0.0, -1.2247], abs=1e-3)
    stats = result.statistics["alice"]
    assert stats.mean == pytest.approx(4.0)
    assert stats.std_dev == pytest.approx(sqrt(2 / 3))
    assert result.warnings == []


def test_each_user_has_zero_mean_and_unit_std():
    prefs = _prefs("alice", [5, 1, 3, 4]) + _prefs("bob", [2, 2, 5]) + _prefs("carol", [1, 5])
    result = normalize_preferences(prefs)

    for user in ("alice", "bob", "carol"):
        scores = [p.standardized_score for p in result.standardized if p.user_key == user]
        mean = sum(scores) / len(scores)
        std = sqrt(sum((s - mean) ** 2 for s in scores) / len(scores))
        assert mean == pytest.approx(0.0, abs=1e-9)
        assert std == pytest.approx(1.0, abs=1e-9)


def test_identical_ratings_standardize_to_zero_with_warning():
    result = normalize_preferences(_prefs("dave", [3, 3, 3]))

    assert [p.standardized_score for p in result.standardized] == [0.0, 0.0, 0.0]
    assert result.statistics["dave"].std_dev == 1.0
    assert [w.code for w in result.warnings] == ["IDENTICAL_RATINGS"]


def test_few_ratings_warn_but_still_normalize():
    result = normalize_preferences(_prefs("erin", [5, 1]))

    assert [w.code for w in result.warnings] == ["FEW_RATINGS"]
    assert [p.standardized_score for p in result.standardized] == pytest.approx([1.0, -1.0])


def test_user_key_falls_back_to_session_then_unknown():
    prefs = [
        UserPreference(session_id="s-1", destination_id="a", rating=4),
        UserPreference(destination_id="b", rating=2),
    ]
    result = normalize_preferences(prefs)

    assert set(result.statistics) == {"s-1", "unknown"}
    assert result.standardized[0].user_key == "s-1"


def test_output_keeps_input_order():
    prefs = _prefs("bob", [1, 5]) + _prefs("alice", [5, 1])
    result = normalize_preferences(prefs)
    assert [(p.user_key, p.destination_id) for p in result.standardized] == [
        (p.user_key, p.destination_id) for p in prefs
    ]


def test_compute_user_statistics_requires_input():
    with pytest.raises(ValueError):
        compute_user_statistics([])


def test_quality_report_is_clean_for_well_spread_ratings():
    result = normalize_preferences(_prefs("alice", [5, 4, 3]) + _prefs("bob", [1, 3, 5]))
    quality = analyze_normalization_quality(result.standardized)

    assert quality.is_valid
    assert quality.issues == []


def test_quality_report_flags_single_and_identical_users():
    prefs = _prefs("alice", [5, 4, 3]) + _prefs("bob", [4]) + _prefs("carol", [2, 2, 2])
    quality = analyze_normalization_quality(normalize_preferences(prefs).standardized)

    assert not quality.is_valid
    assert quality.users_with_single_rating == 1
    assert quality.users_with_identical_ratings == 1
    assert quality.as_dict()["users_with_identical_ratings"] == 1


@pytest.mark.parametrize(
    "score, level",
    [(-2.0, "very_low"), (-1.0, "low"), (0.0, "neutral"), (1.0, "high"), (2.0, "very_high")],
)
def test_interpret_standardized_score_bands(score, level):
    assert interpret_standardized_score(score).level == level
