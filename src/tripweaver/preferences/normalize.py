"""
Per-user preference normalization (z-scores).

Group members rate with different habits: one rates everything 4-5, another spreads
1-5. Standardizing each member's ratings against their own mean and standard deviation
makes "this is one of my favourites" comparable across members before fairness is computed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from math import sqrt
from typing import Iterable, Literal

from tripweaver.config.settings import NormalizationSettings
from tripweaver.domain.models import (
    StandardizedPreference,
    UserPreference,
    UserStatistics,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

ScoreLevel = Literal["very_low", "low", "neutral", "high", "very_high"]


@dataclass(frozen=True)
class NormalizationResult:
    standardized: list[StandardizedPreference]
    statistics: dict[str, UserStatistics]
    warnings: list[ValidationIssue] = field(default_factory=list)


@dataclass(frozen=True)
class NormalizationQuality:
    is_valid: bool
    issues: list[str]
    mean_of_scores: float
    std_of_scores: float
    users_with_single_rating: int
    users_with_identical_ratings: int

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "issues": list(self.issues),
            "mean_of_scores": round(self.mean_of_scores, 6),
            "std_of_scores": round(self.std_of_scores, 6),
            "users_with_single_rating": self.users_with_single_rating,
            "users_with_identical_ratings": self.users_with_identical_ratings,
        }


@dataclass(frozen=True)
class ScoreInterpretation:
    level: ScoreLevel
    percentile: int
    description: str


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _population_std(values: list[float], mean: float) -> float:
    if len(values) <= 1:
        return 0.0
    return sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def group_by_user(preferences: Iterable[UserPreference]) -> dict[str, list[UserPreference]]:
    """Group preferences by user key, keeping first-seen user order."""
    grouped: dict[str, list[UserPreference]] = defaultdict(list)
    for pref in preferences:
        grouped[pref.user_key].append(pref)
    return dict(grouped)


def compute_user_statistics(preferences: list[UserPreference]) -> UserStatistics:
    """Mean/std for one user's ratings; a zero std is replaced by 1."""
    if not preferences:
        raise ValueError("compute_user_statistics() requires at least one preference")
    ratings = [float(p.rating) for p in preferences]
    mean = _mean(ratings)
    std = _population_std(ratings, mean)
    return UserStatistics(
        user_key=preferences[0].user_key,
        mean=mean,
        std_dev=std if std > 0 else 1.0,
        count=len(ratings),
    )


def normalize_preferences(
    preferences: list[UserPreference],
    settings: NormalizationSettings | None = None,
) -> NormalizationResult:
    """Convert raw 1-5 ratings into per-user z-scores.

    Output order matches input order. Warnings are returned inline, never raised.
    """
    settings = settings or NormalizationSettings()
    grouped = group_by_user(preferences)

    statistics: dict[str, UserStatistics] = {}
    warnings: list[ValidationIssue] = []
    for key, prefs in grouped.items():
        stats = compute_user_statistics(prefs)
        statistics[key] = stats

        if len(prefs) < settings.min_reliable_ratings:
            warnings.append(
                ValidationIssue(
                    severity="warning",
                    code="FEW_RATINGS",
                    message=(
                        f"User '{key}' has only {len(prefs)} rating(s); "
                        "normalization may be unreliable."
                    ),
                    detail={"user_key": key, "count": len(prefs)},
                )
            )
        if len(prefs) > 1 and len({p.rating for p in prefs}) == 1:
            warnings.append(
                ValidationIssue(
                    severity="warning",
                    code="IDENTICAL_RATINGS",
                    message=f"User '{key}' gave the same rating to every destination.",
                    detail={"user_key": key, "rating": float(prefs[0].rating)},
                )
            )

    standardized = [
        StandardizedPreference(
            **p.model_dump(),
            standardized_score=(float(p.rating) - statistics[p.user_key].mean) / statistics[p.user_key].std_dev,
        )
        for p in preferences
    ]
    if warnings:
        logger.info("Normalized %d preferences with %d warning(s)", len(standardized), len(warnings))
    return NormalizationResult(standardized=standardized, statistics=statistics, warnings=warnings)


def analyze_normalization_quality(
    standardized: list[StandardizedPreference],
    settings: NormalizationSettings | None = None,
) -> NormalizationQuality:
    """Sanity-check the pooled z-score distribution (advisory only)."""
    settings = settings or NormalizationSettings()
    issues: list[str] = []

    grouped: dict[str, list[StandardizedPreference]] = defaultdict(list)
    for p in standardized:
        grouped[p.user_key].append(p)

    single = [k for k, prefs in grouped.items() if len(prefs) == 1]
    identical = [k for k, prefs in grouped.items() if len(prefs) > 1 and len({p.rating for p in prefs}) == 1]
    if single:
        issues.append(f"{len(single)} user(s) have only a single rating")
    if identical:
        issues.append(f"{len(identical)} user(s) gave identical ratings to all destinations")

    scores = [p.standardized_score for p in standardized]
    mean = _mean(scores)
    std = _population_std(scores, mean)
    if scores and abs(mean) > settings.quality_mean_tolerance:
        issues.append(f"Standardized scores mean ({mean:.3f}) deviates from 0")
    # Identical-rating users contribute only zeros, so the pooled std is expected to drop.
    if len(scores) > 1 and not identical and abs(std - 1) > settings.quality_std_tolerance:
        issues.append(f"Standardized scores standard deviation ({std:.3f}) deviates from 1")

    return NormalizationQuality(
        is_valid=not issues,
        issues=issues,
        mean_of_scores=mean,
        std_of_scores=std,
        users_with_single_rating=len(single),
        users_with_identical_ratings=len(identical),
    )


def interpret_standardized_score(score: float) -> ScoreInterpretation:
    """Human-readable band for a z-score (percentiles from the standard normal)."""
    if score < -1.5:
        return ScoreInterpretation("very_low", 7, "Much less interested than usual")
    if score < -0.5:
        return ScoreInterpretation("low", 31, "Less interested than usual")
    if score <= 0.5:
        return ScoreInterpretation("neutral", 50, "About as interested as usual")
    if score <= 1.5:
        return ScoreInterpretation("high", 69, "More interested than usual")
    return ScoreInterpretation("very_high", 93, "One of this member's favourites")
