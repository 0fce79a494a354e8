"""
Group fairness via the Gini coefficient of per-member satisfaction.

A member's satisfaction is the sum of their standardized scores over the selected
destinations they rated. `fairness_score = 1 - |gini|`: 1 means every member is equally
served by the selection, lower means the selection favours some members.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Collection, Iterable, Literal

from tripweaver.config.settings import FairnessSettings
from tripweaver.domain.models import (
    FairnessAnalysis,
    FairnessResult,
    IncrementalFairness,
    StandardizedPreference,
    UserSatisfaction,
)
from tripweaver.scoring.composite import clamp


def gini_coefficient(values: list[float]) -> float:
    """Discrete Gini of `values`, clamped to [-1, 1].

    Standardized scores can be negative, so the raw formula can leave [0, 1]; a total of 0
    (e.g., everyone neutral, or every rated destination selected so each
    member's z-scores cancel out) is treated as perfect equality.
    """
    n = len(values)
    if n <= 1:
        return 0.0
    ordered = sorted(values)
    total = sum(ordered)
    if math.isclose(total, 0.0, abs_tol=1e-9):
        return 0.0
    weighted = sum(rank * v for rank, v in enumerate(ordered, start=1))
    gini = (2 * weighted) / (n * total) - (n + 1) / n
    return clamp(gini, -1.0, 1.0)


def user_satisfactions(
    selected_ids: Collection[str],
    standardized: Iterable[StandardizedPreference],
    user_keys: Iterable[str],
) -> list[UserSatisfaction]:
    selected = set(selected_ids)
    score: dict[str, float] = defaultdict(float)
    picked: dict[str, int] = defaultdict(int)
    rated: dict[str, int] = defaultdict(int)
    for p in standardized:
        key = p.user_key
        rated[key] += 1
        if p.destination_id in selected:
            score[key] += p.standardized_score
            picked[key] += 1

    return [
        UserSatisfaction(
            user_key=key,
            satisfaction_score=score[key],
            selected_destinations=picked[key],
            total_destinations=rated[key],
        )
        for key in sorted(set(user_keys))
    ]


def calculate_fairness(
    selected_ids: Collection[str],
    standardized: Iterable[StandardizedPreference],
    user_keys: Iterable[str],
) -> FairnessResult:
    """Fairness of a destination selection across the participating members."""
    satisfactions = user_satisfactions(selected_ids, standardized, user_keys)
    if not satisfactions:
        return FairnessResult(gini=0.0, fairness_score=1.0)

    ranked = sorted(satisfactions, key=lambda s: (s.satisfaction_score, s.user_key))
    lowest, highest = ranked[0], ranked[-1]
    if len(satisfactions) == 1:
        return FairnessResult(
            gini=0.0,
            fairness_score=1.0,
            user_satisfactions=satisfactions,
            lowest=lowest,
            highest=highest,
        )

    gini = gini_coefficient([s.satisfaction_score for s in satisfactions])
    return FairnessResult(
        gini=gini,
        fairness_score=clamp(1 - abs(gini), 0.0, 1.0),
        user_satisfactions=satisfactions,
        lowest=lowest,
        highest=highest,
    )


def calculate_incremental_fairness(
    current_ids: Collection[str],
    candidate_ids: Collection[str],
    standardized: list[StandardizedPreference],
    user_keys: Collection[str],
    action: Literal["add", "remove"],
    settings: FairnessSettings | None = None,
) -> IncrementalFairness:
    """Fairness before/after adding or removing `candidate_ids` (e.g., one cluster)."""
    settings = settings or FairnessSettings()
    current = list(dict.fromkeys(current_ids))
    if action == "add":
        updated = current + [i for i in candidate_ids if i not in set(current)]
    elif action == "remove":
        removed = set(candidate_ids)
        updated = [i for i in current if i not in removed]
    else:
        raise ValueError(f"Unknown action '{action}', expected 'add' or 'remove'")

    before = calculate_fairness(current, standardized, user_keys).fairness_score
    after = calculate_fairness(updated, standardized, user_keys).fairness_score
    change = after - before
    if change > settings.accept_threshold:
        recommendation = "accept"
    elif change < settings.reject_threshold:
        recommendation = "reject"
    else:
        recommendation = "neutral"
    return IncrementalFairness(
        current_fairness=before,
        new_fairness=after,
        fairness_change=change,
        recommendation=recommendation,
    )


def analyze_fairness_distribution(
    result: FairnessResult,
    settings: FairnessSettings | None = None,
) -> FairnessAnalysis:
    """Classify balance and suggest fixes when the selection is skewed."""
    settings = settings or FairnessSettings()
    score = result.fairness_score
    if score >= settings.low_disparity_threshold:
        level = "low"
    elif score >= settings.medium_disparity_threshold:
        level = "medium"
    else:
        level = "high"

    recommendations: list[str] = []
    if score < settings.balanced_threshold and result.lowest and result.highest:
        lowest, highest = result.lowest, result.highest
        gap = highest.satisfaction_score - lowest.satisfaction_score
        if gap > settings.satisfaction_gap_threshold:
            recommendations.append(f"Consider adding more destinations preferred by {lowest.user_key}")
        if lowest.selected_destinations < settings.low_selection_ratio * lowest.total_destinations:
            recommendations.append(
                f"{lowest.user_key} has very few selected destinations "
                f"({lowest.selected_destinations}/{lowest.total_destinations})"
            )
    if score < settings.severe_threshold:
        recommendations.append("The current selection heavily favors some members over others")
        recommendations.append("Consider manually adjusting the destination selection for better balance")

    return FairnessAnalysis(
        is_balanced=score >= settings.balanced_threshold,
        disparity_level=level,
        recommendations=recommendations,
    )
