"""
Shared scoring utilities.

This module contains small, reusable helpers used across the engine:
- `clamp01` / `clamp`: keep values within a range for stable output
- `normalize_weights`: convert arbitrary non-negative weights into a 1.0-summing distribution
- `composite_route_score`: the fairness/quantity objective used by the route selector
- `optimization_score`: a 0..100 report card for a finished itinerary
"""

from __future__ import annotations

from dataclasses import dataclass

from tripweaver.domain.models import DailySchedule


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(x)))


def clamp01(x: float) -> float:
    """Clamp a number into the [0.0, 1.0] range."""
    return clamp(x, 0.0, 1.0)


def normalize_weights(weights: dict[str, float]) -> dict[str, float]:
    """Normalize a dict of weights so they sum to 1.0 (non-negative)."""
    cleaned = {k: max(0.0, float(v)) for k, v in weights.items()}
    total = sum(cleaned.values())
    if total <= 0:
        return {k: 1.0 / len(weights) for k in weights}
    return {k: v / total for k, v in cleaned.items()}


def composite_route_score(fairness: float, quantity: float, weights: dict[str, float]) -> float:
    w = normalize_weights(weights)
    return clamp01(fairness) * w.get("fairness", 0.0) + clamp01(quantity) * w.get("quantity", 0.0)


@dataclass(frozen=True)
class OptimizationScore:
    efficiency: float
    fairness: float
    feasibility: float
    total: float

    def as_dict(self) -> dict[str, float]:
        return {
            "efficiency": self.efficiency,
            "fairness": self.fairness,
            "feasibility": self.feasibility,
            "total": self.total,
        }


def optimization_score(
    days: list[DailySchedule],
    *,
    fairness_score: float,
    error_count: int,
    warning_count: int,
) -> OptimizationScore:
    """Score a finished itinerary on a 0..100 scale.

    Efficiency is the share of scheduled time spent at destinations rather than in transit.
    """
    travel = sum(d.total_travel_time for d in days)
    visit = sum(d.total_visit_time for d in days)
    efficiency = 100.0 * visit / (visit + travel) if (visit + travel) > 0 else 0.0
    fairness = 100.0 * clamp01(fairness_score)
    feasibility = max(0.0, 100.0 - 20.0 * error_count - 5.0 * warning_count)
    total = (efficiency + fairness + feasibility) / 3
    return OptimizationScore(
        efficiency=round(efficiency, 2),
        fairness=round(fairness, 2),
        feasibility=round(feasibility, 2),
        total=round(total, 2),
    )
