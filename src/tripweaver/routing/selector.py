"""
Fairness-aware route selection over destination clusters.

The search is a small portfolio of cheap heuristics rather than an exact solver:

1. desirability-greedy routes seeded from each of the most wanted clusters,
2. a quantity-maximizing route (shortest stays first),
3. a plain nearest-neighbor route,
4. a handful of seeded random shuffles for diversity.

Every candidate is trimmed to the available hours and scored with
`fairness * w_fairness + quantity * w_quantity`. The best feasible candidates then get a
2-opt pass (shorter distance, same selection), and the overall best is returned.
Randomness comes from a `random.Random` seeded from settings, so runs are repeatable.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Collection

from tripweaver.config.settings import Settings
from tripweaver.domain.models import (
    DestinationCluster,
    Endpoint,
    GeoPoint,
    RouteSolution,
    StandardizedPreference,
    TransportSegment,
)
from tripweaver.fairness.gini import calculate_fairness
from tripweaver.routing.ordering import efficiency_score, nearest_neighbor, two_opt_improve
from tripweaver.scoring.composite import composite_route_score
from tripweaver.transport.calculator import plan_hop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Stop:
    id: str
    location: GeoPoint
    cluster: DestinationCluster


@dataclass(frozen=True)
class SelectionResult:
    best: RouteSolution
    candidates_generated: int
    feasible_candidates: int
    two_opt_improvements: int
    early_termination: bool

    def as_dict(self) -> dict:
        return {
            "strategy": self.best.strategy,
            "candidates_generated": self.candidates_generated,
            "feasible_candidates": self.feasible_candidates,
            "two_opt_improvements": self.two_opt_improvements,
            "early_termination": self.early_termination,
        }


class _Evaluator:
    """Scores stop sequences for one selection run (no state shared across runs)."""

    def __init__(
        self,
        *,
        departure: Endpoint,
        return_location: Endpoint | None,
        standardized: list[StandardizedPreference],
        user_keys: Collection[str],
        settings: Settings,
        available_hours: float | None,
        flexible_count: int,
    ) -> None:
        self.departure = departure
        self.end = return_location if return_location and return_location.id != departure.id else None
        self.standardized = standardized
        self.user_keys = list(user_keys)
        self.settings = settings
        self.available_hours = available_hours
        self.flexible_count = flexible_count

    def _segments(self, stops: list[_Stop]) -> list[TransportSegment]:
        points: list[tuple[str, GeoPoint]] = [(self.departure.id, self.departure.location)]
        points += [(s.id, s.location) for s in stops]
        if self.end is not None:
            points.append((self.end.id, self.end.location))
        return [
            plan_hop(a_id, a_loc, b_id, b_loc, self.settings.transport)
            for (a_id, a_loc), (b_id, b_loc) in zip(points, points[1:])
        ]

    def hours(self, stops: list[_Stop]) -> float:
        travel = sum(seg.travel_minutes for seg in self._segments(stops))
        stay = sum(s.cluster.total_stay_minutes for s in stops)
        return (travel + stay) / 60

    def trim(self, stops: list[_Stop]) -> list[_Stop]:
        """Keep the longest prefix of `stops` that fits the available hours."""
        if self.available_hours is None:
            return stops
        kept: list[_Stop] = []
        for stop in stops:
            if self.hours([*kept, stop]) > self.available_hours:
                break
            kept.append(stop)
        return kept

    def evaluate(self, stops: list[_Stop], strategy: str) -> RouteSolution:
        segments = self._segments(stops)
        destination_ids = [d for s in stops for d in s.cluster.destination_ids]
        fairness = calculate_fairness(destination_ids, self.standardized, self.user_keys)
        quantity = len(destination_ids) / self.flexible_count if self.flexible_count else 0.0
        composite = composite_route_score(
            fairness.fairness_score, quantity, dict(self.settings.routing.objective_weights)
        )

        travel_minutes = sum(seg.travel_minutes for seg in segments)
        total_hours = (travel_minutes + sum(s.cluster.total_stay_minutes for s in stops)) / 60
        issues: list[str] = []
        if self.available_hours is not None and total_hours > self.available_hours:
            issues.append(
                f"Route requires {total_hours:.1f} hours but only {self.available_hours:.1f} hours available"
            )
        modes = {seg.mode for seg in segments}
        if "flying" in modes and len(modes) > 2:
            issues.append("Route involves multiple transport mode changes including flights")

        path = [self.departure.location, *(s.location for s in stops)]
        if self.end is not None:
            path.append(self.end.location)
        return RouteSolution(
            strategy=strategy,
            cluster_ids=[s.id for s in stops],
            destination_ids=destination_ids,
            segments=segments,
            total_distance_km=round(sum(seg.distance_km for seg in segments), 3),
            total_time_hours=round(total_hours, 3),
            fairness_score=fairness.fairness_score,
            quantity_score=min(1.0, quantity),
            composite_score=composite,
            efficiency_score=efficiency_score(path),
            member_satisfaction={s.user_key: s.satisfaction_score for s in fairness.user_satisfactions},
            feasible=not issues,
            issues=issues,
        )


def _rank_key(indexed: tuple[int, RouteSolution]) -> tuple[float, float, int]:
    index, solution = indexed
    return (-solution.composite_score, solution.total_distance_km, index)


def _best(solutions: list[RouteSolution]) -> RouteSolution:
    feasible = [(i, s) for i, s in enumerate(solutions) if s.feasible]
    pool = feasible or list(enumerate(solutions))
    return min(pool, key=_rank_key)[1]


def select_route(
    clusters: list[DestinationCluster],
    *,
    departure: Endpoint,
    return_location: Endpoint | None,
    standardized: list[StandardizedPreference],
    user_keys: Collection[str],
    settings: Settings,
    available_hours: float | None = None,
    flexible_count: int | None = None,
) -> SelectionResult:
    """Choose and order clusters to balance group fairness against how much gets visited."""
    routing = settings.routing
    flexible_count = flexible_count if flexible_count is not None else sum(len(c.destination_ids) for c in clusters)
    evaluator = _Evaluator(
        departure=departure,
        return_location=return_location,
        standardized=standardized,
        user_keys=user_keys,
        settings=settings,
        available_hours=available_hours,
        flexible_count=flexible_count,
    )

    if not clusters:
        return SelectionResult(evaluator.evaluate([], "empty"), 0, 0, 0, False)

    stops = [_Stop(id=c.id, location=c.center, cluster=c) for c in clusters]
    if len(stops) == 1:
        only = evaluator.evaluate(evaluator.trim(stops), "single_cluster")
        return SelectionResult(only, 1, int(only.feasible), 0, False)

    # ---- Phase 1: candidate generation ----
    candidates: list[tuple[list[_Stop], RouteSolution]] = []

    def add(route: list[_Stop], strategy: str) -> None:
        trimmed = evaluator.trim(route)
        candidates.append((trimmed, evaluator.evaluate(trimmed, strategy)))

    by_desirability = sorted(stops, key=lambda s: (-s.cluster.total_desirability, s.id))
    for start in by_desirability[: routing.desirability_starts]:
        rest = [s for s in stops if s.id != start.id]
        add([start, *nearest_neighbor(start.location, rest)], "desirability_greedy")

    by_stay = sorted(stops, key=lambda s: (s.cluster.total_stay_minutes, s.id))
    chosen: list[_Stop] = []
    for stop in by_stay:
        attempt = nearest_neighbor(departure.location, [*chosen, stop])
        if evaluator.available_hours is None or evaluator.hours(attempt) <= evaluator.available_hours:
            chosen.append(stop)
    add(nearest_neighbor(departure.location, chosen), "quantity_maximizing")

    add(nearest_neighbor(departure.location, stops), "nearest_neighbor")

    rng = random.Random(routing.random_seed)
    for _ in range(routing.random_explorations):
        if len(candidates) >= routing.max_iterations:
            break
        shuffled = list(stops)
        rng.shuffle(shuffled)
        add(shuffled, "random_exploration")

    solutions = [solution for _, solution in candidates]
    feasible = [s for s in solutions if s.feasible]
    best_feasible = _best(feasible) if feasible else None
    if best_feasible is not None and best_feasible.fairness_score >= routing.early_termination_threshold:
        logger.info(
            "Route selection terminated early: fairness %.3f after %d candidates",
            best_feasible.fairness_score,
            len(solutions),
        )
        return SelectionResult(best_feasible, len(solutions), len(feasible), 0, True)

    # ---- Phase 2: 2-opt on the strongest feasible candidates ----
    ranked = sorted(
        ((i, c) for i, c in enumerate(candidates) if c[1].feasible),
        key=lambda item: _rank_key((item[0], item[1][1])),
    )
    end = evaluator.end.location if evaluator.end is not None else None
    improvements = 0
    for _, (route, solution) in ranked[: routing.top_candidates_to_improve]:
        improved_route, result = two_opt_improve(departure.location, route, end)
        if result.improved:
            improvements += 1
            solutions.append(evaluator.evaluate(improved_route, f"{solution.strategy}+2opt"))

    # ---- Phase 3: pick the best ----
    best = _best(solutions)
    logger.info(
        "Route selection: %d candidates, %d feasible, best=%s fairness=%.3f clusters=%d",
        len(solutions),
        sum(1 for s in solutions if s.feasible),
        best.strategy,
        best.fairness_score,
        len(best.cluster_ids),
    )
    return SelectionResult(
        best,
        len(solutions),
        sum(1 for s in solutions if s.feasible),
        improvements,
        False,
    )
