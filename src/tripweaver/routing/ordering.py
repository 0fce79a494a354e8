"""
Route ordering heuristics (greedy TSP).

Endpoints are fixed: the departure is always first and the return location (when distinct)
always last. Only the points in between are reordered.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, TypeVar

from tripweaver.core.geo import HasLatLon, haversine_km
from tripweaver.scoring.composite import clamp01


class RoutePoint(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def location(self) -> HasLatLon: ...


P = TypeVar("P", bound=RoutePoint)


def nearest_neighbor(start: HasLatLon, points: Sequence[P]) -> list[P]:
    """Repeatedly visit the closest unvisited point; the first-seen point wins ties."""
    remaining = list(points)
    ordered: list[P] = []
    current = start
    while remaining:
        best_index = 0
        best_distance = haversine_km(current, remaining[0].location)
        for i in range(1, len(remaining)):
            distance = haversine_km(current, remaining[i].location)
            if distance < best_distance:
                best_index, best_distance = i, distance
        nxt = remaining.pop(best_index)
        ordered.append(nxt)
        current = nxt.location
    return ordered


def order_route(departure: P, destinations: Sequence[P], return_location: P | None = None) -> list[P]:
    """Order a trip: departure, nearest-neighbor middle, then the return point if distinct."""
    end = return_location or departure
    same_endpoint = end.id == departure.id
    if not destinations:
        return [departure] if same_endpoint else [departure, end]

    middle = [d for d in destinations if d.id not in {departure.id, end.id}]
    if len(middle) > 1:
        middle = nearest_neighbor(departure.location, middle)

    route: list[P] = [departure, *middle]
    if not same_endpoint:
        route.append(end)
    return route


def path_distance_km(points: Sequence[HasLatLon]) -> float:
    return sum(haversine_km(a, b) for a, b in zip(points, points[1:]))


@dataclass(frozen=True)
class TwoOptResult:
    improved: bool
    original_distance_km: float
    new_distance_km: float
    improvement_percent: float
    swaps: int


def two_opt_improve(
    start: HasLatLon,
    stops: Sequence[P],
    end: HasLatLon | None = None,
) -> tuple[list[P], TwoOptResult]:
    """First-improvement 2-opt over `stops` with fixed `start` (and optional `end`).

    Routes with fewer than 4 stops are returned unchanged.
    """
    route = list(stops)

    def total(r: Sequence[P]) -> float:
        points: list[HasLatLon] = [start, *(p.location for p in r)]
        if end is not None:
            points.append(end)
        return path_distance_km(points)

    original = total(route)
    if len(route) < 4:
        return route, TwoOptResult(False, original, original, 0.0, 0)

    swaps = 0
    improved = True
    while improved:
        improved = False
        current = total(route)
        for i in range(-1, len(route) - 1):
            for j in range(i + 2, len(route) + 1):
                candidate = route[: i + 1] + route[i + 1 : j][::-1] + route[j:]
                if total(candidate) < current - 1e-9:
                    route = candidate
                    swaps += 1
                    improved = True
                    break
            if improved:
                break

    new = total(route)
    percent = (original - new) / original * 100 if original > 0 else 0.0
    return route, TwoOptResult(swaps > 0, original, new, percent, swaps)


def efficiency_score(route: Sequence[HasLatLon]) -> float:
    """1.0 for compact routes, falling linearly to 0 as the average hop approaches 1000 km."""
    if len(route) < 2:
        return 1.0
    average_hop = path_distance_km(route) / (len(route) - 1)
    return clamp01(1 - average_hop / 1000)
