"""
Radius clustering of destinations.

Callers may supply their own clusters; when they don't, destinations within
`routing.cluster_radius_km` of an unclustered seed are grouped with it (single pass,
input order). Clusters are then sorted by desirability so the most wanted areas come first.
"""

from __future__ import annotations

from collections import defaultdict

from tripweaver.core.geo import centroid, haversine_km
from tripweaver.domain.models import Destination, DestinationCluster, GeoPoint, StandardizedPreference


def desirability_by_destination(standardized: list[StandardizedPreference]) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for p in standardized:
        totals[p.destination_id] += p.standardized_score
    return dict(totals)


def cluster_destinations(
    destinations: list[Destination],
    standardized: list[StandardizedPreference],
    *,
    radius_km: float,
    default_stay_minutes: int,
) -> list[DestinationCluster]:
    desirability = desirability_by_destination(standardized)
    clustered: set[str] = set()
    clusters: list[DestinationCluster] = []

    for seed in destinations:
        if seed.id in clustered:
            continue
        members = [seed]
        clustered.add(seed.id)
        for other in destinations:
            if other.id in clustered:
                continue
            if haversine_km(seed.location, other.location) <= radius_km:
                members.append(other)
                clustered.add(other.id)

        center = centroid([m.location for m in members])
        clusters.append(
            DestinationCluster(
                id=f"cluster-{len(clusters) + 1}",
                destination_ids=[m.id for m in members],
                center=GeoPoint(lat=center.lat, lon=center.lon),
                total_stay_minutes=sum(
                    m.stay_minutes if m.stay_minutes is not None else default_stay_minutes for m in members
                ),
                total_desirability=sum(desirability.get(m.id, 0.0) for m in members),
            )
        )

    clusters.sort(key=lambda c: (-c.total_desirability, c.id))
    return clusters
