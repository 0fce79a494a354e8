from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Protocol

"""
Geospatial helpers.

We keep a tiny geometry layer here so routing and transport code can do distance
calculations without pulling in heavier GIS dependencies.
"""

EARTH_RADIUS_KM = 6371.0


class HasLatLon(Protocol):
    lat: float
    lon: float


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


def haversine_km(a: HasLatLon, b: HasLatLon) -> float:
    """Compute great-circle distance in kilometers between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(1.0, h)))


def centroid(points: list[HasLatLon]) -> GeoPoint:
    """Arithmetic mean of coordinates (good enough for clusters a few dozen km wide)."""
    if not points:
        raise ValueError("centroid() requires at least one point")
    return GeoPoint(
        lat=sum(p.lat for p in points) / len(points),
        lon=sum(p.lon for p in points) / len(points),
    )


def rounded_key(point: HasLatLon, digits: int = 4) -> tuple[float, float]:
    """Coordinate key used to detect the same place entered twice."""
    return (round(point.lat, digits), round(point.lon, digits))
