"""Location helpers used as a scoring input by the matching engine."""

import math
from dataclasses import dataclass
from typing import Iterable, Optional, TypeVar

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


@dataclass(frozen=True)
class Location:
    city: Optional[str] = None
    region: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def calculate_distance(a: Location, b: Location) -> float:
    """Great-circle distance between *a* and *b* in kilometres (haversine)."""
    if not (a.has_coordinates and b.has_coordinates):
        raise ValueError("Both locations need latitude and longitude")

    d_lat = math.radians(b.latitude - a.latitude)  # type: ignore[operator]
    d_lon = math.radians(b.longitude - a.longitude)  # type: ignore[operator]
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude))  # type: ignore[arg-type]
        * math.cos(math.radians(b.latitude))  # type: ignore[arg-type]
        * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def location_score(distance: float, max_distance: float = 100.0) -> float:
    """0..100, decaying linearly from 100 at distance 0 to 0 at *max_distance*."""
    if max_distance <= 0:
        raise ValueError("max_distance must be positive")
    if distance > max_distance:
        return 0.0
    return max(0.0, 100.0 - (distance / max_distance) * 100.0)


def find_nearby(items: Iterable[T], origin: Location, radius: float = 50.0) -> list[T]:
    """Keep items whose ``.location`` lies within *radius* km of *origin*.

    Without origin coordinates nothing can be ruled out, so every item is kept.
    Items without coordinates are dropped otherwise.
    """
    items = list(items)
    if not origin.has_coordinates:
        return items
    return [
        item
        for item in items
        if item.location.has_coordinates  # type: ignore[attr-defined]
        and calculate_distance(origin, item.location) <= radius  # type: ignore[attr-defined]
    ]


def sort_by_proximity(items: Iterable[T], origin: Location) -> list[tuple[T, float]]:
    """Pair items with their distance to *origin*, closest first (unknown = inf)."""
    pairs: list[tuple[T, float]] = []
    for item in items:
        loc: Location = item.location  # type: ignore[attr-defined]
        distance = calculate_distance(origin, loc) if origin.has_coordinates and loc.has_coordinates else math.inf
        pairs.append((item, distance))
    pairs.sort(key=lambda pair: pair[1])
    return pairs
