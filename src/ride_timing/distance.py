"""Great-circle distance, bearing and planar area helpers.

Haversine on a fixed-radius sphere is accurate enough for cycling routes
(< 0.5% error at typical distances). The polygon area uses an
equirectangular projection, which is only meaningful for routes spanning
a few tens of kilometers; callers use it as a ratio against the squared
route length so the projection error cancels out.
"""

from __future__ import annotations
import math
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from ride_timing.models import Coordinate

# WGS84 equatorial radius in meters
EARTH_RADIUS_M = 6_378_137.0

CARDINAL_DIRECTIONS = (
    "North", "Northeast", "East", "Southeast",
    "South", "Southwest", "West", "Northwest",
)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points using Haversine formula.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    # Rounding can push a a hair above 1 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return EARTH_RADIUS_M * c


def coordinate_distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two Coordinates in meters."""
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate initial bearing from point 1 to point 2.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Bearing in degrees (0-360, where 0=North, 90=East). Identical
        points have no direction and return 0.
    """
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    x = math.sin(dlon) * math.cos(lat2_rad)
    y = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)

    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360


def bearing_to_cardinal(bearing: float) -> str:
    """Map a bearing in degrees to one of eight compass labels."""
    index = int(((bearing % 360) + 22.5) // 45) % 8
    return CARDINAL_DIRECTIONS[index]


def signed_polygon_area(coordinates: list[Coordinate]) -> float:
    """Shoelace area of a closed polygon in square meters.

    Each vertex is projected as (lon * cos(lat), lat) in radians scaled by
    the earth radius. Positive for counter-clockwise traversal, negative for
    clockwise. Fewer than three vertices have no area.
    """
    if len(coordinates) < 3:
        return 0.0

    projected = [
        (
            math.radians(c.lon) * EARTH_RADIUS_M * math.cos(math.radians(c.lat)),
            math.radians(c.lat) * EARTH_RADIUS_M,
        )
        for c in coordinates
    ]

    area = 0.0
    for i, (x1, y1) in enumerate(projected):
        x2, y2 = projected[(i + 1) % len(projected)]
        area += x1 * y2 - x2 * y1
    return area / 2.0


def cumulative_distances(coordinates: Iterable[Coordinate]) -> list[float]:
    """Running haversine distance along a polyline, starting at 0."""
    distances: list[float] = []
    prev = None
    for coord in coordinates:
        if prev is None:
            distances.append(0.0)
        else:
            distances.append(distances[-1] + coordinate_distance(prev, coord))
        prev = coord
    return distances
