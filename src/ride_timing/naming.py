"""Turnaround naming against a pluggable reverse geocoder.

The resolver is looked up for a few samples just before the apex (the road
the rider arrives on) and a few samples around the apex. Names seen on the
way in are removed so the turnaround is named after where the route turns,
not the road leading there. The most specific remaining name wins.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from ride_timing.models import Coordinate, RouteSample

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 3

_HIGHWAY_RE = re.compile(
    r"\b(highway|hwy|freeway|motorway|interstate|route|rte|state route|sr|us|i|ca|a|b|m|n|d)[\s-]*\d+\b"
    r"|^\d+$",
    re.IGNORECASE,
)
_TRAIL_RE = re.compile(r"\b(trail|path|greenway|bikeway|cycleway|towpath|track)\b", re.IGNORECASE)
_PARK_RE = re.compile(r"\b(park|forest|preserve|reserve|woods|garden|gardens|recreation area)\b", re.IGNORECASE)

HIGHWAY, TRAIL, PARK, STREET = range(4)


@dataclass(frozen=True)
class PlaceName:
    street: str | None = None
    point_of_interest: str | None = None
    locality: str | None = None


class NameResolver(Protocol):
    def resolve(self, coordinate: Coordinate) -> PlaceName | None:
        ...


def specificity(name: str) -> int:
    """Rank a place name: route numbers < trails < parks < plain street names."""
    if _HIGHWAY_RE.search(name):
        return HIGHWAY
    if _TRAIL_RE.search(name):
        return TRAIL
    if _PARK_RE.search(name):
        return PARK
    return STREET


def most_specific(candidates: list[str]) -> str | None:
    """Highest specificity wins; earlier candidates win ties."""
    best = None
    best_score = -1
    for name in candidates:
        score = specificity(name)
        if score > best_score:
            best = name
            best_score = score
    return best


def _lookup(resolver: NameResolver, sample: RouteSample) -> PlaceName | None:
    try:
        return resolver.resolve(sample.coordinate)
    except Exception as e:
        logger.warning("Name lookup failed at %.5f,%.5f: %s", sample.lat, sample.lon, e)
        return None


def _collect(places: list[PlaceName | None]) -> tuple[dict[str, None], dict[str, None]]:
    names: dict[str, None] = {}
    localities: dict[str, None] = {}
    for place in places:
        if place is None:
            continue
        for name in (place.street, place.point_of_interest):
            if name and name.strip():
                names.setdefault(name.strip(), None)
        if place.locality and place.locality.strip():
            localities.setdefault(place.locality.strip(), None)
    return names, localities


def resolve_turnaround_name(
    samples: list[RouteSample],
    apex_index: int | None,
    resolver: NameResolver | None,
    window: int = DEFAULT_WINDOW,
) -> str | None:
    """Name the route's turnaround, or None when nothing resolves.

    Never raises: resolver errors are logged and treated as no name.
    """
    if resolver is None or apex_index is None or not samples:
        return None
    if not 0 <= apex_index < len(samples):
        return None

    window = max(1, window)
    half = window // 2
    apex_lo = max(0, apex_index - half)
    apex_hi = min(len(samples), apex_index + half + 1)
    incoming_lo = max(0, apex_lo - window)

    apex_names, apex_localities = _collect([_lookup(resolver, s) for s in samples[apex_lo:apex_hi]])
    incoming_names, _ = _collect([_lookup(resolver, s) for s in samples[incoming_lo:apex_lo]])

    candidates = [n for n in apex_names if n not in incoming_names] or list(apex_names)
    name = most_specific(candidates)
    if name is None and apex_localities:
        name = next(iter(apex_localities))

    logger.debug("Turnaround candidates %s -> %s", candidates, name)
    return name
