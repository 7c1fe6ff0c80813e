from datetime import timezone

import gpxpy

from ride_timing.distance import haversine_distance
from ride_timing.models import RouteSample


def parse_gpx(filepath: str) -> list[RouteSample]:
    """Parse a GPX file into RouteSamples with cumulative distances.

    Track points are used when the file has tracks; otherwise route points.
    Consecutive track segments are joined into one route.
    """
    with open(filepath, "r") as f:
        gpx = gpxpy.parse(f)

    raw = [pt for track in gpx.tracks for segment in track.segments for pt in segment.points]
    if not raw:
        raw = [pt for route in gpx.routes for pt in route.points]

    samples: list[RouteSample] = []
    distance = 0.0
    prev = None
    for pt in raw:
        if prev is not None:
            distance += haversine_distance(prev.latitude, prev.longitude, pt.latitude, pt.longitude)
        samples.append(
            RouteSample(
                lat=pt.latitude,
                lon=pt.longitude,
                distance=distance,
                elevation=pt.elevation,
                time=pt.time if pt.time is None or pt.time.tzinfo else pt.time.replace(tzinfo=timezone.utc),
            )
        )
        prev = pt
    return samples


def elevation_gain(samples: list[RouteSample]) -> float:
    """Sum of positive elevation changes between consecutive elevated samples."""
    gain = 0.0
    prev = None
    for s in samples:
        if s.elevation is None:
            continue
        if prev is not None and s.elevation > prev:
            gain += s.elevation - prev
        prev = s.elevation
    return gain
