"""Route shape classification and apex detection.

Routes are classified by a small decision tree:

1. An end point far from the start makes the route point-to-point.
2. The enclosed area relative to the squared route length separates thin
   routes (retraced sticks) from wide ones (loops).
3. Wide routes that pass back near the start halfway through are figure-8s.
4. Routes in the narrow band between thin and wide are lollipops when a
   retraced stick leads to a wide head, else out-and-backs.

The thresholds are empirically tuned calibration values, not physical
constants, so they live in ShapeThresholds and can be overridden.
"""

import math
from dataclasses import dataclass
from enum import Enum

from ride_timing.distance import coordinate_distance, signed_polygon_area
from ride_timing.models import Coordinate, RouteSample


class RouteShapeKind(Enum):
    POINT_TO_POINT = "point_to_point"
    LOOP = "loop"
    OUT_AND_BACK = "out_and_back"
    LOLLIPOP = "lollipop"
    FIGURE_8 = "figure_8"
    INSUFFICIENT_DATA = "insufficient_data"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    RouteShapeKind.POINT_TO_POINT: "Point-to-point",
    RouteShapeKind.LOOP: "Loop",
    RouteShapeKind.OUT_AND_BACK: "Out-and-back",
    RouteShapeKind.LOLLIPOP: "Lollipop",
    RouteShapeKind.FIGURE_8: "Figure-8",
    RouteShapeKind.INSUFFICIENT_DATA: "Unknown",
}


@dataclass(frozen=True)
class ShapeThresholds:
    min_samples: int = 6
    point_to_point_gap: float = 2000.0  # meters
    point_to_point_gap_fraction: float = 0.15  # of total distance
    max_polygon_points: int = 100
    thin_ratio: float = 0.005  # area / distance² below this is a retraced stick
    wide_ratio: float = 0.02  # above this is a loop or figure-8
    figure8_crossing: float = 500.0  # meters
    lollipop_min_samples: int = 30
    stick_max_gap: float = 300.0  # meters
    head_min_width: float = 800.0  # meters
    apex_min_distance: float = 1000.0  # meters
    apex_scan_start: float = 0.10  # fraction of the index range
    apex_scan_end: float = 0.90


DEFAULT_THRESHOLDS = ShapeThresholds()


@dataclass(frozen=True)
class RouteShape:
    kind: RouteShapeKind
    apex: Coordinate | None = None
    apex_distance: float | None = None  # meters along the route
    apex_index: int | None = None
    area_ratio: float = 0.0
    turnaround_name: str | None = None

    @property
    def has_apex(self) -> bool:
        return self.apex is not None


INSUFFICIENT_DATA = RouteShape(kind=RouteShapeKind.INSUFFICIENT_DATA)


def _at_fraction(samples: list[RouteSample], fraction: float) -> RouteSample:
    return samples[min(len(samples) - 1, int(len(samples) * fraction))]


def _downsample(samples: list[RouteSample], max_points: int) -> list[Coordinate]:
    stride = max(1, math.ceil(len(samples) / max(1, max_points)))
    return [s.coordinate for s in samples[::stride]]


def find_apex(
    samples: list[RouteSample],
    start: Coordinate | None = None,
    thresholds: ShapeThresholds = DEFAULT_THRESHOLDS,
) -> tuple[int, float] | None:
    """Locate the sample farthest from the start.

    Only the middle of the route (10%-90% of the sample indices by default)
    is scanned so GPS jitter near the start or finish of a short loop is not
    mistaken for a turnaround.

    Returns:
        (index, straight-line distance from start) or None when nothing in the
        scan window is farther than apex_min_distance.
    """
    if not samples:
        return None
    origin = start or samples[0].coordinate
    first = int(len(samples) * thresholds.apex_scan_start)
    last = min(len(samples) - 1, int(len(samples) * thresholds.apex_scan_end))

    best_index = None
    best_distance = 0.0
    for i in range(first, last + 1):
        d = coordinate_distance(origin, samples[i].coordinate)
        if d > best_distance:
            best_index = i
            best_distance = d

    if best_index is None or best_distance <= thresholds.apex_min_distance:
        return None
    return best_index, best_distance


def is_lollipop(samples: list[RouteSample], thresholds: ShapeThresholds = DEFAULT_THRESHOLDS) -> bool:
    """A retraced stick (15%/85% close together) with a wide head (40%/60% far apart)."""
    if len(samples) <= thresholds.lollipop_min_samples:
        return False

    stick_gap = coordinate_distance(_at_fraction(samples, 0.15).coordinate, _at_fraction(samples, 0.85).coordinate)
    head_width = coordinate_distance(_at_fraction(samples, 0.40).coordinate, _at_fraction(samples, 0.60).coordinate)
    return stick_gap < thresholds.stick_max_gap and head_width > thresholds.head_min_width


def is_figure8(
    samples: list[RouteSample],
    thresholds: ShapeThresholds = DEFAULT_THRESHOLDS,
    start: Coordinate | None = None,
) -> bool:
    """The route passes back near its start halfway through."""
    origin = start or samples[0].coordinate
    midpoint = samples[len(samples) // 2]
    return coordinate_distance(origin, midpoint.coordinate) < thresholds.figure8_crossing


def classify_route(
    samples: list[RouteSample],
    start: Coordinate | None = None,
    end: Coordinate | None = None,
    thresholds: ShapeThresholds = DEFAULT_THRESHOLDS,
) -> RouteShape:
    """Classify the route's topology and locate its apex.

    Args:
        samples: Route samples with cumulative distances.
        start, end: Optional overrides for the route's endpoints, e.g. the
            planned start when the recorded track begins late.
        thresholds: Calibration values for the decision tree.

    Returns:
        A RouteShape. Routes with too few samples (or no length) return the
        INSUFFICIENT_DATA sentinel.
    """
    if len(samples) < thresholds.min_samples:
        return INSUFFICIENT_DATA

    total = samples[-1].distance - samples[0].distance
    if total <= 0:
        return INSUFFICIENT_DATA

    origin = start or samples[0].coordinate
    finish = end or samples[-1].coordinate

    apex = find_apex(samples, origin, thresholds)
    if apex is None:
        apex_fields = {}
    else:
        index, _ = apex
        apex_fields = {
            "apex": samples[index].coordinate,
            "apex_distance": samples[index].distance - samples[0].distance,
            "apex_index": index,
        }

    gap = coordinate_distance(origin, finish)
    if gap > max(thresholds.point_to_point_gap, thresholds.point_to_point_gap_fraction * total):
        return RouteShape(kind=RouteShapeKind.POINT_TO_POINT, **apex_fields)

    # Traversal direction only flips the sign of the area
    area = abs(signed_polygon_area(_downsample(samples, thresholds.max_polygon_points)))
    ratio = area / (total * total)

    if ratio < thresholds.thin_ratio:
        kind = RouteShapeKind.OUT_AND_BACK
    elif ratio > thresholds.wide_ratio:
        kind = RouteShapeKind.FIGURE_8 if is_figure8(samples, thresholds, origin) else RouteShapeKind.LOOP
    elif is_lollipop(samples, thresholds):
        kind = RouteShapeKind.LOLLIPOP
    else:
        kind = RouteShapeKind.OUT_AND_BACK

    return RouteShape(kind=kind, area_ratio=ratio, **apex_fields)
