"""End-to-end ride planning: shape, simulation and departure search."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from ride_timing.cache import ResultCache, calibration_hash, route_fingerprint
from ride_timing.departure import (
    DepartureCandidate,
    downsample_route,
    find_better_departures,
    simulate_departure,
)
from ride_timing.distance import bearing_to_cardinal, calculate_bearing
from ride_timing.models import RiderConfig, RouteSample, WeatherSample
from ride_timing.naming import NameResolver, resolve_turnaround_name
from ride_timing.shape import DEFAULT_THRESHOLDS, RouteShape, ShapeThresholds, classify_route
from ride_timing.simulate import SimulationResult, SimulationUnavailable, simulate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RidePlan:
    shape: RouteShape
    simulation: SimulationResult
    departures: list[DepartureCandidate]
    start_time: datetime | None = None
    apex_direction: str | None = None  # cardinal direction from start to apex
    simulation_available: bool = True
    # Planned start simulated on the same coarse route as the departure candidates
    departure_baseline: float | None = None  # seconds


def describe_route_shape(
    samples: list[RouteSample],
    resolver: NameResolver | None = None,
    cache: ResultCache | None = None,
    thresholds: ShapeThresholds = DEFAULT_THRESHOLDS,
) -> RouteShape:
    """Classify the route and name its turnaround, using the cache when given."""
    fingerprint = None
    if cache is not None and samples:
        fingerprint = route_fingerprint(
            samples[0].coordinate,
            samples[-1].coordinate,
            samples[-1].distance - samples[0].distance,
            calibration_hash(thresholds),
        )
        cached = cache.get(fingerprint)
        if cached is not None:
            logger.debug("Route shape cache hit %s", fingerprint)
            return cached

    shape = classify_route(samples, thresholds=thresholds)
    if shape.apex_index is not None:
        name = resolve_turnaround_name(samples, shape.apex_index, resolver)
        if name:
            shape = replace(shape, turnaround_name=name)

    if fingerprint is not None:
        cache.put(fingerprint, shape)
    return shape


def plan_ride(
    samples: list[RouteSample],
    forecast: list[WeatherSample],
    rider: RiderConfig,
    start_time: datetime | None = None,
    resolver: NameResolver | None = None,
    cache: ResultCache | None = None,
    thresholds: ShapeThresholds = DEFAULT_THRESHOLDS,
    total_elevation_gain: float | None = None,
    max_workers: int | None = None,
) -> RidePlan:
    """Analyze a route for a planned departure.

    The departure search only runs when a start time is given and the
    simulation produced segments. An invalid rider configuration leaves
    the plan without a simulation instead of failing.
    """
    shape = describe_route_shape(samples, resolver, cache, thresholds)

    apex_direction = None
    if shape.apex is not None:
        origin = samples[0]
        apex_direction = bearing_to_cardinal(calculate_bearing(origin.lat, origin.lon, shape.apex.lat, shape.apex.lon))

    try:
        simulation = simulate(samples, forecast, rider, start_time, total_elevation_gain)
    except SimulationUnavailable as e:
        logger.warning("Simulation unavailable: %s", e)
        return RidePlan(
            shape=shape,
            simulation=SimulationResult.empty(),
            departures=[],
            start_time=start_time,
            apex_direction=apex_direction,
            simulation_available=False,
        )

    departures: list[DepartureCandidate] = []
    departure_baseline = None
    if start_time is not None and not simulation.is_empty:
        # Candidates are simulated at search fidelity, so the baseline is too
        baseline = simulate_departure(downsample_route(samples), forecast, rider, start_time)
        departure_baseline = baseline.total_duration
        departures = find_better_departures(
            samples,
            forecast,
            start_time,
            baseline.total_duration,
            rider,
            max_workers=max_workers,
        )

    return RidePlan(
        shape=shape,
        simulation=simulation,
        departures=departures,
        start_time=start_time,
        apex_direction=apex_direction,
        departure_baseline=departure_baseline,
    )
