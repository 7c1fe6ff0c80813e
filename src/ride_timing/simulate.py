"""Segment-by-segment ride simulation at a target power.

The route is cut into segments of roughly fixed length. Each segment gets
a grade, averaged weather, and a headwind component along its bearing;
the speed solver turns the rider's target power into a speed and the
speed into a duration. Route-level metrics are aggregated from segments
only, so totals always agree with the per-segment values.
"""

from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import numpy as np

from ride_timing.distance import calculate_bearing
from ride_timing.forecast import nearest_weather
from ride_timing.models import Pacing, RiderConfig, RouteSample, WeatherSample
from ride_timing.physics import (
    air_density,
    calculate_grade,
    headwind_component,
    required_power,
    solve_speed,
    MAX_GRADE,
)

DEFAULT_GRADE = 0.005  # used when the route has no elevation information at all
TERRAIN_GRADE_THRESHOLD = 0.02  # ±2% separates climbs and descents from flat
SIGNIFICANT_SEGMENT_SECONDS = 60.0
MIN_BASELINE_SPEED = 0.1  # m/s
LENGTH_TOLERANCE = 1e-3  # meters, absorbs rounding in coordinates and cumulative distances

# Upper bounds of power zones 1-4 as a fraction of FTP; zone 5 is above.
ZONE_BOUNDARIES = (0.55, 0.75, 0.90, 1.05)


class SimulationUnavailable(ValueError):
    """Raised when the rider configuration cannot drive a power simulation."""


@dataclass(frozen=True)
class SegmentationConfig:
    target_length: float = 500.0  # meters
    min_length: float = 100.0  # meters; shorter trailing remainders are dropped


DEFAULT_SEGMENTATION = SegmentationConfig()


class Terrain(Enum):
    CLIMB = "climb"
    DESCENT = "descent"
    FLAT = "flat"

    @classmethod
    def from_grade(cls, grade: float) -> "Terrain":
        if grade > TERRAIN_GRADE_THRESHOLD:
            return cls.CLIMB
        if grade < -TERRAIN_GRADE_THRESHOLD:
            return cls.DESCENT
        return cls.FLAT


@dataclass(frozen=True)
class Segment:
    start: RouteSample
    end: RouteSample
    distance: float  # meters
    grade: float  # decimal, clamped to ±0.3
    headwind: float  # m/s, positive = headwind
    temperature: float  # °C
    humidity: float  # percent
    speed: float  # m/s
    duration: float  # seconds
    power: float  # watts
    terrain: Terrain


@dataclass(frozen=True)
class PowerDistribution:
    average_power: float  # watts, time weighted
    normalized_power: float  # watts, per-segment approximation
    intensity_factor: float  # normalized_power / FTP
    zone_seconds: tuple[float, float, float, float, float]


@dataclass(frozen=True)
class TerrainBreakdown:
    flat_distance: float
    climbing_distance: float
    descending_distance: float
    average_climb_grade: float
    average_descent_grade: float  # magnitude
    steepest_climb_grade: float
    steepest_descent_grade: float  # most negative grade seen


@dataclass(frozen=True)
class BaselineComparison:
    """Power-based time versus riding every segment at a fixed average speed."""
    baseline_time: float  # seconds
    simulated_time: float  # seconds
    significant_segments: tuple[int, ...]  # indices differing by > 60 s

    @property
    def time_difference(self) -> float:
        return self.simulated_time - self.baseline_time

    @property
    def improvement_pct(self) -> float:
        if self.baseline_time <= 0:
            return 0.0
        return (self.baseline_time - self.simulated_time) / self.baseline_time * 100.0


@dataclass(frozen=True)
class SimulationResult:
    segments: tuple[Segment, ...]
    total_duration: float  # seconds, always the sum of segment durations
    average_speed: float  # m/s
    total_energy: float  # kJ
    power_distribution: PowerDistribution
    terrain_breakdown: TerrainBreakdown
    baseline_comparison: BaselineComparison
    average_headwind: float  # m/s, mean over segments
    peak_temperature: float  # °C, warmest segment

    @property
    def total_distance(self) -> float:
        return sum(s.distance for s in self.segments)

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @classmethod
    def empty(cls) -> "SimulationResult":
        return cls(
            segments=(),
            total_duration=0.0,
            average_speed=0.0,
            total_energy=0.0,
            power_distribution=PowerDistribution(0.0, 0.0, 0.0, (0.0, 0.0, 0.0, 0.0, 0.0)),
            terrain_breakdown=TerrainBreakdown(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
            baseline_comparison=BaselineComparison(0.0, 0.0, ()),
            average_headwind=0.0,
            peak_temperature=0.0,
        )


def split_segments(
    samples: list[RouteSample], config: SegmentationConfig = DEFAULT_SEGMENTATION
) -> list[tuple[int, int]]:
    """Partition sample indices into (start, end) pairs.

    Consecutive samples are accumulated until the segment reaches the target
    length. Whatever is left at the end of the route becomes a final segment
    only if it reaches the minimum length.
    """
    bounds: list[tuple[int, int]] = []
    if len(samples) < 2:
        return bounds

    min_length = max(config.min_length, 0.0)
    start = 0
    for i in range(1, len(samples)):
        length = samples[i].distance - samples[start].distance
        if length > 0 and length + LENGTH_TOLERANCE >= max(config.target_length, min_length):
            bounds.append((start, i))
            start = i

    last = len(samples) - 1
    if start < last:
        remainder = samples[last].distance - samples[start].distance
        if remainder > 0 and remainder + LENGTH_TOLERANCE >= min_length:
            bounds.append((start, last))

    return bounds


class _ElevationProfile:
    """Nearest-sample elevation lookup by distance along the route."""

    def __init__(self, samples: list[RouteSample]):
        elevated = [s for s in samples if s.elevation is not None]
        self.distances = [s.distance for s in elevated]
        self.elevations = [s.elevation for s in elevated]

    def __bool__(self) -> bool:
        return bool(self.distances)

    def elevation_at(self, distance: float) -> float:
        idx = bisect_left(self.distances, distance)
        if idx == 0:
            return self.elevations[0]
        if idx == len(self.distances):
            return self.elevations[-1]
        before = self.distances[idx - 1]
        after = self.distances[idx]
        if distance - before <= after - distance:
            return self.elevations[idx - 1]
        return self.elevations[idx]


def segment_power(rider: RiderConfig, grade: float, headwind: float, distance: float) -> float:
    """Target power (W) for a segment under the rider's pacing strategy.

    Steady pacing holds FTP * target_intensity everywhere. Terrain pacing
    pushes climbs toward threshold, keeps pedaling into a headwind on
    descents, and backs off on other descents.
    """
    base = rider.target_power
    if rider.pacing is Pacing.STEADY:
        return base

    ftp = rider.ftp
    if grade < -0.03 and headwind > 3.0:
        power = ftp * 0.90
    elif grade > 0.08:
        power = ftp * 1.15 if distance < 300 else ftp * 1.05
    elif grade > 0.035:
        power = ftp
    elif grade > -0.03:
        power = base
    else:
        power = base * 0.8
    return min(power, ftp * 1.25)


def _check_route(samples: list[RouteSample]) -> None:
    for prev, curr in zip(samples, samples[1:]):
        if curr.distance < prev.distance:
            raise ValueError(
                f"Route distances must be non-decreasing ({prev.distance:.1f} m then {curr.distance:.1f} m)"
            )


def simulate(
    samples: list[RouteSample],
    forecast: list[WeatherSample],
    rider: RiderConfig,
    start_time: datetime | None = None,
    total_elevation_gain: float | None = None,
    segmentation: SegmentationConfig = DEFAULT_SEGMENTATION,
) -> SimulationResult:
    """Simulate riding the route at the rider's target power.

    Weather for each sample is the forecast entry nearest to the sample's own
    time. Samples without a time use the clock reached by the simulation at
    the start of their segment (start_time plus elapsed duration), or the
    first forecast entry when no start_time is given.

    Grades come from the route's elevations when any sample has one, else
    from total_elevation_gain spread uniformly, else a gentle default.

    Raises:
        SimulationUnavailable: If FTP or weight is not positive.
        ValueError: If sample distances decrease.
    """
    if not rider.is_valid:
        raise SimulationUnavailable(
            f"Power simulation needs positive FTP and weight (got {rider.ftp} W, {rider.total_weight} kg)"
        )
    if len(samples) < 2:
        return SimulationResult.empty()
    _check_route(samples)

    bounds = split_segments(samples, segmentation)
    if not bounds:
        return SimulationResult.empty()

    profile = _ElevationProfile(samples)
    route_length = samples[-1].distance - samples[0].distance
    if profile:
        uniform_grade = None
    elif total_elevation_gain is not None and route_length > 0:
        uniform_grade = max(-MAX_GRADE, min(MAX_GRADE, total_elevation_gain / route_length))
    else:
        uniform_grade = DEFAULT_GRADE

    segments: list[Segment] = []
    clock = start_time
    for i, j in bounds:
        start, end = samples[i], samples[j]
        distance = end.distance - start.distance

        if uniform_grade is None:
            grade = calculate_grade(profile.elevation_at(start.distance), profile.elevation_at(end.distance), distance)
        else:
            grade = uniform_grade

        weathers = [nearest_weather(forecast, s.time if s.time is not None else clock) for s in samples[i:j + 1]]
        temperature = sum(w.temperature for w in weathers) / len(weathers)
        humidity = sum(w.humidity for w in weathers) / len(weathers)
        bearing = calculate_bearing(start.lat, start.lon, end.lat, end.lon)
        headwind = sum(headwind_component(w.wind_speed, w.wind_direction, bearing) for w in weathers) / len(weathers)

        target = segment_power(rider, grade, headwind, distance)
        speed = solve_speed(target, grade, headwind, temperature, humidity, rider.total_weight)
        duration = distance / speed
        power = required_power(speed, grade, headwind, air_density(temperature, humidity), rider.total_weight)

        segments.append(
            Segment(
                start=start,
                end=end,
                distance=distance,
                grade=grade,
                headwind=headwind,
                temperature=temperature,
                humidity=humidity,
                speed=speed,
                duration=duration,
                power=power,
                terrain=Terrain.from_grade(grade),
            )
        )
        if clock is not None:
            clock = clock + timedelta(seconds=duration)

    return _aggregate(segments, rider)


def _aggregate(segments: list[Segment], rider: RiderConfig) -> SimulationResult:
    total_duration = sum(s.duration for s in segments)
    total_distance = sum(s.distance for s in segments)

    return SimulationResult(
        segments=tuple(segments),
        total_duration=total_duration,
        average_speed=total_distance / total_duration if total_duration > 0 else 0.0,
        total_energy=calculate_total_energy(segments),
        power_distribution=calculate_power_distribution(segments, rider.ftp),
        terrain_breakdown=calculate_terrain_breakdown(segments),
        baseline_comparison=compare_with_baseline(segments, rider.baseline_speed),
        average_headwind=sum(s.headwind for s in segments) / len(segments),
        peak_temperature=max(s.temperature for s in segments),
    )


def calculate_total_energy(segments: list[Segment]) -> float:
    """Mechanical work over the ride in kJ."""
    powers = np.array([s.power for s in segments], dtype=float)
    durations = np.array([s.duration for s in segments], dtype=float)
    return float(np.sum(powers * durations)) / 1000.0


def calculate_power_distribution(segments: list[Segment], ftp: float) -> PowerDistribution:
    """Time in zones, average power, and normalized power.

    Normalized power here is (Σ P⁴·t / Σ t)^¼ over whole segments, a
    simplification of the usual 30-second rolling average definition. It
    reads low when power varies within segments.
    """
    if not segments or ftp <= 0:
        return PowerDistribution(0.0, 0.0, 0.0, (0.0, 0.0, 0.0, 0.0, 0.0))

    powers = np.array([s.power for s in segments], dtype=float)
    durations = np.array([s.duration for s in segments], dtype=float)
    total_time = float(np.sum(durations))
    if total_time <= 0:
        return PowerDistribution(0.0, 0.0, 0.0, (0.0, 0.0, 0.0, 0.0, 0.0))

    zones = np.digitize(powers / ftp, ZONE_BOUNDARIES)
    zone_seconds = np.bincount(zones, weights=durations, minlength=len(ZONE_BOUNDARIES) + 1)

    average_power = float(np.sum(powers * durations)) / total_time
    normalized_power = (float(np.sum(powers ** 4 * durations)) / total_time) ** 0.25

    return PowerDistribution(
        average_power=average_power,
        normalized_power=normalized_power,
        intensity_factor=normalized_power / ftp,
        zone_seconds=tuple(float(z) for z in zone_seconds),
    )


def calculate_terrain_breakdown(segments: list[Segment]) -> TerrainBreakdown:
    flat = climb = descend = 0.0
    climb_grades: list[float] = []
    descent_grades: list[float] = []
    steepest_climb = 0.0
    steepest_descent = 0.0

    for s in segments:
        if s.terrain is Terrain.CLIMB:
            climb += s.distance
            climb_grades.append(s.grade)
            steepest_climb = max(steepest_climb, s.grade)
        elif s.terrain is Terrain.DESCENT:
            descend += s.distance
            descent_grades.append(abs(s.grade))
            steepest_descent = min(steepest_descent, s.grade)
        else:
            flat += s.distance

    return TerrainBreakdown(
        flat_distance=flat,
        climbing_distance=climb,
        descending_distance=descend,
        average_climb_grade=sum(climb_grades) / len(climb_grades) if climb_grades else 0.0,
        average_descent_grade=sum(descent_grades) / len(descent_grades) if descent_grades else 0.0,
        steepest_climb_grade=steepest_climb,
        steepest_descent_grade=steepest_descent,
    )


def compare_with_baseline(segments: list[Segment], baseline_speed: float) -> BaselineComparison:
    speed = max(MIN_BASELINE_SPEED, baseline_speed)
    baseline_durations = [s.distance / speed for s in segments]
    significant = tuple(
        i for i, (s, base) in enumerate(zip(segments, baseline_durations))
        if abs(s.duration - base) > SIGNIFICANT_SEGMENT_SECONDS
    )
    return BaselineComparison(
        baseline_time=sum(baseline_durations),
        simulated_time=sum(s.duration for s in segments),
        significant_segments=significant,
    )
