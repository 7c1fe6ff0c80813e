"""Search for departure times that shorten the ride.

Each candidate start hour re-simulates the whole route against the forecast
at the shifted arrival times. Candidates are independent, so they run in a
thread pool; the final ranking is computed only after every candidate has
finished, so the result does not depend on completion order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from ride_timing.models import RiderConfig, RouteSample, WakePreference, WeatherSample
from ride_timing.simulate import SegmentationConfig, SimulationResult, simulate

logger = logging.getLogger(__name__)

SEARCH_HOURS = range(1, 25)
NIGHT_START_HOUR = 23
NIGHT_END_HOUR = 5  # first allowed hour after the night window
SIMULATION_SEGMENTS = 50
# Every downsampled sample pair becomes its own segment during the search
SEARCH_SEGMENTATION = SegmentationConfig(target_length=0.0, min_length=1.0)

MIN_SAVINGS_SECONDS = 120.0
MIN_SAVINGS_FRACTION = 0.015
MAX_CANDIDATES = 3

# Placeholder contributions for concerns scored outside this package
SAFETY_SCORE = 80.0
WEATHER_SCORE = 80.0
DAYLIGHT_SCORE = 100.0
SCORE_WEIGHTS = {"physics": 0.4, "safety": 0.25, "weather": 0.2, "daylight": 0.15}

TAILWIND_THRESHOLD = -2.0  # m/s average headwind
CALM_WIND_THRESHOLD = 2.0  # m/s
HEAT_RISK_TEMPERATURE = 30.0  # °C
COLD_RISK_TEMPERATURE = 5.0  # °C
EARLY_START_HOUR = 6


class CandidateTag(Enum):
    TAILWIND_ASSIST = "tailwind assist"
    CALMER_WINDS = "calmer winds"
    FASTER_CONDITIONS = "faster conditions"
    HEAT_RISK = "heat risk"
    COLD_RISK = "cold risk"
    EARLY_START = "early start"


Rule = tuple[Callable[[datetime, SimulationResult], bool], CandidateTag]

BENEFIT_RULES: list[Rule] = [
    (lambda start, result: result.average_headwind < TAILWIND_THRESHOLD, CandidateTag.TAILWIND_ASSIST),
    (lambda start, result: result.average_headwind < CALM_WIND_THRESHOLD, CandidateTag.CALMER_WINDS),
    (lambda start, result: True, CandidateTag.FASTER_CONDITIONS),
]

TRADEOFF_RULES: list[Rule] = [
    (lambda start, result: result.peak_temperature > HEAT_RISK_TEMPERATURE, CandidateTag.HEAT_RISK),
    (lambda start, result: result.peak_temperature < COLD_RISK_TEMPERATURE, CandidateTag.COLD_RISK),
    (lambda start, result: start.hour < EARLY_START_HOUR, CandidateTag.EARLY_START),
]


def first_match(rules: list[Rule], start: datetime, result: SimulationResult) -> CandidateTag | None:
    """Tag of the first rule whose predicate holds, in table order."""
    for predicate, tag in rules:
        if predicate(start, result):
            return tag
    return None


@dataclass(frozen=True)
class DepartureCandidate:
    start_time: datetime
    result: SimulationResult
    savings: float  # seconds faster than the base departure
    improvement_pct: float
    benefit: CandidateTag
    tradeoff: CandidateTag | None
    score: float

    @property
    def tags(self) -> tuple[CandidateTag, ...]:
        if self.tradeoff is None:
            return (self.benefit,)
        return (self.benefit, self.tradeoff)


def is_allowed_hour(hour: int, wake_preference: WakePreference | None) -> bool:
    """Whether a ride may start at this hour of day.

    Without a preference, starts from 23:00 through 04:59 are excluded. A
    preference replaces that rule with its own window of start hours.
    """
    if wake_preference is not None:
        return hour in wake_preference.allowed_hours
    return NIGHT_END_HOUR <= hour < NIGHT_START_HOUR


def is_meaningful_savings(savings: float, base_duration: float) -> bool:
    if savings > MIN_SAVINGS_SECONDS:
        return True
    return base_duration > 0 and savings / base_duration > MIN_SAVINGS_FRACTION


def candidate_score(improvement_pct: float) -> float:
    """Blend the time savings with the fixed non-physics contributions."""
    physics = 70.0 + 2.0 * improvement_pct
    return (
        SCORE_WEIGHTS["physics"] * physics
        + SCORE_WEIGHTS["safety"] * SAFETY_SCORE
        + SCORE_WEIGHTS["weather"] * WEATHER_SCORE
        + SCORE_WEIGHTS["daylight"] * DAYLIGHT_SCORE
    )


def downsample_route(samples: list[RouteSample], segments: int = SIMULATION_SEGMENTS) -> list[RouteSample]:
    """Keep every n-th sample (and the last) so the route has about `segments` segments."""
    step = max(1, len(samples) // max(1, segments))
    reduced = samples[::step]
    if reduced[-1] is not samples[-1]:
        reduced.append(samples[-1])
    return reduced


def shift_route(samples: list[RouteSample], offset: timedelta) -> list[RouteSample]:
    """Move every timestamped sample by `offset`; untimed samples are left as is."""
    return [s if s.time is None else replace(s, time=s.time + offset) for s in samples]


def simulate_departure(
    route: list[RouteSample],
    forecast: list[WeatherSample],
    rider: RiderConfig,
    start: datetime,
    offset: timedelta = timedelta(0),
) -> SimulationResult:
    """Simulate a downsampled route at search fidelity, shifted by `offset`.

    Pass the route through downsample_route first. Comparing a candidate
    against a baseline simulated the same way keeps the savings free of
    segmentation effects.
    """
    return simulate(shift_route(route, offset), forecast, rider, start_time=start, segmentation=SEARCH_SEGMENTATION)


def _evaluate(
    route: list[RouteSample],
    forecast: list[WeatherSample],
    start: datetime,
    offset: timedelta,
    base_duration: float,
    rider: RiderConfig,
) -> DepartureCandidate | None:
    result = simulate_departure(route, forecast, rider, start, offset)
    if result.is_empty:
        return None

    savings = base_duration - result.total_duration
    logger.debug("Departure %s: %.0f s (%+.0f s)", start.isoformat(), result.total_duration, -savings)
    if not is_meaningful_savings(savings, base_duration):
        return None

    improvement_pct = savings / base_duration * 100.0 if base_duration > 0 else 0.0
    return DepartureCandidate(
        start_time=start,
        result=result,
        savings=savings,
        improvement_pct=improvement_pct,
        benefit=first_match(BENEFIT_RULES, start, result),
        tradeoff=first_match(TRADEOFF_RULES, start, result),
        score=candidate_score(improvement_pct),
    )


def find_better_departures(
    samples: list[RouteSample],
    forecast: list[WeatherSample],
    base_start: datetime,
    base_duration: float,
    rider: RiderConfig,
    wake_preference: WakePreference | None = None,
    max_workers: int | None = None,
) -> list[DepartureCandidate]:
    """Find up to three departure times that are measurably faster.

    Args:
        samples: The route as planned for base_start.
        forecast: Time-ordered hourly forecast.
        base_start: The planned departure.
        base_duration: Simulated duration of the planned departure in seconds.
        rider: Rider configuration; an invalid one yields no candidates.
        wake_preference: Allowed start hours; defaults to the rider's.
        max_workers: Thread pool size.

    Returns:
        Candidates sorted by score (best first), ties broken by earlier start.
    """
    if not rider.is_valid:
        logger.warning("Skipping departure search: rider needs positive FTP and weight")
        return []
    if len(samples) < 2:
        return []

    preference = wake_preference or rider.wake_preference
    offsets = [timedelta(hours=h) for h in SEARCH_HOURS]
    offsets = [o for o in offsets if is_allowed_hour((base_start + o).hour, preference)]
    if not offsets:
        return []

    route = downsample_route(samples)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(_evaluate, route, forecast, base_start + o, o, base_duration, rider)
            for o in offsets
        ]
        evaluated = [f.result() for f in futures]

    candidates = [c for c in evaluated if c is not None]
    candidates.sort(key=lambda c: (-c.score, c.start_time))
    logger.debug("%d of %d departures beat the planned start", len(candidates), len(offsets))
    return candidates[:MAX_CANDIDATES]
