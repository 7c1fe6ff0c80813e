from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


@dataclass(frozen=True)
class RouteSample:
    lat: float
    lon: float
    distance: float  # meters from start along the route
    elevation: float | None = None  # meters
    time: datetime | None = None  # planned arrival time

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)


@dataclass(frozen=True)
class WeatherSample:
    time: datetime
    temperature: float  # °C
    humidity: float  # percent (0-100)
    wind_speed: float  # m/s
    wind_direction: float  # degrees the wind blows FROM
    precipitation_probability: float = 0.0  # 0-1


class Units(Enum):
    METRIC = "metric"
    IMPERIAL = "imperial"


class WindTolerance(Enum):
    SENSITIVE = "sensitive"
    MODERATE = "moderate"
    TOLERANT = "tolerant"


class TemperatureTolerance(Enum):
    VERY_SENSITIVE = "very_sensitive"
    PREFERS_WARM = "prefers_warm"
    NEUTRAL = "neutral"
    PREFERS_COOL = "prefers_cool"
    VERY_TOLERANT = "very_tolerant"


class WakePreference(Enum):
    """How early the rider is willing to start. Values are allowed start hours."""
    EARLY_BIRD = "early_bird"
    MODERATE = "moderate"
    NIGHT_OWL = "night_owl"

    @property
    def allowed_hours(self) -> range:
        return _WAKE_HOURS[self]


_WAKE_HOURS = {
    WakePreference.EARLY_BIRD: range(5, 15),
    WakePreference.MODERATE: range(7, 19),
    WakePreference.NIGHT_OWL: range(9, 21),
}


class Pacing(Enum):
    STEADY = "steady"  # hold FTP * target_intensity everywhere
    TERRAIN = "terrain"  # push climbs, recover on descents


@dataclass(frozen=True)
class RiderConfig:
    ftp: float = 200.0  # watts
    total_weight: float = 80.0  # kg (rider + bike + equipment)
    baseline_speed: float = 26.5 / 3.6  # m/s, fixed average speed for the baseline comparison
    target_intensity: float = 0.75  # fraction of FTP held on flat ground
    pacing: Pacing = Pacing.STEADY
    units: Units = Units.METRIC
    wind_tolerance: WindTolerance = WindTolerance.MODERATE
    temperature_tolerance: TemperatureTolerance = TemperatureTolerance.NEUTRAL
    wake_preference: WakePreference | None = None

    @property
    def target_power(self) -> float:
        return self.ftp * self.target_intensity

    @property
    def is_valid(self) -> bool:
        return self.ftp > 0 and self.total_weight > 0
