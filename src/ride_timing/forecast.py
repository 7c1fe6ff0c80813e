"""Hourly weather forecasts: loading, fetching and time lookup."""

import json
import logging
from bisect import bisect_left
from datetime import datetime, timezone
from pathlib import Path

import requests

from ride_timing.models import WeatherSample

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
OPEN_METEO_HOURLY_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "wind_speed_10m",
    "wind_direction_10m",
    "precipitation_probability",
)
MAX_FORECAST_DAYS = 16

# Used when no forecast is available: 15 °C, moderate humidity, still air.
CALM_CONDITIONS = WeatherSample(
    time=datetime(1970, 1, 1, tzinfo=timezone.utc),
    temperature=15.0,
    humidity=50.0,
    wind_speed=0.0,
    wind_direction=0.0,
)


def nearest_weather(forecast: list[WeatherSample], when: datetime | None) -> WeatherSample:
    """Return the forecast entry closest in time to `when`.

    The forecast must be ordered by time. Equidistant entries resolve to the
    earlier one. An empty forecast yields CALM_CONDITIONS, and a missing
    time yields the first entry.
    """
    if not forecast:
        return CALM_CONDITIONS
    if when is None:
        return forecast[0]

    idx = bisect_left(forecast, when, key=lambda w: w.time)
    if idx == 0:
        return forecast[0]
    if idx == len(forecast):
        return forecast[-1]

    before = forecast[idx - 1]
    after = forecast[idx]
    if (when - before.time) <= (after.time - when):
        return before
    return after


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_open_meteo(data: dict) -> list[WeatherSample]:
    """Convert an Open-Meteo hourly response (wind in m/s) to WeatherSamples."""
    hourly = data.get("hourly") or {}
    times = hourly.get("time") or []
    temps = hourly.get("temperature_2m") or []
    humidity = hourly.get("relative_humidity_2m") or []
    wind_speed = hourly.get("wind_speed_10m") or []
    wind_dir = hourly.get("wind_direction_10m") or []
    precip = hourly.get("precipitation_probability") or []

    samples = []
    for i, t in enumerate(times):
        # Open-Meteo reports null for hours beyond a model's horizon
        if i >= len(temps) or temps[i] is None:
            continue
        samples.append(
            WeatherSample(
                time=_parse_time(t),
                temperature=float(temps[i]),
                humidity=float(humidity[i]) if i < len(humidity) and humidity[i] is not None else 50.0,
                wind_speed=float(wind_speed[i]) if i < len(wind_speed) and wind_speed[i] is not None else 0.0,
                wind_direction=float(wind_dir[i]) if i < len(wind_dir) and wind_dir[i] is not None else 0.0,
                precipitation_probability=(
                    float(precip[i]) / 100.0 if i < len(precip) and precip[i] is not None else 0.0
                ),
            )
        )
    return sorted(samples, key=lambda w: w.time)


def parse_forecast_entries(entries: list[dict]) -> list[WeatherSample]:
    """Build WeatherSamples from a list of flat dicts.

    Required keys: time, temperature, wind_speed, wind_direction.
    Optional: humidity (default 50), precipitation_probability (default 0).

    Raises:
        ValueError: If an entry is missing a required key.
    """
    samples = []
    for i, entry in enumerate(entries):
        try:
            samples.append(
                WeatherSample(
                    time=_parse_time(entry["time"]),
                    temperature=float(entry["temperature"]),
                    humidity=float(entry.get("humidity", 50.0)),
                    wind_speed=float(entry["wind_speed"]),
                    wind_direction=float(entry["wind_direction"]),
                    precipitation_probability=float(entry.get("precipitation_probability", 0.0)),
                )
            )
        except KeyError as e:
            raise ValueError(f"Forecast entry {i} is missing {e.args[0]!r}") from e
    return sorted(samples, key=lambda w: w.time)


def load_forecast(path: str | Path) -> list[WeatherSample]:
    """Load a forecast from a JSON file.

    Accepts either a list of flat entries (see parse_forecast_entries) or a
    saved Open-Meteo response with an "hourly" object.
    """
    with Path(path).open() as f:
        data = json.load(f)
    if isinstance(data, dict) and "hourly" in data:
        return parse_open_meteo(data)
    if isinstance(data, list):
        return parse_forecast_entries(data)
    raise ValueError(f"Unrecognized forecast format in {path}")


def fetch_forecast(lat: float, lon: float, hours: int = 48) -> list[WeatherSample]:
    """Fetch an hourly forecast for a location from Open-Meteo.

    Returns:
        Time-ordered WeatherSamples in UTC.

    Raises:
        requests.RequestException: If the request fails.
    """
    days = max(1, min(MAX_FORECAST_DAYS, -(-hours // 24)))
    response = requests.get(
        OPEN_METEO_URL,
        params={
            "latitude": round(lat, 4),
            "longitude": round(lon, 4),
            "hourly": ",".join(OPEN_METEO_HOURLY_FIELDS),
            "wind_speed_unit": "ms",
            "timezone": "UTC",
            "forecast_days": days,
        },
        timeout=30,
    )
    response.raise_for_status()

    samples = parse_open_meteo(response.json())
    logger.debug("Fetched %d forecast hours for %.4f,%.4f", len(samples), lat, lon)
    return samples
