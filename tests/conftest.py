import math
from datetime import datetime, timedelta, timezone

import pytest

from ride_timing.distance import EARTH_RADIUS_M, cumulative_distances
from ride_timing.models import Coordinate, RiderConfig, RouteSample, WeatherSample

ORIGIN_LAT = 37.40
ORIGIN_LON = -122.10
BASE_TIME = datetime(2025, 6, 14, 8, 0, 0, tzinfo=timezone.utc)


def offset(north: float, east: float) -> Coordinate:
    """Coordinate `north` and `east` meters from the test origin."""
    lat = ORIGIN_LAT + math.degrees(north / EARTH_RADIUS_M)
    lon = ORIGIN_LON + math.degrees(east / (EARTH_RADIUS_M * math.cos(math.radians(ORIGIN_LAT))))
    return Coordinate(lat, lon)


def build_route(points, elevations=None, times=None) -> list[RouteSample]:
    """RouteSamples from (north, east) meter offsets."""
    coords = [offset(n, e) for n, e in points]
    distances = cumulative_distances(coords)
    return [
        RouteSample(
            lat=c.lat,
            lon=c.lon,
            distance=d,
            elevation=elevations[i] if elevations is not None else None,
            time=times[i] if times is not None else None,
        )
        for i, (c, d) in enumerate(zip(coords, distances))
    ]


@pytest.fixture
def route_builder():
    return build_route


@pytest.fixture
def rider():
    return RiderConfig(ftp=200.0, total_weight=80.0)


@pytest.fixture
def out_and_back_route():
    """200 samples: 5 km north and back along the same line."""
    out = [(i * 5000 / 99, 0.0) for i in range(100)]
    back = [(5000 - i * 5000 / 99, 0.0) for i in range(100)]
    return build_route(out + back)


@pytest.fixture
def loop_route():
    """100 samples around a 1 km radius circle."""
    return build_route(
        [(1000 * math.sin(2 * math.pi * i / 100), 1000 * math.cos(2 * math.pi * i / 100)) for i in range(100)]
    )


@pytest.fixture
def lollipop_route():
    """3 km stick north, a 1.5 km diameter loop, and back down the stick 10 m over."""
    stick = [(i * 50.0, 0.0) for i in range(61)]
    head = []
    for k in range(1, 95):
        angle = -math.pi / 2 + 2 * math.pi * k / 94
        head.append((3750 + 750 * math.sin(angle), 750 * math.cos(angle)))
    back = [(3000 - m * 50.0, 10.0) for m in range(1, 61)]
    return build_route(stick + head + back)


@pytest.fixture
def figure8_route():
    """Two 1 km radius loops meeting at the start, north loop first."""
    points = []
    for k in range(100):
        angle = -math.pi / 2 + 2 * math.pi * k / 100
        points.append((1000 + 1000 * math.sin(angle), 1000 * math.cos(angle)))
    for k in range(101):
        angle = math.pi / 2 + 2 * math.pi * k / 100
        points.append((-1000 + 1000 * math.sin(angle), 1000 * math.cos(angle)))
    return build_route(points)


@pytest.fixture
def point_to_point_route():
    """10 km due north in 200 m steps."""
    return build_route([(i * 200.0, 0.0) for i in range(51)])


@pytest.fixture
def flat_route():
    """10 km due north in 100 m steps at sea level."""
    points = [(i * 100.0, 0.0) for i in range(101)]
    return build_route(points, elevations=[0.0] * len(points))


@pytest.fixture
def climbing_out_and_back():
    """20 km out-and-back in 100 m steps: 3% up on the way out, 3% down on the way back."""
    out = [(i * 100.0, 0.0) for i in range(101)]
    back = [(10000 - m * 100.0, 0.0) for m in range(1, 101)]
    points = out + back
    return build_route(points, elevations=[0.03 * n for n, _ in points])


@pytest.fixture
def flat_out_and_back():
    """Same geometry as climbing_out_and_back without any elevation change."""
    out = [(i * 100.0, 0.0) for i in range(101)]
    back = [(10000 - m * 100.0, 0.0) for m in range(1, 101)]
    points = out + back
    return build_route(points, elevations=[0.0] * len(points))


def make_forecast(hours: int = 48, start: datetime = BASE_TIME, **overrides) -> list[WeatherSample]:
    """Hourly forecast with identical conditions every hour."""
    values = {"temperature": 15.0, "humidity": 50.0, "wind_speed": 0.0, "wind_direction": 0.0}
    values.update(overrides)
    return [WeatherSample(time=start + timedelta(hours=h), **values) for h in range(hours)]


@pytest.fixture
def calm_forecast():
    return make_forecast()


@pytest.fixture
def coordinate_at():
    return offset


@pytest.fixture
def forecast_builder():
    return make_forecast
