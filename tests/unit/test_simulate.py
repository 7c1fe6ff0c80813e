from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from ride_timing.models import Pacing, RiderConfig, RouteSample, WeatherSample
from ride_timing.simulate import (
    DEFAULT_GRADE,
    SegmentationConfig,
    SimulationResult,
    SimulationUnavailable,
    Terrain,
    segment_power,
    simulate,
    split_segments,
)

BASE_TIME = datetime(2025, 6, 14, 8, 0, 0, tzinfo=timezone.utc)


class TestSplitSegments:
    def test_fixed_length_segments(self, flat_route):
        bounds = split_segments(flat_route)
        assert len(bounds) == 20
        assert bounds[0] == (0, 5)
        assert bounds[-1] == (95, 100)

    def test_trailing_remainder_kept_above_minimum(self, route_builder):
        route = route_builder([(i * 100.0, 0.0) for i in range(24)])  # 2.3 km
        bounds = split_segments(route)
        assert len(bounds) == 5
        assert bounds[-1] == (20, 23)

    def test_trailing_remainder_dropped_below_minimum(self, route_builder):
        route = route_builder([(i * 50.0, 0.0) for i in range(42)])  # 2.05 km
        bounds = split_segments(route)
        assert len(bounds) == 4
        assert bounds[-1] == (30, 40)

    def test_duplicate_samples_never_form_a_segment(self, route_builder):
        route = route_builder([(0.0, 0.0), (0.0, 0.0), (10.0, 0.0), (10.0, 0.0), (20.0, 0.0)])
        bounds = split_segments(route, SegmentationConfig(target_length=0.0, min_length=1.0))
        assert bounds == [(0, 2), (2, 4)]

    def test_too_short(self, route_builder):
        assert split_segments(route_builder([(0.0, 0.0)])) == []


class TestSimulate:
    def test_duration_is_sum_of_segments(self, climbing_out_and_back, calm_forecast, rider):
        result = simulate(climbing_out_and_back, calm_forecast, rider)
        assert result.total_duration == sum(s.duration for s in result.segments)

    def test_segment_distances_cover_route(self, climbing_out_and_back, calm_forecast, rider):
        result = simulate(climbing_out_and_back, calm_forecast, rider)
        assert result.total_distance == pytest.approx(climbing_out_and_back[-1].distance)

    def test_climbing_out_and_back(self, climbing_out_and_back, flat_out_and_back, calm_forecast, rider):
        """Hills at constant power are slower than the flat, and the outbound half is climbing."""
        hilly = simulate(climbing_out_and_back, calm_forecast, rider)
        flat = simulate(flat_out_and_back, calm_forecast, rider)
        assert hilly.total_duration > flat.total_duration
        assert hilly.terrain_breakdown.climbing_distance == pytest.approx(10000, abs=1)
        assert hilly.terrain_breakdown.descending_distance == pytest.approx(10000, abs=1)
        assert hilly.terrain_breakdown.average_climb_grade == pytest.approx(0.03)
        assert hilly.terrain_breakdown.steepest_descent_grade == pytest.approx(-0.03)
        assert flat.terrain_breakdown.flat_distance == pytest.approx(20000, abs=1)

    def test_steep_descent_is_faster_than_flat(self, route_builder, flat_route, calm_forecast, rider):
        points = [(i * 100.0, 0.0) for i in range(51)]
        descent = route_builder(points, elevations=[400.0 - 0.08 * n for n, _ in points])
        result = simulate(descent, calm_forecast, rider)
        assert result.average_speed > 2 * simulate(flat_route, calm_forecast, rider).average_speed
        for segment in result.segments:
            assert segment.grade == pytest.approx(-0.08)
            assert segment.power == pytest.approx(rider.target_power, abs=0.1)

    def test_terrain_tags(self, climbing_out_and_back, calm_forecast, rider):
        result = simulate(climbing_out_and_back, calm_forecast, rider)
        assert result.segments[0].terrain == Terrain.CLIMB
        assert result.segments[-1].terrain == Terrain.DESCENT

    def test_steady_power(self, flat_route, calm_forecast, rider):
        result = simulate(flat_route, calm_forecast, rider)
        for segment in result.segments:
            assert segment.power == pytest.approx(rider.target_power, abs=0.1)
        assert result.power_distribution.average_power == pytest.approx(150.0, abs=0.1)
        assert result.power_distribution.normalized_power == pytest.approx(150.0, abs=0.1)
        assert result.power_distribution.intensity_factor == pytest.approx(0.75, abs=0.001)

    def test_flat_speed(self, flat_route, calm_forecast, rider):
        result = simulate(flat_route, calm_forecast, rider)
        assert 7.5 < result.average_speed < 9.0
        assert result.average_speed == pytest.approx(result.total_distance / result.total_duration)

    def test_zone_distribution(self, flat_route, calm_forecast):
        rider = RiderConfig(ftp=200.0, total_weight=80.0, target_intensity=0.65)
        result = simulate(flat_route, calm_forecast, rider)
        zones = result.power_distribution.zone_seconds
        assert len(zones) == 5
        assert zones[1] == pytest.approx(result.total_duration)
        assert sum(zones) == pytest.approx(result.total_duration)

    def test_energy(self, climbing_out_and_back, calm_forecast, rider):
        result = simulate(climbing_out_and_back, calm_forecast, rider)
        expected = sum(s.power * s.duration for s in result.segments) / 1000
        assert result.total_energy == pytest.approx(expected)

    def test_normalized_power_above_average_when_power_varies(self, route_builder, calm_forecast):
        """Terrain pacing holds FTP up a 5% climb and backs off coming down."""
        points = [(i * 100.0, 0.0) for i in range(51)] + [(5000 - i * 100.0, 0.0) for i in range(1, 51)]
        route = route_builder(points, elevations=[0.05 * n for n, _ in points])
        rider = RiderConfig(ftp=250.0, total_weight=75.0, pacing=Pacing.TERRAIN)
        distribution = simulate(route, calm_forecast, rider).power_distribution
        assert distribution.normalized_power > distribution.average_power

    def test_baseline_comparison(self, flat_route, calm_forecast, rider):
        """150 W on the flat beats a 26.5 km/h baseline."""
        comparison = simulate(flat_route, calm_forecast, rider).baseline_comparison
        assert comparison.baseline_time == pytest.approx(10000 / (26.5 / 3.6))
        assert comparison.improvement_pct > 0
        assert comparison.time_difference < 0
        assert comparison.significant_segments == ()

    def test_significant_segments(self, flat_route, calm_forecast):
        """A very slow baseline differs from every segment by more than a minute."""
        rider = RiderConfig(ftp=200.0, total_weight=80.0, baseline_speed=2.0)
        comparison = simulate(flat_route, calm_forecast, rider).baseline_comparison
        assert comparison.significant_segments == tuple(range(20))

    def test_headwind_slows_the_ride(self, flat_route, forecast_builder, rider):
        calm = simulate(flat_route, forecast_builder(), rider)
        into = simulate(flat_route, forecast_builder(wind_speed=6.0, wind_direction=0.0), rider)
        behind = simulate(flat_route, forecast_builder(wind_speed=6.0, wind_direction=180.0), rider)
        assert into.average_headwind == pytest.approx(6.0, abs=0.01)
        assert behind.average_headwind == pytest.approx(-6.0, abs=0.01)
        assert behind.total_duration < calm.total_duration < into.total_duration

    def test_weather_follows_ride_clock(self, climbing_out_and_back, rider):
        """Samples without times use the clock reached at their segment."""
        forecast = [
            WeatherSample(time=BASE_TIME + timedelta(hours=h), temperature=10.0 + 10 * h, humidity=50.0,
                          wind_speed=0.0, wind_direction=0.0)
            for h in range(4)
        ]
        result = simulate(climbing_out_and_back, forecast, rider, start_time=BASE_TIME)
        assert result.segments[0].temperature == 10.0
        assert result.segments[-1].temperature > 10.0
        assert result.peak_temperature == result.segments[-1].temperature

    def test_sample_times_take_precedence(self, flat_route, rider):
        later = BASE_TIME + timedelta(hours=3)
        timed = [replace(s, time=later) for s in flat_route]
        forecast = [
            WeatherSample(time=BASE_TIME, temperature=10.0, humidity=50.0, wind_speed=0.0, wind_direction=0.0),
            WeatherSample(time=later, temperature=30.0, humidity=50.0, wind_speed=0.0, wind_direction=0.0),
        ]
        result = simulate(timed, forecast, rider, start_time=BASE_TIME)
        assert all(s.temperature == 30.0 for s in result.segments)

    def test_without_start_time_uses_first_forecast_entry(self, flat_route, rider):
        forecast = [
            WeatherSample(time=BASE_TIME, temperature=12.0, humidity=50.0, wind_speed=0.0, wind_direction=0.0),
            WeatherSample(time=BASE_TIME + timedelta(hours=1), temperature=25.0, humidity=50.0,
                          wind_speed=0.0, wind_direction=0.0),
        ]
        result = simulate(flat_route, forecast, rider)
        assert all(s.temperature == 12.0 for s in result.segments)

    def test_empty_forecast_is_calm(self, flat_route, calm_forecast, rider):
        assert simulate(flat_route, [], rider).total_duration == pytest.approx(
            simulate(flat_route, calm_forecast, rider).total_duration
        )

    def test_uniform_grade_from_elevation_gain(self, route_builder, calm_forecast, rider):
        route = route_builder([(i * 100.0, 0.0) for i in range(101)])
        result = simulate(route, calm_forecast, rider, total_elevation_gain=300.0)
        assert all(s.grade == pytest.approx(0.03) for s in result.segments)

    def test_default_grade_without_elevation(self, route_builder, calm_forecast, rider):
        route = route_builder([(i * 100.0, 0.0) for i in range(101)])
        result = simulate(route, calm_forecast, rider)
        assert all(s.grade == DEFAULT_GRADE for s in result.segments)

    def test_grade_is_clamped(self, route_builder, calm_forecast, rider):
        route = route_builder([(i * 100.0, 0.0) for i in range(11)], elevations=[i * 50.0 for i in range(11)])
        result = simulate(route, calm_forecast, rider)
        assert all(s.grade == 0.3 for s in result.segments)

    def test_idempotent(self, climbing_out_and_back, calm_forecast, rider):
        assert simulate(climbing_out_and_back, calm_forecast, rider) == simulate(
            climbing_out_and_back, calm_forecast, rider
        )

    def test_fewer_than_two_samples(self, calm_forecast, rider):
        assert simulate([RouteSample(lat=37.4, lon=-122.1, distance=0.0)], calm_forecast, rider) == (
            SimulationResult.empty()
        )

    @pytest.mark.parametrize("ftp,weight", [(0.0, 80.0), (200.0, 0.0), (-50.0, 80.0)])
    def test_invalid_rider(self, flat_route, calm_forecast, ftp, weight):
        with pytest.raises(SimulationUnavailable):
            simulate(flat_route, calm_forecast, RiderConfig(ftp=ftp, total_weight=weight))

    def test_invalid_rider_checked_before_sample_count(self, calm_forecast):
        with pytest.raises(SimulationUnavailable):
            simulate([], calm_forecast, RiderConfig(ftp=0.0))

    def test_decreasing_distances_rejected(self, flat_route, calm_forecast, rider):
        broken = flat_route[:3] + [replace(flat_route[3], distance=0.0)] + flat_route[4:]
        with pytest.raises(ValueError):
            simulate(broken, calm_forecast, rider)


class TestSegmentPower:
    def test_steady(self, rider):
        assert segment_power(rider, 0.08, 0.0, 1000.0) == rider.target_power

    def test_terrain_pushes_climbs(self):
        rider = RiderConfig(ftp=200.0, pacing=Pacing.TERRAIN)
        assert segment_power(rider, 0.10, 0.0, 200.0) == pytest.approx(230.0)
        assert segment_power(rider, 0.10, 0.0, 500.0) == pytest.approx(210.0)
        assert segment_power(rider, 0.05, 0.0, 500.0) == pytest.approx(200.0)
        assert segment_power(rider, 0.0, 0.0, 500.0) == pytest.approx(150.0)

    def test_terrain_descents(self):
        rider = RiderConfig(ftp=200.0, pacing=Pacing.TERRAIN)
        assert segment_power(rider, -0.05, 5.0, 500.0) == pytest.approx(180.0)
        assert segment_power(rider, -0.05, 0.0, 500.0) == pytest.approx(120.0)
