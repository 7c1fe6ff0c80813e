import argparse
import logging
import sys
from datetime import datetime

import requests

from ride_timing.cache import MemoryResultCache
from ride_timing.config import load_config, rider_config_from_dict, thresholds_from_config
from ride_timing.departure import shift_route
from ride_timing.forecast import fetch_forecast, load_forecast
from ride_timing.formatters import (
    format_distance,
    format_duration,
    format_duration_long,
    format_grade,
    format_speed,
    format_time_diff,
)
from ride_timing.models import Pacing, RiderConfig, Units, WakePreference
from ride_timing.parser import elevation_gain, parse_gpx
from ride_timing.planner import RidePlan, plan_ride

FORECAST_HOURS = 48


def build_parser(rider: RiderConfig | None = None) -> argparse.ArgumentParser:
    """Build argument parser with defaults from the rider config."""
    if rider is None:
        rider = RiderConfig()

    parser = argparse.ArgumentParser(
        description="Simulate a bike route against a weather forecast and find faster departure times."
    )
    parser.add_argument("gpx_file", help="Path to GPX file")
    parser.add_argument(
        "--start",
        type=str,
        default=None,
        help="Planned departure as ISO 8601 (e.g. 2025-06-14T08:00). Times without an offset are local.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--forecast", type=str, default=None, help="Hourly forecast JSON file")
    source.add_argument(
        "--fetch-forecast",
        action="store_true",
        help="Download an hourly forecast for the route start from Open-Meteo",
    )
    parser.add_argument(
        "--ftp",
        type=float,
        default=rider.ftp,
        help=f"Functional threshold power in watts (default: {rider.ftp:.0f})",
    )
    parser.add_argument(
        "--weight",
        type=float,
        default=rider.total_weight,
        help=f"Total weight of rider + bike in kg (default: {rider.total_weight:.0f})",
    )
    parser.add_argument(
        "--baseline-speed",
        type=float,
        default=rider.baseline_speed * 3.6,
        help=f"Fixed average speed for the baseline comparison in km/h (default: {rider.baseline_speed * 3.6:.1f})",
    )
    parser.add_argument(
        "--intensity",
        type=float,
        default=rider.target_intensity,
        help=f"Target power as a fraction of FTP (default: {rider.target_intensity})",
    )
    parser.add_argument(
        "--pacing",
        choices=[p.value for p in Pacing],
        default=rider.pacing.value,
        help="Pacing strategy (default: %(default)s)",
    )
    parser.add_argument(
        "--wake",
        choices=[w.value for w in WakePreference],
        default=rider.wake_preference.value if rider.wake_preference else None,
        help="Allowed departure hours; without it, night starts (23:00-05:00) are skipped",
    )
    parser.add_argument(
        "--units",
        choices=[u.value for u in Units],
        default=rider.units.value,
        help="Display units (default: %(default)s)",
    )
    parser.add_argument("--workers", type=int, default=None, help="Threads for the departure search")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_start(value: str) -> datetime:
    """Parse --start; a time without an offset is in the local zone.

    Night hours and early-start tags are judged on this clock.
    """
    start = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if start.tzinfo is None:
        start = start.astimezone()
    return start


def print_report(plan: RidePlan, rider: RiderConfig) -> None:
    units = rider.units
    sim = plan.simulation
    shape = plan.shape

    print("=== Route Timing Analysis ===")
    print(
        f"Config: ftp={rider.ftp:.0f}W weight={rider.total_weight:.0f}kg "
        f"intensity={rider.target_intensity} pacing={rider.pacing.value} "
        f"baseline={rider.baseline_speed * 3.6:.1f}km/h"
    )
    print(f"Shape:          {shape.kind.label}")
    if shape.apex_distance is not None:
        where = f"{format_distance(shape.apex_distance, units)} ({plan.apex_direction})"
        if shape.turnaround_name:
            where = f"{shape.turnaround_name}, {where}"
        print(f"Turnaround:     {where}")
    if plan.start_time is not None:
        print(f"Start:          {plan.start_time.isoformat()}")

    print(f"Distance:       {format_distance(sim.total_distance, units)}")
    print(f"Est. Time:      {format_duration_long(sim.total_duration)}")
    print(f"Avg Speed:      {format_speed(sim.average_speed, units)}")
    power = sim.power_distribution
    print(
        f"Power:          {power.average_power:.0f} W avg, {power.normalized_power:.0f} W NP, "
        f"IF {power.intensity_factor:.2f}"
    )
    print(f"Energy:         {sim.total_energy:.0f} kJ")
    zones = "  ".join(f"Z{i + 1} {format_duration(t)}" for i, t in enumerate(power.zone_seconds))
    print(f"Zones:          {zones}")

    terrain = sim.terrain_breakdown
    print(
        f"Terrain:        {format_distance(terrain.climbing_distance, units)} climbing "
        f"(avg {format_grade(terrain.average_climb_grade)}, max {format_grade(terrain.steepest_climb_grade)}), "
        f"{format_distance(terrain.descending_distance, units)} descending, "
        f"{format_distance(terrain.flat_distance, units)} flat"
    )
    print(f"Wind:           {sim.average_headwind:+.1f} m/s avg headwind, peak {sim.peak_temperature:.0f} °C")

    baseline = sim.baseline_comparison
    print(
        f"Baseline @{format_speed(rider.baseline_speed, units)}: {format_duration_long(baseline.baseline_time)} "
        f"({format_time_diff(baseline.time_difference)} simulated, "
        f"{len(baseline.significant_segments)} significant segments)"
    )

    if plan.start_time is None:
        return
    print("")
    if not plan.departures:
        print("No faster departure found in the next 24 hours.")
        return
    print("Better departures:")
    if plan.departure_baseline is not None:
        # Candidates run on a coarser route than Est. Time; compare them with this line
        print(
            f"  {plan.start_time.strftime('%a %H:%M')}  {format_duration_long(plan.departure_baseline)}  "
            "planned start at search resolution"
        )
    for candidate in plan.departures:
        tags = ", ".join(tag.value for tag in candidate.tags)
        print(
            f"  {candidate.start_time.strftime('%a %H:%M')}  {format_duration_long(candidate.result.total_duration)}  "
            f"saves {format_duration(candidate.savings)} ({candidate.improvement_pct:.1f}%)  [{tags}]"
        )


def main(argv: list[str] | None = None) -> None:
    config = load_config()
    try:
        rider = rider_config_from_dict(config)
        thresholds = thresholds_from_config(config)
    except ValueError as e:
        print(f"Error in config file: {e}", file=sys.stderr)
        sys.exit(1)

    parser = build_parser(rider)
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    rider = RiderConfig(
        ftp=args.ftp,
        total_weight=args.weight,
        baseline_speed=args.baseline_speed / 3.6,
        target_intensity=args.intensity,
        pacing=Pacing(args.pacing),
        units=Units(args.units),
        wind_tolerance=rider.wind_tolerance,
        temperature_tolerance=rider.temperature_tolerance,
        wake_preference=WakePreference(args.wake) if args.wake else None,
    )

    start_time = None
    if args.start:
        try:
            start_time = parse_start(args.start)
        except ValueError:
            print(f"Error: Invalid start time: {args.start}", file=sys.stderr)
            sys.exit(1)

    gpx_path = args.gpx_file
    try:
        samples = parse_gpx(gpx_path)
    except FileNotFoundError:
        print(f"Error: File not found: {gpx_path}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error parsing GPX file: {e}", file=sys.stderr)
        sys.exit(1)

    if len(samples) < 2:
        print("Error: GPX file contains fewer than 2 points.", file=sys.stderr)
        sys.exit(1)

    # Recorded timestamps become planned arrival times relative to --start
    if start_time is not None and samples[0].time is not None:
        samples = shift_route(samples, start_time - samples[0].time)

    forecast = []
    if args.forecast:
        try:
            forecast = load_forecast(args.forecast)
        except FileNotFoundError:
            print(f"Error: File not found: {args.forecast}", file=sys.stderr)
            sys.exit(1)
        except ValueError as e:
            print(f"Error reading forecast: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.fetch_forecast:
        try:
            forecast = fetch_forecast(samples[0].lat, samples[0].lon, FORECAST_HOURS)
        except requests.RequestException as e:
            print(f"Error downloading forecast: {e}", file=sys.stderr)
            sys.exit(1)

    if not forecast:
        print("Note: no forecast given, assuming calm 15 °C conditions.", file=sys.stderr)

    plan = plan_ride(
        samples,
        forecast,
        rider,
        start_time=start_time,
        cache=MemoryResultCache(),
        thresholds=thresholds,
        total_elevation_gain=elevation_gain(samples),
        max_workers=args.workers,
    )
    if not plan.simulation_available:
        print("Error: Power simulation needs a positive FTP and weight.", file=sys.stderr)
        sys.exit(1)

    print_report(plan, rider)


if __name__ == "__main__":
    main()
