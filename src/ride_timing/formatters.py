"""Formatting utilities for display."""

from ride_timing.models import Units

KM_TO_MI = 0.621371


def format_duration(seconds: float) -> str:
    """Format seconds as Xh Ym string."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m"


def format_duration_long(seconds: float) -> str:
    """Format seconds as Xh Ym Zs string."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"


def format_time_diff(seconds: float) -> str:
    """Format a signed time difference as +/- Xh Ym (or Xm)."""
    sign = "+" if seconds > 0 else "-" if seconds < 0 else ""
    return sign + format_duration(abs(seconds))


def format_distance(meters: float, units: Units = Units.METRIC) -> str:
    km = meters / 1000
    if units is Units.IMPERIAL:
        return f"{km * KM_TO_MI:.1f} mi"
    return f"{km:.1f} km"


def format_speed(mps: float, units: Units = Units.METRIC) -> str:
    kmh = mps * 3.6
    if units is Units.IMPERIAL:
        return f"{kmh * KM_TO_MI:.1f} mph"
    return f"{kmh:.1f} km/h"


def format_grade(grade: float) -> str:
    return f"{grade * 100:.1f}%"
