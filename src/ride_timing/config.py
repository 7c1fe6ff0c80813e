"""Configuration loading for ride-timing.

Settings come from JSON files merged in order:
1. ~/.config/ride-timing/ride-timing.json (global, loaded first)
2. ./ride-timing.json (local, overrides global)

Example:
    {
        "ftp": 240,
        "weight": 78,
        "baseline_speed": 27,
        "pacing": "terrain",
        "wake_preference": "early_bird",
        "shape_thresholds": {"wide_ratio": 0.025}
    }
"""

import json
from dataclasses import fields, replace
from pathlib import Path

from ride_timing.models import (
    Pacing,
    RiderConfig,
    TemperatureTolerance,
    Units,
    WakePreference,
    WindTolerance,
)
from ride_timing.shape import DEFAULT_THRESHOLDS, ShapeThresholds

CONFIG_PATH = Path.home() / ".config" / "ride-timing" / "ride-timing.json"
LOCAL_CONFIG_PATH = Path("ride-timing.json")


def load_config(paths: list[Path] | None = None) -> dict:
    """Load configuration from config files.

    Later files override earlier ones key by key. Missing or unreadable
    files are skipped.

    Returns:
        Dict with merged config values, empty dict if no files exist.
    """
    config = {}
    for config_path in paths if paths is not None else [CONFIG_PATH, LOCAL_CONFIG_PATH]:
        if config_path.exists():
            try:
                with config_path.open() as f:
                    config.update(json.load(f))
            except (json.JSONDecodeError, OSError):
                continue
    return config


def _enum(enum_cls, value, key: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {key} {value!r} (expected one of: {allowed})") from None


def rider_config_from_dict(config: dict) -> RiderConfig:
    """Build a RiderConfig from config values, keeping defaults for absent keys.

    baseline_speed is given in km/h.

    Raises:
        ValueError: If an enum-valued key has an unknown value.
    """
    rider = RiderConfig()
    updates = {}
    if "ftp" in config:
        updates["ftp"] = float(config["ftp"])
    if "weight" in config:
        updates["total_weight"] = float(config["weight"])
    if "baseline_speed" in config:
        updates["baseline_speed"] = float(config["baseline_speed"]) / 3.6
    if "target_intensity" in config:
        updates["target_intensity"] = float(config["target_intensity"])
    if "units" in config:
        updates["units"] = _enum(Units, config["units"], "units")
    if "pacing" in config:
        updates["pacing"] = _enum(Pacing, config["pacing"], "pacing")
    if "wind_tolerance" in config:
        updates["wind_tolerance"] = _enum(WindTolerance, config["wind_tolerance"], "wind_tolerance")
    if "temperature_tolerance" in config:
        updates["temperature_tolerance"] = _enum(
            TemperatureTolerance, config["temperature_tolerance"], "temperature_tolerance"
        )
    if config.get("wake_preference"):
        updates["wake_preference"] = _enum(WakePreference, config["wake_preference"], "wake_preference")
    return replace(rider, **updates)


def thresholds_from_config(config: dict) -> ShapeThresholds:
    """Apply a "shape_thresholds" object on top of the default thresholds.

    Raises:
        ValueError: If an unknown threshold name is given.
    """
    overrides = config.get("shape_thresholds") or {}
    known = {f.name for f in fields(ShapeThresholds)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown shape thresholds: {', '.join(unknown)}")
    converted = {
        name: int(value) if name in ("min_samples", "max_polygon_points", "lollipop_min_samples") else float(value)
        for name, value in overrides.items()
    }
    return replace(DEFAULT_THRESHOLDS, **converted)
