"""Ride Timing - route shape, power simulation and departure-time search for cyclists."""

__version__ = "0.1.0"
