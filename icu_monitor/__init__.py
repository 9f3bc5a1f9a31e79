"""Self-healing telemetry simulation for ICU devices.

This package contains the domain models and the simulation engine,
isolated from notification delivery for easy testing and reasoning.
"""
