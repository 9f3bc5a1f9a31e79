"""
Core services for the simulation.

This package contains the value generator, status classifier, healing
controller, device simulators, diagnostic log, alert dispatcher and the
engine that ties them together.
"""

from .alert_dispatcher import AlertDispatcher, NotificationChannel
from .device_simulation import DefibrillatorSimulator, TickOutcome, VentilatorSimulator
from .diagnostic_log import DiagnosticLog
from .healing_controller import evaluate
from .simulation_engine import SimulationEngine, SimulationSnapshot
from .status_classifier import classify, is_alert_transition
from .value_generator import ValueGenerator

__all__ = [
    "AlertDispatcher",
    "NotificationChannel",
    "DefibrillatorSimulator",
    "VentilatorSimulator",
    "TickOutcome",
    "DiagnosticLog",
    "evaluate",
    "SimulationEngine",
    "SimulationSnapshot",
    "classify",
    "is_alert_transition",
    "ValueGenerator",
]
