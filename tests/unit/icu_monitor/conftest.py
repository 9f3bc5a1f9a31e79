"""Shared fixtures for the ICU monitor tests."""

import random
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from icu_monitor.config import SimulationConfig
from icu_monitor.domain.models import DefibrillatorState, MetricReading, VentilatorState
from icu_monitor.services.simulation_engine import SimulationEngine
from icu_monitor.services.value_generator import ValueGenerator
from support import FixedRandom, RecordingChannel


@pytest.fixture
def still_generator() -> ValueGenerator:
    """No random walk, no drift: organic steps leave values unchanged."""
    return ValueGenerator(FixedRandom(0.5), lambda: 0.0)


@pytest.fixture
def recorder() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def steady_ventilator() -> VentilatorState:
    """Every metric well inside its safe band."""
    return VentilatorState(
        temperature=MetricReading(value=30.0),
        pressure=MetricReading(value=20.0),
        oxygen_level=MetricReading(value=96.0),
    )


@pytest.fixture
def steady_defibrillator() -> DefibrillatorState:
    return DefibrillatorState(
        battery_voltage=MetricReading(value=12.8),
        ecg_signal=MetricReading(value=0.0),
        temperature=MetricReading(value=30.0),
    )


@pytest.fixture
def make_engine(
    recorder: RecordingChannel,
    steady_ventilator: VentilatorState,
    steady_defibrillator: DefibrillatorState,
) -> Iterator[Callable[..., SimulationEngine]]:
    """Engine factory: seeded, fixed clock, steady start states, recording channel."""
    engines: list[SimulationEngine] = []

    def factory(**kwargs: Any) -> SimulationEngine:
        config = kwargs.pop("config", None) or SimulationConfig(tick_interval_seconds=0.01)
        kwargs.setdefault("notifier", recorder)
        kwargs.setdefault("rng", random.Random(7))
        kwargs.setdefault("clock", lambda: 0.0)
        kwargs.setdefault("ventilator_state", steady_ventilator)
        kwargs.setdefault("defibrillator_state", steady_defibrillator)
        engine = SimulationEngine(config, **kwargs)
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        engine.close()
