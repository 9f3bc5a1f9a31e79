"""
Tests for the simulation engine.

Covers:
- Start-up diagnostics and idempotent reads
- End-to-end fault scenarios through forced readings and ticks
- Edge-triggered alerts over long runs
- Determinism for a fixed seed and clock
- The periodic timer and delivery failures
"""

import itertools
import random
from collections.abc import Callable, Iterator

import pytest

from icu_monitor.config import SimulationConfig
from icu_monitor.domain.models import (
    AlertPayload,
    DeviceKind,
    DiagnosticEvent,
    MetricKind,
    MetricReading,
    Severity,
    VentilatorState,
)
from icu_monitor.domain.profiles import DEFAULT_PROFILES
from icu_monitor.services.healing_controller import evaluate
from icu_monitor.services.simulation_engine import SimulationEngine
from icu_monitor.services.status_classifier import is_alert_transition
from support import RecordingChannel

EngineFactory = Callable[..., SimulationEngine]


def _texts(events: tuple[DiagnosticEvent, ...], device: DeviceKind | None = None) -> list[str]:
    return [e.text for e in events if device is None or e.source_device == device]


class TestStartup:
    def test_records_systems_initialized_per_device(self, make_engine: EngineFactory) -> None:
        engine = make_engine()

        events = engine.get_diagnostics()
        assert [(e.text, e.source_device) for e in events] == [
            ("Systems initialized", DeviceKind.DEFIBRILLATOR),
            ("Systems initialized", DeviceKind.VENTILATOR),
        ]
        assert all(e.severity == Severity.NORMAL for e in events)

    def test_random_start_is_normal(self) -> None:
        engine = SimulationEngine(rng=random.Random(1))

        assert engine.get_ventilator_state().composite_status == Severity.NORMAL
        assert engine.get_defibrillator_state().capacitor_ready
        assert engine.get_ventilator_state().firmware_responsive

    def test_reads_are_idempotent(self, make_engine: EngineFactory) -> None:
        engine = make_engine()
        engine.tick()

        assert engine.get_ventilator_state() is engine.get_ventilator_state()
        assert engine.get_defibrillator_state() is engine.get_defibrillator_state()
        assert engine.get_diagnostics() == engine.get_diagnostics()

    def test_snapshot_reflects_latest_tick(self, make_engine: EngineFactory) -> None:
        engine = make_engine()
        engine.tick()
        engine.tick()

        snapshot = engine.snapshot()
        assert snapshot.tick == 2
        assert snapshot.ventilator is engine.get_ventilator_state()
        assert snapshot.diagnostics == engine.get_diagnostics()


class TestScenarios:
    """Forced faults followed by ordinary ticks."""

    def test_ventilator_overheat(
        self, make_engine: EngineFactory, recorder: RecordingChannel
    ) -> None:
        engine = make_engine()

        engine.force_reading(MetricKind.VENTILATOR_TEMPERATURE, 42.0)

        temperature = engine.get_ventilator_state().temperature
        assert temperature.status == Severity.EMERGENCY
        assert not temperature.is_healing
        assert not engine.get_ventilator_state().firmware_responsive
        assert _texts(engine.get_diagnostics())[:2] == [
            "CRITICAL: Ventilator firmware unresponsive",
            "CRITICAL: Temperature emergency threshold exceeded",
        ]

        # Still in Emergency on the next tick: no second alert, no healing
        engine.tick()
        assert engine.get_ventilator_state().temperature.status == Severity.EMERGENCY
        assert not engine.get_ventilator_state().temperature.is_healing

        engine.dispatcher.flush(timeout=5)
        assert recorder.payloads == [
            AlertPayload(
                device_name="Ventilator",
                issue="Temperature CRITICAL: 42°C",
                timestamp="00:00:00",
            )
        ]

    def test_ventilator_cold_drift_heals(
        self,
        make_engine: EngineFactory,
        recorder: RecordingChannel,
        steady_ventilator: VentilatorState,
    ) -> None:
        warm = steady_ventilator.model_copy(update={"temperature": MetricReading(value=36.5)})
        engine = make_engine(ventilator_state=warm)

        engine.force_reading(MetricKind.VENTILATOR_TEMPERATURE, 23.0)
        temperature = engine.get_ventilator_state().temperature
        assert temperature.status == Severity.NORMAL
        assert temperature.is_healing
        assert temperature.display_status == Severity.AUTO_FIX
        assert engine.get_diagnostics()[0].text == "Increasing warming elements..."
        assert engine.get_diagnostics()[0].severity == Severity.AUTO_FIX
        decision = evaluate(MetricKind.VENTILATOR_TEMPERATURE, temperature)
        assert decision.target_value == 30.0

        for _ in range(8):
            engine.tick()
            if not engine.get_ventilator_state().temperature.is_healing:
                break

        texts = _texts(engine.get_diagnostics(), DeviceKind.VENTILATOR)
        assert not engine.get_ventilator_state().temperature.is_healing
        assert engine.get_ventilator_state().temperature.value >= 25.0
        assert texts.count("Increasing warming elements...") == 1
        assert texts[0] == "Temperature stabilized"

        engine.dispatcher.flush(timeout=5)
        assert recorder.payloads == []

    def test_defibrillator_battery_sag(
        self, make_engine: EngineFactory, recorder: RecordingChannel
    ) -> None:
        engine = make_engine()

        engine.force_reading(MetricKind.DEFIBRILLATOR_BATTERY, 10.5)

        state = engine.get_defibrillator_state()
        assert state.battery_voltage.status == Severity.ALERT
        assert state.battery_voltage.is_healing
        assert state.battery_voltage.correction_message == "Activating backup power source..."
        assert not state.capacitor_ready
        assert _texts(engine.get_diagnostics())[:2] == [
            "Defibrillator capacitor not ready",
            "Activating backup power source...",
        ]

        for _ in range(8):
            engine.tick()
            if engine.get_defibrillator_state().capacitor_ready:
                break

        state = engine.get_defibrillator_state()
        texts = _texts(engine.get_diagnostics(), DeviceKind.DEFIBRILLATOR)
        assert state.capacitor_ready
        assert state.battery_voltage.status == Severity.NORMAL
        assert state.battery_voltage.value >= 11.0
        assert "Battery voltage returned to normal range" in texts
        assert texts[0] == "Defibrillator capacitor ready"

        engine.dispatcher.flush(timeout=5)
        assert recorder.issues == ["Battery Warning: 10.5V"]

    def test_ecg_oscillation_alerts_on_each_entry(
        self, make_engine: EngineFactory, recorder: RecordingChannel
    ) -> None:
        engine = make_engine()

        for value in [0.0, 1.2, -1.2, 0.3, 1.2, 0.3]:
            engine.force_reading(MetricKind.DEFIBRILLATOR_ECG, value)

        engine.dispatcher.flush(timeout=5)
        assert recorder.issues == ["ECG Signal Abnormal: 1.2mV", "ECG Signal Abnormal: 1.2mV"]
        texts = _texts(engine.get_diagnostics())
        assert texts.count("ECG signal alert: Abnormal reading") == 2
        assert texts.count("ECG signal returned to normal range") == 2
        assert engine.get_defibrillator_state().capacitor_ready

    def test_injected_spike_applies_on_next_tick(self, make_engine: EngineFactory) -> None:
        engine = make_engine()

        engine.inject_spike(MetricKind.VENTILATOR_PRESSURE)
        assert engine.get_ventilator_state().pressure.value == 20.0

        engine.tick()
        assert abs(engine.get_ventilator_state().pressure.value - 20.0) >= 12.0

    def test_unknown_metric_rejected(self, make_engine: EngineFactory) -> None:
        profiles = dict(DEFAULT_PROFILES)
        engine = make_engine(profiles=profiles)
        del profiles[MetricKind.DEFIBRILLATOR_ECG]

        with pytest.raises(KeyError):
            engine.force_reading(MetricKind.DEFIBRILLATOR_ECG, 0.5)
        with pytest.raises(KeyError):
            engine.inject_spike(MetricKind.DEFIBRILLATOR_ECG)

    def test_metric_names_accepted_as_strings(self, make_engine: EngineFactory) -> None:
        engine = make_engine()

        engine.force_reading("ventilator_temperature", 42.0)

        assert engine.get_ventilator_state().temperature.status == Severity.EMERGENCY

    def test_unknown_metric_name_raises_key_error(self, make_engine: EngineFactory) -> None:
        engine = make_engine()

        with pytest.raises(KeyError):
            engine.force_reading("ventilator_humidity", 40.0)
        with pytest.raises(KeyError):
            engine.inject_spike("ventilator_humidity")


class TestLongRun:
    """Properties that hold for any sequence of ticks."""

    @pytest.fixture
    def busy_engine(self, recorder: RecordingChannel) -> Iterator[SimulationEngine]:
        clock = itertools.count(0, 3)
        engine = SimulationEngine(
            notifier=recorder, rng=random.Random(2024), clock=lambda: float(next(clock))
        )
        yield engine
        engine.close()

    def test_values_stay_in_bounds_and_emergency_never_heals(
        self, busy_engine: SimulationEngine
    ) -> None:
        metrics = list(MetricKind)
        for i in range(300):
            if i % 7 == 0:
                busy_engine.inject_spike(metrics[i % len(metrics)])
            busy_engine.tick()

            readings = {
                **busy_engine.get_ventilator_state().readings(),
                **busy_engine.get_defibrillator_state().readings(),
            }
            for metric, reading in readings.items():
                profile = DEFAULT_PROFILES[metric]
                assert profile.min_value <= reading.value <= profile.max_value
                assert not (reading.is_healing and reading.status == Severity.EMERGENCY)

    def test_one_alert_per_entry_into_alert_or_emergency(
        self, busy_engine: SimulationEngine, recorder: RecordingChannel
    ) -> None:
        metrics = list(MetricKind)
        expected = 0
        for i in range(300):
            if i % 5 == 0:
                busy_engine.inject_spike(metrics[i % len(metrics)])
            before = {
                **busy_engine.get_ventilator_state().readings(),
                **busy_engine.get_defibrillator_state().readings(),
            }
            busy_engine.tick()
            after = {
                **busy_engine.get_ventilator_state().readings(),
                **busy_engine.get_defibrillator_state().readings(),
            }
            expected += sum(
                is_alert_transition(before[m].status, after[m].status) for m in MetricKind
            )

        busy_engine.dispatcher.flush(timeout=5)
        assert len(recorder.payloads) == expected

    def test_diagnostics_capped(self) -> None:
        engine = SimulationEngine(
            SimulationConfig(diagnostic_capacity=5), notifier=None, rng=random.Random(5)
        )
        for value in [1.2, 0.0] * 10:
            engine.force_reading(MetricKind.DEFIBRILLATOR_ECG, value)

        assert len(engine.get_diagnostics()) == 5


class TestDeterminism:
    def test_same_seed_and_clock_replay_identically(self) -> None:
        def run() -> tuple[list[dict[str, object]], list[tuple[str, Severity]]]:
            clock = itertools.count(1_700_000_000, 3)
            engine = SimulationEngine(
                SimulationConfig(seed=99), clock=lambda: float(next(clock))
            )
            states = []
            for i in range(50):
                if i == 10:
                    engine.inject_spike(MetricKind.VENTILATOR_OXYGEN)
                engine.tick()
                states.append(engine.get_ventilator_state().model_dump())
                states.append(engine.get_defibrillator_state().model_dump())
            events = [(e.text, e.severity) for e in engine.get_diagnostics()]
            engine.close()
            return states, events

        assert run() == run()


class TestTimer:
    """The periodic loop that drives ticks."""

    async def test_run_yields_snapshot_per_tick(self, make_engine: EngineFactory) -> None:
        engine = make_engine()

        snapshots = [s async for s in engine.run(max_ticks=3)]

        assert [s.tick for s in snapshots] == [1, 2, 3]
        assert not engine.is_running
        await engine.stop()

    async def test_stop_ends_loop(self, make_engine: EngineFactory) -> None:
        engine = make_engine()
        ticks = []

        async for snapshot in engine.run():
            assert engine.is_running
            ticks.append(snapshot.tick)
            if snapshot.tick == 2:
                await engine.stop()

        assert ticks == [1, 2]
        assert not engine.is_running

    async def test_async_channel_delivered_from_loop(self, make_engine: EngineFactory) -> None:
        received: list[AlertPayload] = []

        async def channel(payload: AlertPayload) -> None:
            received.append(payload)

        engine = make_engine(notifier=channel)
        engine.force_reading(MetricKind.VENTILATOR_PRESSURE, 41.0)
        assert received == []

        await engine.stop()
        assert [p.issue for p in received] == ["Pressure CRITICAL: 41 cmH₂O"]


class TestDeliveryFailure:
    """A failing channel is recorded, never raised into the tick."""

    def test_failure_becomes_diagnostic(self, make_engine: EngineFactory) -> None:
        def offline(payload: AlertPayload) -> None:
            raise ConnectionError("channel offline")

        engine = make_engine(notifier=offline)
        engine.force_reading(MetricKind.VENTILATOR_TEMPERATURE, 42.0)
        engine.dispatcher.flush(timeout=5)

        latest = engine.get_diagnostics()[0]
        assert latest.text == "Alert notification failed: channel offline"
        assert latest.severity == Severity.ALERT
        assert latest.source_device == DeviceKind.VENTILATOR
        assert engine.get_ventilator_state().temperature.value == 42.0

        engine.tick()
        assert engine.tick_count == 1
