"""
Simulation engine: the tick target, read API and alert wiring for both devices.

The engine owns the only live state. Each tick computes complete next
snapshots for the ventilator and the defibrillator, swaps them in, then
records diagnostics and hands alerts to the dispatcher. Reads between ticks
return the same frozen objects every time.
"""

import asyncio
import random
import time
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from icu_monitor.config import SimulationConfig
from icu_monitor.domain.models import (
    DefibrillatorState,
    DeviceKind,
    DiagnosticEvent,
    MetricKind,
    Severity,
    VentilatorState,
)
from icu_monitor.domain.profiles import DEFAULT_PROFILES, MetricProfile, validate_profiles
from icu_monitor.services.alert_dispatcher import AlertDispatcher, NotificationChannel
from icu_monitor.services.device_simulation import (
    DefibrillatorSimulator,
    TickOutcome,
    VentilatorSimulator,
)
from icu_monitor.services.diagnostic_log import DiagnosticLog
from icu_monitor.services.value_generator import Clock, ValueGenerator

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SimulationSnapshot:
    """Everything a consumer can read after a tick."""

    tick: int
    ventilator: VentilatorState
    defibrillator: DefibrillatorState
    diagnostics: tuple[DiagnosticEvent, ...]


class SimulationEngine:
    """
    Drives both device simulators and publishes their snapshots.

    The random source and the clock are injectable; given the same seed and
    clock two engines produce identical histories. Start states default to
    randomised in-range readings and may be supplied to replay a scenario.
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        *,
        notifier: NotificationChannel | None = None,
        rng: random.Random | None = None,
        clock: Clock | None = None,
        generator: ValueGenerator | None = None,
        profiles: Mapping[MetricKind, MetricProfile] | None = None,
        ventilator_state: VentilatorState | None = None,
        defibrillator_state: DefibrillatorState | None = None,
    ) -> None:
        self.config = config or SimulationConfig()
        self.profiles = profiles if profiles is not None else DEFAULT_PROFILES
        validate_profiles(self.profiles)

        self.clock = clock or time.time
        self.generator = generator or ValueGenerator(
            rng or random.Random(self.config.seed), self.clock
        )
        self.logger = logger.bind(component="simulation_engine")

        self.diagnostic_log = DiagnosticLog(self.config.diagnostic_capacity)
        self.dispatcher = AlertDispatcher(notifier, on_failure=self._record_delivery_failure)
        self.ventilator_simulator = VentilatorSimulator(self.generator, self.profiles)
        self.defibrillator_simulator = DefibrillatorSimulator(self.generator, self.profiles)

        self._ventilator = ventilator_state or self.ventilator_simulator.initial_state()
        self._defibrillator = defibrillator_state or self.defibrillator_simulator.initial_state()
        self._pending_spikes: set[MetricKind] = set()
        self._is_running = False
        self.tick_count = 0

        now = self._now()
        for device in DeviceKind:
            self.diagnostic_log.record("Systems initialized", Severity.NORMAL, device, now)
        self.logger.info(
            "simulation_initialized",
            tick_interval_seconds=self.config.tick_interval_seconds,
            diagnostic_capacity=self.config.diagnostic_capacity,
            seed=self.config.seed,
        )

    # Read API

    def get_ventilator_state(self) -> VentilatorState:
        return self._ventilator

    def get_defibrillator_state(self) -> DefibrillatorState:
        return self._defibrillator

    def get_diagnostics(self) -> tuple[DiagnosticEvent, ...]:
        return self.diagnostic_log.list_recent()

    def snapshot(self) -> SimulationSnapshot:
        return SimulationSnapshot(
            tick=self.tick_count,
            ventilator=self._ventilator,
            defibrillator=self._defibrillator,
            diagnostics=self.get_diagnostics(),
        )

    # Updates

    def tick(self) -> None:
        """Advance both devices by one step. Never waits on alert delivery."""
        now = self._now()
        spikes = frozenset(self._pending_spikes)
        self._pending_spikes.clear()

        ventilator = self.ventilator_simulator.advance(self._ventilator, spikes)
        defibrillator = self.defibrillator_simulator.advance(self._defibrillator, spikes)

        self._ventilator = ventilator.state
        self._defibrillator = defibrillator.state
        self._publish(DeviceKind.VENTILATOR, ventilator, now)
        self._publish(DeviceKind.DEFIBRILLATOR, defibrillator, now)

        self.tick_count += 1
        self.logger.debug(
            "simulation_tick_completed",
            tick=self.tick_count,
            ventilator_status=self._ventilator.composite_status.value,
            defibrillator_status=self._defibrillator.composite_status.value,
            spikes=sorted(m.value for m in spikes),
        )

    def force_reading(self, metric: MetricKind | str, value: float) -> None:
        """Override one metric right away, with the same transition handling as a tick."""
        metric = self._known_metric(metric)
        now = self._now()
        if metric.device == DeviceKind.VENTILATOR:
            ventilator = self.ventilator_simulator.override(self._ventilator, metric, value)
            self._ventilator = ventilator.state
            self._publish(DeviceKind.VENTILATOR, ventilator, now)
        else:
            defibrillator = self.defibrillator_simulator.override(
                self._defibrillator, metric, value
            )
            self._defibrillator = defibrillator.state
            self._publish(DeviceKind.DEFIBRILLATOR, defibrillator, now)

    def inject_spike(self, metric: MetricKind | str) -> None:
        """Make the next tick spike this metric instead of drifting (unless it is healing)."""
        metric = self._known_metric(metric)
        self._pending_spikes.add(metric)
        self.logger.info("spike_injected", metric=metric.value)

    # Timer

    async def run(self, max_ticks: int | None = None) -> AsyncIterator[SimulationSnapshot]:
        """
        Periodic timer: tick every ``tick_interval_seconds`` and yield snapshots.

        Stops after ``max_ticks`` ticks, or when ``stop()`` is called.
        """
        interval = self.config.tick_interval_seconds
        self.logger.info("simulation_started", interval_seconds=interval)
        self._is_running = True
        ticks = 0

        try:
            while self._is_running:
                tick_start = time.perf_counter()
                self.tick()
                ticks += 1
                yield self.snapshot()

                if max_ticks is not None and ticks >= max_ticks:
                    break

                elapsed = time.perf_counter() - tick_start
                sleep_time = max(0.0, interval - elapsed)
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                else:
                    self.logger.warning(
                        "simulation_tick_slower_than_interval",
                        elapsed_seconds=round(elapsed, 3),
                        interval_seconds=interval,
                    )
        except asyncio.CancelledError:
            self.logger.info("simulation_cancelled")
            raise
        finally:
            self._is_running = False
            self.logger.info("simulation_stopped", ticks=ticks)

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def stop(self) -> None:
        """Stop the timer and let in-flight alert deliveries finish."""
        self.logger.info("stopping_simulation")
        self._is_running = False
        await self.dispatcher.wait_idle()

    def close(self) -> None:
        self.dispatcher.close()

    # Internals

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), UTC)

    def _publish(self, device: DeviceKind, outcome: TickOutcome, now: datetime) -> None:
        for draft in outcome.diagnostics:
            self.diagnostic_log.record(draft.text, draft.severity, device, now)
        for issue in outcome.alert_issues:
            self.dispatcher.dispatch(device.display_name, issue, now.strftime("%H:%M:%S"))

    def _known_metric(self, metric: MetricKind | str) -> MetricKind:
        try:
            kind = MetricKind(metric)
        except ValueError:
            raise KeyError(metric) from None
        if kind not in self.profiles:
            raise KeyError(kind)
        return kind

    def _record_delivery_failure(self, device_name: str, message: str) -> None:
        device = DeviceKind(device_name.lower())
        self.diagnostic_log.record(message, Severity.ALERT, device, self._now())
