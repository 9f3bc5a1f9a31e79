"""
Per-device aggregation: advance every metric, compose device status, detect transitions.

One generic routine handles every metric. For each metric, in order:
1. ask the healing controller about the *previous* reading
2. draw the next value from the generator using that decision
3. classify the new value
4. diff against the previous reading and keep at most one diagnostic line

Device-level status (firmware responsiveness, capacitor readiness) is composed
only after every metric of the same tick has been advanced. The simulators
never touch the diagnostic log or the notification channel; they return a
``TickOutcome`` describing what should be recorded and alerted.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from icu_monitor.domain.models import (
    DefibrillatorState,
    DeviceKind,
    HealingTarget,
    MetricKind,
    MetricReading,
    Severity,
    VentilatorState,
)
from icu_monitor.domain.profiles import DEFAULT_PROFILES, MetricProfile
from icu_monitor.services.healing_controller import evaluate
from icu_monitor.services.status_classifier import (
    ALERTING_SEVERITIES,
    classify,
    is_alert_transition,
)
from icu_monitor.services.value_generator import ValueGenerator, settle

logger = structlog.get_logger(__name__)

StateT = TypeVar("StateT", VentilatorState, DefibrillatorState)


@dataclass(frozen=True)
class DiagnosticDraft:
    """A diagnostic line before the log stamps it with an id and time."""

    text: str
    severity: Severity


@dataclass(frozen=True)
class MetricOutcome:
    metric: MetricKind
    reading: MetricReading
    diagnostic: DiagnosticDraft | None = None
    alert_issue: str | None = None


@dataclass(frozen=True)
class TickOutcome(Generic[StateT]):
    """Next device snapshot plus the diagnostics and alerts it produced."""

    state: StateT
    diagnostics: tuple[DiagnosticDraft, ...]
    alert_issues: tuple[str, ...]


def format_value(value: float) -> str:
    """Render 42.0 as '42' and 10.5 as '10.5'."""
    return f"{value:g}"


def describe_transition(
    profile: MetricProfile, previous: MetricReading, current: MetricReading
) -> DiagnosticDraft | None:
    """Pick the single diagnostic line for this metric, first match wins."""
    if current.is_healing and not previous.is_healing:
        return DiagnosticDraft(current.correction_message or "", Severity.AUTO_FIX)
    if previous.is_healing and not current.is_healing:
        return DiagnosticDraft(f"{profile.label} stabilized", Severity.NORMAL)
    if current.status == previous.status:
        return None
    if current.status == Severity.ALERT:
        text = profile.alert_diagnostic or f"{profile.label} alert threshold reached"
        return DiagnosticDraft(text, Severity.ALERT)
    if current.status == Severity.EMERGENCY:
        return DiagnosticDraft(
            f"CRITICAL: {profile.label} emergency threshold exceeded", Severity.EMERGENCY
        )
    if current.status == Severity.NORMAL:
        return DiagnosticDraft(f"{profile.label} returned to normal range", Severity.NORMAL)
    return None


def alert_issue(profile: MetricProfile, previous: Severity, current: MetricReading) -> str | None:
    """Issue text for the notification channel, only on entering Alert/Emergency."""
    if not is_alert_transition(previous, current.status):
        return None
    value = format_value(current.value)
    if profile.alert_issue is not None:
        return profile.alert_issue.format(value=value)
    level = "CRITICAL" if current.status == Severity.EMERGENCY else "Warning"
    return f"{profile.alert_label} {level}: {value}{profile.unit}"


def resolve_metric(
    profile: MetricProfile, previous: MetricReading, healing: HealingTarget, value: float
) -> MetricOutcome:
    """Classify a new value and diff it against the previous reading."""
    reading = MetricReading(
        value=value,
        status=classify(profile, value),
        is_healing=healing.engage,
        correction_message=healing.message if healing.engage else None,
    )
    return MetricOutcome(
        metric=profile.metric,
        reading=reading,
        diagnostic=describe_transition(profile, previous, reading),
        alert_issue=alert_issue(profile, previous.status, reading),
    )


class DeviceSimulator(ABC, Generic[StateT]):
    """Owns the update cycle of one device's metric set."""

    device: DeviceKind

    def __init__(
        self,
        generator: ValueGenerator,
        profiles: Mapping[MetricKind, MetricProfile] = DEFAULT_PROFILES,
    ) -> None:
        self.generator = generator
        self.profiles = profiles
        self.logger = logger.bind(component="device_simulator", device=self.device.value)

    @abstractmethod
    def initial_state(self) -> StateT:
        """Randomised in-range start values, Normal, device ready."""

    @abstractmethod
    def compose(self, previous: StateT, outcomes: Sequence[MetricOutcome]) -> TickOutcome[StateT]:
        """Build the next snapshot and its device-level diagnostics."""

    def _initial_reading(self, metric: MetricKind) -> MetricReading:
        profile = self.profiles[metric]
        return MetricReading(
            value=self.generator.initial_value(profile.initial_low, profile.initial_high)
        )

    def advance(
        self, previous: StateT, spikes: frozenset[MetricKind] = frozenset()
    ) -> TickOutcome[StateT]:
        """Run one tick for every metric, then compose the device status."""
        outcomes = [
            self._advance_metric(self.profiles[metric], reading, metric in spikes)
            for metric, reading in previous.readings().items()
        ]
        return self._finish(previous, outcomes)

    def override(self, previous: StateT, metric: MetricKind, value: float) -> TickOutcome[StateT]:
        """Force one metric to ``value``; healing is judged on the forced reading."""
        readings = previous.readings()
        if metric not in readings:
            raise KeyError(f"{metric.value} is not a {self.device.value} metric")

        outcomes = []
        for kind, reading in readings.items():
            if kind != metric:
                outcomes.append(MetricOutcome(metric=kind, reading=reading))
                continue
            profile = self.profiles[kind]
            forced = settle(value, profile.min_value, profile.max_value, profile.decimals)
            candidate = MetricReading(value=forced, status=classify(profile, forced))
            outcomes.append(resolve_metric(profile, reading, evaluate(profile, candidate), forced))

        self.logger.info("metric_forced", metric=metric.value, value=value)
        return self._finish(previous, outcomes)

    def _advance_metric(
        self, profile: MetricProfile, previous: MetricReading, spike: bool
    ) -> MetricOutcome:
        gen = self.generator
        if profile.waveform:
            healing = HealingTarget(engage=False, target_value=previous.value)
            value = gen.spike_ecg() if spike else gen.next_ecg()
            return resolve_metric(profile, previous, healing, value)

        healing = evaluate(profile, previous)
        if spike and not healing.engage:
            value = gen.spike(previous.value, profile.min_value, profile.max_value)
        else:
            value = gen.next_value(
                previous.value,
                profile.min_value,
                profile.max_value,
                healing.engage,
                healing.target_value if healing.engage else None,
                previous.status,
            )
        return resolve_metric(profile, previous, healing, value)

    def _finish(self, previous: StateT, outcomes: Sequence[MetricOutcome]) -> TickOutcome[StateT]:
        for outcome in outcomes:
            if outcome.diagnostic is not None:
                self.logger.info(
                    "metric_transition",
                    metric=outcome.metric.value,
                    value=outcome.reading.value,
                    status=outcome.reading.status.value,
                    healing=outcome.reading.is_healing,
                    text=outcome.diagnostic.text,
                )
            if outcome.alert_issue is not None:
                self.logger.warning(
                    "severity_transition",
                    metric=outcome.metric.value,
                    status=outcome.reading.status.value,
                    issue=outcome.alert_issue,
                )
        return self.compose(previous, outcomes)


def _metric_diagnostics(outcomes: Sequence[MetricOutcome]) -> list[DiagnosticDraft]:
    return [o.diagnostic for o in outcomes if o.diagnostic is not None]


def _alert_issues(outcomes: Sequence[MetricOutcome]) -> tuple[str, ...]:
    return tuple(o.alert_issue for o in outcomes if o.alert_issue is not None)


class VentilatorSimulator(DeviceSimulator[VentilatorState]):
    """Temperature, pressure and oxygen; firmware hangs on any Emergency."""

    device = DeviceKind.VENTILATOR

    def initial_state(self) -> VentilatorState:
        return VentilatorState(
            temperature=self._initial_reading(MetricKind.VENTILATOR_TEMPERATURE),
            pressure=self._initial_reading(MetricKind.VENTILATOR_PRESSURE),
            oxygen_level=self._initial_reading(MetricKind.VENTILATOR_OXYGEN),
            firmware_responsive=True,
        )

    def compose(
        self, previous: VentilatorState, outcomes: Sequence[MetricOutcome]
    ) -> TickOutcome[VentilatorState]:
        readings = {o.metric: o.reading for o in outcomes}
        responsive = all(r.status != Severity.EMERGENCY for r in readings.values())
        state = VentilatorState(
            temperature=readings[MetricKind.VENTILATOR_TEMPERATURE],
            pressure=readings[MetricKind.VENTILATOR_PRESSURE],
            oxygen_level=readings[MetricKind.VENTILATOR_OXYGEN],
            firmware_responsive=responsive,
        )

        diagnostics = _metric_diagnostics(outcomes)
        if responsive != previous.firmware_responsive:
            if responsive:
                draft = DiagnosticDraft("Ventilator firmware responsive", Severity.NORMAL)
            else:
                draft = DiagnosticDraft(
                    "CRITICAL: Ventilator firmware unresponsive", Severity.EMERGENCY
                )
            diagnostics.append(draft)
            self.logger.warning("firmware_status_changed", responsive=responsive)

        return TickOutcome(
            state=state, diagnostics=tuple(diagnostics), alert_issues=_alert_issues(outcomes)
        )


class DefibrillatorSimulator(DeviceSimulator[DefibrillatorState]):
    """Battery, ECG and temperature; the capacitor gate ignores ECG."""

    device = DeviceKind.DEFIBRILLATOR

    def initial_state(self) -> DefibrillatorState:
        return DefibrillatorState(
            battery_voltage=self._initial_reading(MetricKind.DEFIBRILLATOR_BATTERY),
            ecg_signal=self._initial_reading(MetricKind.DEFIBRILLATOR_ECG),
            temperature=self._initial_reading(MetricKind.DEFIBRILLATOR_TEMPERATURE),
            capacitor_ready=True,
        )

    def compose(
        self, previous: DefibrillatorState, outcomes: Sequence[MetricOutcome]
    ) -> TickOutcome[DefibrillatorState]:
        readings = {o.metric: o.reading for o in outcomes}
        battery = readings[MetricKind.DEFIBRILLATOR_BATTERY]
        temperature = readings[MetricKind.DEFIBRILLATOR_TEMPERATURE]
        ready = (
            battery.status not in ALERTING_SEVERITIES
            and temperature.status not in ALERTING_SEVERITIES
        )
        state = DefibrillatorState(
            battery_voltage=battery,
            ecg_signal=readings[MetricKind.DEFIBRILLATOR_ECG],
            temperature=temperature,
            capacitor_ready=ready,
        )

        diagnostics = _metric_diagnostics(outcomes)
        if ready != previous.capacitor_ready:
            if ready:
                draft = DiagnosticDraft("Defibrillator capacitor ready", Severity.NORMAL)
            else:
                draft = DiagnosticDraft("Defibrillator capacitor not ready", Severity.ALERT)
            diagnostics.append(draft)
            self.logger.warning("capacitor_readiness_changed", ready=ready)

        return TickOutcome(
            state=state, diagnostics=tuple(diagnostics), alert_issues=_alert_issues(outcomes)
        )
