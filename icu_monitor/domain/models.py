"""
Domain models for ICU device telemetry.

These models represent the core monitoring concepts and are framework-agnostic.
All of them are frozen: a device's state is replaced wholesale every tick,
never mutated in place, so readers always observe a complete snapshot.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class Severity(str, Enum):
    """Health classification of a metric, a device or a diagnostic line."""

    NORMAL = "normal"
    AUTO_FIX = "auto-fix"
    ALERT = "alert"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.NORMAL: 0,
    Severity.AUTO_FIX: 1,
    Severity.ALERT: 2,
    Severity.EMERGENCY: 3,
}


def worst_severity(severities: Iterable[Severity]) -> Severity:
    """Composite status: Emergency > Alert > AutoFix > Normal."""
    return max(severities, key=lambda s: s.rank, default=Severity.NORMAL)


class DeviceKind(str, Enum):
    """Devices the simulation knows about."""

    VENTILATOR = "ventilator"
    DEFIBRILLATOR = "defibrillator"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class MetricKind(str, Enum):
    """Every simulated metric, qualified by the device that owns it."""

    VENTILATOR_TEMPERATURE = "ventilator_temperature"
    VENTILATOR_PRESSURE = "ventilator_pressure"
    VENTILATOR_OXYGEN = "ventilator_oxygen"
    DEFIBRILLATOR_BATTERY = "defibrillator_battery"
    DEFIBRILLATOR_ECG = "defibrillator_ecg"
    DEFIBRILLATOR_TEMPERATURE = "defibrillator_temperature"

    @property
    def device(self) -> DeviceKind:
        return DeviceKind(self.value.split("_", 1)[0])


class MetricReading(BaseModel):
    """One metric's value and health as of the latest tick."""

    model_config = ConfigDict(frozen=True)

    value: float
    status: Severity = Severity.NORMAL
    is_healing: bool = False
    correction_message: str | None = None

    @model_validator(mode="after")
    def healing_requires_message(self) -> "MetricReading":
        if self.is_healing and self.correction_message is None:
            raise ValueError("a healing reading must carry a correction message")
        return self

    @computed_field(return_type=Severity)
    def display_status(self) -> Severity:
        """Normal readings under active correction show as auto-fix."""
        if self.is_healing and self.status == Severity.NORMAL:
            return Severity.AUTO_FIX
        return self.status


class VentilatorState(BaseModel):
    """Full ventilator snapshot."""

    model_config = ConfigDict(frozen=True)

    temperature: MetricReading
    pressure: MetricReading
    oxygen_level: MetricReading
    firmware_responsive: bool = True

    def readings(self) -> dict[MetricKind, MetricReading]:
        return {
            MetricKind.VENTILATOR_TEMPERATURE: self.temperature,
            MetricKind.VENTILATOR_PRESSURE: self.pressure,
            MetricKind.VENTILATOR_OXYGEN: self.oxygen_level,
        }

    @computed_field(return_type=Severity)
    def composite_status(self) -> Severity:
        return worst_severity(r.display_status for r in self.readings().values())


class DefibrillatorState(BaseModel):
    """Full defibrillator snapshot."""

    model_config = ConfigDict(frozen=True)

    battery_voltage: MetricReading
    ecg_signal: MetricReading
    temperature: MetricReading
    capacitor_ready: bool = True

    def readings(self) -> dict[MetricKind, MetricReading]:
        return {
            MetricKind.DEFIBRILLATOR_BATTERY: self.battery_voltage,
            MetricKind.DEFIBRILLATOR_ECG: self.ecg_signal,
            MetricKind.DEFIBRILLATOR_TEMPERATURE: self.temperature,
        }

    @computed_field(return_type=Severity)
    def composite_status(self) -> Severity:
        return worst_severity(r.display_status for r in self.readings().values())


class DiagnosticEvent(BaseModel):
    """Human-readable line in the diagnostic log."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    text: str = Field(min_length=1)
    severity: Severity
    source_device: DeviceKind


class HealingTarget(BaseModel):
    """Healing decision for a single metric, recomputed every tick."""

    model_config = ConfigDict(frozen=True)

    engage: bool
    target_value: float
    message: str | None = None


class AlertPayload(BaseModel):
    """What the external notification channel receives."""

    model_config = ConfigDict(frozen=True)

    device_name: str
    issue: str
    timestamp: str
