"""
Metric profiles: the threshold and healing table behind every simulated metric.

A profile carries everything the generic per-metric routine needs, so no
service has to branch on metric identity:
- simulation bounds and start range for the value generator
- strict emergency/alert thresholds for the classifier
- the narrower safe band and direction-specific messages for healing
- the wording of diagnostic lines and alert issues

Profiles are validated on construction, which makes a malformed table fail
before the tick loop ever starts.
"""

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, model_validator

from icu_monitor.domain.models import DeviceKind, MetricKind


class MetricProfile(BaseModel):
    """Static description of one metric."""

    model_config = ConfigDict(frozen=True)

    metric: MetricKind
    label: str = Field(description="Name used in diagnostic lines, e.g. 'Oxygen level'")
    alert_label: str = Field(description="Name used in alert issues, e.g. 'Oxygen Level'")
    unit: str = Field(default="", description="Suffix appended to values in alert issues")

    # Simulation
    min_value: float
    max_value: float
    initial_low: float
    initial_high: float
    waveform: bool = Field(default=False, description="Driven by the ECG waveform generator")
    decimals: int = Field(default=1, ge=0)

    # Classification, strict comparisons
    emergency_above: float | None = None
    emergency_below: float | None = None
    alert_above: float | None = None
    alert_below: float | None = None

    # Healing
    safe_low: float | None = None
    safe_high: float | None = None
    heal_high_message: str | None = None
    heal_low_message: str | None = None

    # Wording overrides
    alert_diagnostic: str | None = None
    alert_issue: str | None = Field(
        default=None, description="Format string with {value}; replaces the default issue text"
    )

    @property
    def device(self) -> DeviceKind:
        return self.metric.device

    @property
    def heals(self) -> bool:
        return self.heal_high_message is not None or self.heal_low_message is not None

    @property
    def safe_midpoint(self) -> float | None:
        if self.safe_low is None or self.safe_high is None:
            return None
        return (self.safe_low + self.safe_high) / 2

    @model_validator(mode="after")
    def check_ordering(self) -> "MetricProfile":
        if self.min_value >= self.max_value:
            raise ValueError(f"{self.metric.value}: min_value must be below max_value")
        if not self.min_value <= self.initial_low <= self.initial_high <= self.max_value:
            raise ValueError(f"{self.metric.value}: initial range must lie within the bounds")

        if self.emergency_above is not None and self.alert_above is not None:
            if self.emergency_above < self.alert_above:
                raise ValueError(f"{self.metric.value}: emergency_above below alert_above")
        if self.emergency_below is not None and self.alert_below is not None:
            if self.emergency_below > self.alert_below:
                raise ValueError(f"{self.metric.value}: emergency_below above alert_below")

        if not self.heals:
            return self

        if self.waveform:
            raise ValueError(f"{self.metric.value}: waveform metrics cannot heal")
        if self.safe_low is None or self.safe_high is None:
            raise ValueError(f"{self.metric.value}: healing needs a safe band")
        if self.safe_low >= self.safe_high:
            raise ValueError(f"{self.metric.value}: safe_low must be below safe_high")
        if not self.min_value <= self.safe_low < self.safe_high <= self.max_value:
            raise ValueError(f"{self.metric.value}: safe band must lie within the bounds")

        normal_low = self.alert_below if self.alert_below is not None else self.emergency_below
        normal_high = self.alert_above if self.alert_above is not None else self.emergency_above
        if normal_low is not None and self.safe_low < normal_low:
            raise ValueError(f"{self.metric.value}: safe band extends below the normal band")
        if normal_high is not None and self.safe_high > normal_high:
            raise ValueError(f"{self.metric.value}: safe band extends above the normal band")
        return self


def validate_profiles(profiles: Mapping[MetricKind, MetricProfile]) -> None:
    """Fail fast on an incomplete or mis-keyed profile table."""
    missing = set(MetricKind) - set(profiles)
    if missing:
        names = ", ".join(sorted(m.value for m in missing))
        raise ValueError(f"metric profiles missing for: {names}")
    for key, profile in profiles.items():
        if key != profile.metric:
            raise ValueError(f"profile for {profile.metric.value} registered as {key.value}")


_PROFILES = [
    MetricProfile(
        metric=MetricKind.VENTILATOR_TEMPERATURE,
        label="Temperature",
        alert_label="Temperature",
        unit="°C",
        min_value=15,
        max_value=45,
        initial_low=35,
        initial_high=37,
        emergency_above=40,
        alert_above=38,
        alert_below=20,
        safe_low=25,
        safe_high=35,
        heal_high_message="Activating internal cooling system...",
        heal_low_message="Increasing warming elements...",
    ),
    MetricProfile(
        metric=MetricKind.VENTILATOR_PRESSURE,
        label="Pressure",
        alert_label="Pressure",
        unit=" cmH₂O",
        min_value=2,
        max_value=45,
        initial_low=15,
        initial_high=25,
        emergency_above=40,
        alert_above=35,
        alert_below=5,
        safe_low=15,
        safe_high=25,
        heal_high_message="Reducing pressure gradually...",
        heal_low_message="Increasing pressure to optimal levels...",
    ),
    MetricProfile(
        metric=MetricKind.VENTILATOR_OXYGEN,
        label="Oxygen level",
        alert_label="Oxygen Level",
        unit="%",
        min_value=80,
        max_value=100,
        initial_low=95,
        initial_high=98,
        emergency_below=85,
        alert_below=90,
        safe_low=94,
        safe_high=98,
        heal_low_message="Adjusting oxygen flow rate...",
    ),
    MetricProfile(
        metric=MetricKind.DEFIBRILLATOR_BATTERY,
        label="Battery voltage",
        alert_label="Battery",
        unit="V",
        min_value=9,
        max_value=14,
        initial_low=12.5,
        initial_high=13.5,
        emergency_below=10,
        alert_below=11,
        safe_low=12,
        safe_high=13.5,
        heal_low_message="Activating backup power source...",
    ),
    MetricProfile(
        metric=MetricKind.DEFIBRILLATOR_ECG,
        label="ECG signal",
        alert_label="ECG Signal",
        unit="mV",
        min_value=-1.5,
        max_value=1.5,
        initial_low=-0.5,
        initial_high=0.5,
        waveform=True,
        decimals=2,
        alert_above=1,
        alert_below=-1,
        alert_diagnostic="ECG signal alert: Abnormal reading",
        alert_issue="ECG Signal Abnormal: {value}mV",
    ),
    MetricProfile(
        metric=MetricKind.DEFIBRILLATOR_TEMPERATURE,
        label="Temperature",
        alert_label="Temperature",
        unit="°C",
        min_value=15,
        max_value=50,
        initial_low=35,
        initial_high=37,
        emergency_above=45,
        alert_above=40,
        alert_below=20,
        safe_low=25,
        safe_high=35,
        heal_high_message="Initiating cooling protocol...",
        heal_low_message="Warming internal components...",
    ),
]

DEFAULT_PROFILES: Mapping[MetricKind, MetricProfile] = MappingProxyType(
    {profile.metric: profile for profile in _PROFILES}
)

validate_profiles(DEFAULT_PROFILES)
