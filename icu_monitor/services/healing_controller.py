"""
Self-healing decisions.

Healing is for recoverable drift only: a metric in Emergency is reported, never
silently corrected. Outside Emergency, a value that leaves the metric's safe
band is steered back towards the band's midpoint.
"""

from icu_monitor.domain.models import HealingTarget, MetricKind, MetricReading, Severity
from icu_monitor.domain.profiles import DEFAULT_PROFILES, MetricProfile


def evaluate(metric: MetricProfile | MetricKind, reading: MetricReading) -> HealingTarget:
    """Decide whether correction engages for this reading."""
    profile = metric if isinstance(metric, MetricProfile) else DEFAULT_PROFILES[metric]
    idle = HealingTarget(engage=False, target_value=reading.value)

    safe_low, safe_high = profile.safe_low, profile.safe_high
    if reading.status == Severity.EMERGENCY or safe_low is None or safe_high is None:
        return idle
    target = (safe_low + safe_high) / 2

    high, low = profile.heal_high_message, profile.heal_low_message
    if high is not None and reading.value > safe_high:
        return HealingTarget(engage=True, target_value=target, message=high)
    if low is not None and reading.value < safe_low:
        return HealingTarget(engage=True, target_value=target, message=low)
    return idle
