"""
Status classification and edge-triggered transition detection.

Classification is a pure function of a metric's profile and value. Whether a
change of status deserves an alert is a separate question answered by
``is_alert_transition``; the device aggregator asks it explicitly and owns the
notification side effect.
"""

from icu_monitor.domain.models import MetricKind, Severity
from icu_monitor.domain.profiles import DEFAULT_PROFILES, MetricProfile

ALERTING_SEVERITIES = frozenset({Severity.ALERT, Severity.EMERGENCY})


def classify(metric: MetricProfile | MetricKind, value: float) -> Severity:
    """Map a value to Normal, Alert or Emergency using strict thresholds."""
    profile = metric if isinstance(metric, MetricProfile) else DEFAULT_PROFILES[metric]

    if profile.emergency_above is not None and value > profile.emergency_above:
        return Severity.EMERGENCY
    if profile.emergency_below is not None and value < profile.emergency_below:
        return Severity.EMERGENCY
    if profile.alert_above is not None and value > profile.alert_above:
        return Severity.ALERT
    if profile.alert_below is not None and value < profile.alert_below:
        return Severity.ALERT
    return Severity.NORMAL


def is_alert_transition(previous: Severity, current: Severity) -> bool:
    """True only when a metric newly enters Alert or Emergency."""
    return current != previous and current in ALERTING_SEVERITIES
