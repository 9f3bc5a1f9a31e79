"""
Simulated readings for device metrics.

The generator is side-effect free apart from drawing from its random source
and reading its clock. Both are injected so a seeded ``random.Random`` and a
fixed clock replay a simulation exactly.
"""

import math
import random
import time
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal

from icu_monitor.domain.models import Severity

Clock = Callable[[], float]

HEALING_RATE = 0.2
HEALING_JITTER = 0.1
ECG_LIMIT = 1.5
SPIKE_FRACTION = 0.3


def round_half_up(value: float, places: int = 1) -> float:
    """Round the exact binary value, ties away from zero.

    This is the display rounding the dashboards use, which differs from
    ``round()`` on ties such as 0.25 or -2.5.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def settle(value: float, minimum: float, maximum: float, places: int = 1) -> float:
    """Clamp and round for display; rounding may not leave the bounds either."""
    return clamp(round_half_up(clamp(value, minimum, maximum), places), minimum, maximum)


class ValueGenerator:
    """Produces the next reading for a metric."""

    def __init__(self, rng: random.Random | None = None, clock: Clock | None = None) -> None:
        self.rng = rng or random.Random()
        self.clock = clock or time.time

    def next_value(
        self,
        current: float,
        minimum: float,
        maximum: float,
        healing: bool,
        target: float | None = None,
        status: Severity = Severity.NORMAL,
    ) -> float:
        """
        Advance a metric by one tick.

        Under correction the value covers 20% of the remaining distance to the
        target plus a little jitter. Otherwise it drifts organically: a slow
        sine term plus a uniform random walk, both scaled by the range and
        doubled once the metric is no longer Normal.
        """
        if healing and target is not None:
            progress = (target - current) * HEALING_RATE
            jitter = (self.rng.random() - 0.5) * HEALING_JITTER
            return settle(current + progress + jitter, minimum, maximum)

        base = (maximum - minimum) * (0.02 if status == Severity.NORMAL else 0.04)
        drift = math.sin(self.clock()) * base * 0.3
        random_walk = (self.rng.random() - 0.5) * base
        return settle(current + random_walk + drift, minimum, maximum)

    def next_ecg(self) -> float:
        """Pseudo-waveform in [-1.5, 1.5]; faster period than organic drift."""
        base_signal = math.sin(self.clock() * 2) * 0.5
        noise = (self.rng.random() - 0.5) * 0.2
        return settle(base_signal + noise, -ECG_LIMIT, ECG_LIMIT, 2)

    def spike(self, current: float, minimum: float, maximum: float) -> float:
        """Sudden jump of 30% of the range in a random direction."""
        direction = 1 if self.rng.random() > 0.5 else -1
        amount = (maximum - minimum) * SPIKE_FRACTION
        return settle(current + amount * direction, minimum, maximum)

    def spike_ecg(self) -> float:
        return ECG_LIMIT if self.rng.random() > 0.5 else -ECG_LIMIT

    def initial_value(self, low: float, high: float, places: int = 1) -> float:
        return round_half_up(self.rng.uniform(low, high), places)
