"""Test doubles shared across the ICU monitor tests."""

import random

from icu_monitor.domain.models import AlertPayload


class FixedRandom(random.Random):
    """Random source whose ``random()`` always returns the same draw."""

    def __init__(self, value: float = 0.5) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class RecordingChannel:
    """Notification channel that keeps every payload it receives."""

    def __init__(self) -> None:
        self.payloads: list[AlertPayload] = []

    def __call__(self, payload: AlertPayload) -> None:
        self.payloads.append(payload)

    @property
    def issues(self) -> list[str]:
        return [p.issue for p in self.payloads]
