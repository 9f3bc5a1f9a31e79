"""
Notification channels: where alert payloads leave the simulation.

The engine only knows the ``NotificationChannel`` protocol. These adapters are
the concrete deliveries:
- Console: a rich panel per alert, for local runs
- Webhook: JSON POST to an incident endpoint (chat bridge, pager, email relay)

Channels raise on failure; the dispatcher turns that into a diagnostic entry.
"""

import requests
import structlog
from rich.console import Console
from rich.panel import Panel

from icu_monitor.config import NotificationConfig
from icu_monitor.domain.models import AlertPayload
from icu_monitor.services.alert_dispatcher import NotificationChannel

logger = structlog.get_logger(__name__)


class ConsoleNotificationChannel:
    """Development channel that prints each alert to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def __call__(self, payload: AlertPayload) -> None:
        critical = "CRITICAL" in payload.issue
        body = (
            f"Device: {payload.device_name}\n"
            f"Issue: {payload.issue}\n"
            f"Time: {payload.timestamp}"
        )
        self.console.print(
            Panel(body, title="ICU Alert", style="bold red" if critical else "yellow")
        )


class WebhookNotificationChannel:
    """Posts alerts as JSON; non-2xx responses count as delivery failures."""

    def __init__(
        self, url: str, timeout_seconds: float = 5.0, session: requests.Session | None = None
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.logger = logger.bind(component="webhook_channel")

    def __call__(self, payload: AlertPayload) -> None:
        response = self.session.post(
            self.url,
            json={
                "device_name": payload.device_name,
                "issue": payload.issue,
                "timestamp": payload.timestamp,
            },
            headers={"Content-Type": "application/json"},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        self.logger.info(
            "webhook_alert_sent", device=payload.device_name, status_code=response.status_code
        )


def build_notification_channel(config: NotificationConfig) -> NotificationChannel | None:
    """Return the configured channel, or None when notifications are off."""
    if config.channel == "console":
        return ConsoleNotificationChannel()
    if config.channel == "webhook":
        if not config.webhook_url:
            raise ValueError("webhook channel requires a URL")
        return WebhookNotificationChannel(config.webhook_url, config.timeout_seconds)
    return None
