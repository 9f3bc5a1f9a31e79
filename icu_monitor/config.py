"""
Simulator configuration read from the environment (and an optional .env file).

Everything is validated when first loaded, so a bad tick interval, log
capacity or webhook URL stops the process before the first tick. Webhook
URLs only ever come from the environment.
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()

NotificationChannelName = Literal["console", "webhook", "none"]


class SimulationConfig(BaseModel):
    """Tick timing, log size and reproducibility."""

    tick_interval_seconds: float = Field(
        default=3.0, gt=0.0, description="Interval between simulation ticks"
    )
    diagnostic_capacity: int = Field(
        default=100, gt=0, description="Number of diagnostic events kept, most recent first"
    )
    seed: int | None = Field(
        default=None, description="Seed for the random source; None draws a fresh one"
    )


class NotificationConfig(BaseModel):
    """Where alert payloads are delivered."""

    channel: NotificationChannelName = Field(default="console", description="Alert channel")
    webhook_url: str | None = Field(default=None, description="Target URL for the webhook channel")
    timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Timeout for a single webhook delivery"
    )

    @model_validator(mode="after")
    def webhook_needs_url(self) -> "NotificationConfig":
        if self.channel == "webhook":
            if not self.webhook_url:
                raise ValueError("webhook channel requires ALERT_WEBHOOK_URL")
            if not self.webhook_url.startswith(("http://", "https://")):
                raise ValueError("ALERT_WEBHOOK_URL must be an http(s) URL")
        return self


class LoggingConfig(BaseModel):
    """Log level and renderer."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Root log level"
    )
    format: Literal["json", "console"] = Field(
        default="json", description="json for aggregation, console for local runs"
    )


class AppConfig(BaseModel):
    """Top-level configuration: environment plus one section per subsystem."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _channel_to_literal(val: str) -> NotificationChannelName:
        v = val.strip().lower()
        if v not in {"console", "webhook", "none"}:
            raise ValueError(f"Unknown NOTIFICATION_CHANNEL: {val}")
        return cast(NotificationChannelName, v)

    def _parse_optional_int(val: str | None) -> int | None:
        if val is None or not val.strip():
            return None
        return int(val)

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    simulation_config = SimulationConfig(
        tick_interval_seconds=float(os.getenv("TICK_INTERVAL_SECONDS", "3.0")),
        diagnostic_capacity=int(os.getenv("DIAGNOSTIC_CAPACITY", "100")),
        seed=_parse_optional_int(os.getenv("SIMULATION_SEED")),
    )

    notification_config = NotificationConfig(
        channel=_channel_to_literal(os.getenv("NOTIFICATION_CHANNEL", "console")),
        webhook_url=os.getenv("ALERT_WEBHOOK_URL") or None,
        timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5.0")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        simulation=simulation_config,
        notifications=notification_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
        if config.notifications.channel == "none":
            print("Alert notifications disabled; alerts are logged only")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nSIMULATION")
    print(f"Tick Interval: {config.simulation.tick_interval_seconds}s")
    print(f"Diagnostic Capacity: {config.simulation.diagnostic_capacity}")
    print(f"Seed: {config.simulation.seed if config.simulation.seed is not None else 'random'}")

    print("\nNOTIFICATIONS")
    print(f"Channel: {config.notifications.channel}")
    if config.notifications.channel == "webhook":
        print(f"Webhook: {config.notifications.webhook_url}")
        print(f"Timeout: {config.notifications.timeout_seconds}s")


if __name__ == "__main__":
    # Print the resolved configuration
    validate_config()
    print_config_summary()
