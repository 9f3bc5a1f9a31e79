"""
Console runner for the ICU device simulation.

Loads configuration, wires the configured alert channel and prints both
devices plus the latest diagnostics after every tick.

Run with: uv run python simulate.py [ticks]
"""

import asyncio
import sys

from rich.console import Console
from rich.table import Table

from adapters.notifications.channels import build_notification_channel
from icu_monitor.config import get_config, print_config_summary, validate_config
from icu_monitor.domain.models import MetricReading, Severity
from icu_monitor.logging_config import configure_logging
from icu_monitor.services.simulation_engine import SimulationEngine, SimulationSnapshot

console = Console()

STATUS_STYLES = {
    Severity.NORMAL: "green",
    Severity.AUTO_FIX: "blue",
    Severity.ALERT: "yellow",
    Severity.EMERGENCY: "bold red",
}


def _reading_row(name: str, reading: MetricReading, unit: str) -> tuple[str, str, str, str]:
    status = reading.display_status
    return (
        name,
        f"{reading.value}{unit}",
        f"[{STATUS_STYLES[status]}]{status.value}[/]",
        reading.correction_message or "",
    )


def render(snapshot: SimulationSnapshot, diagnostics_shown: int = 5) -> None:
    table = Table(title=f"Tick {snapshot.tick}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_column("Status")
    table.add_column("Correction", style="magenta")

    vent = snapshot.ventilator
    table.add_row(*_reading_row("Ventilator temperature", vent.temperature, "°C"))
    table.add_row(*_reading_row("Ventilator pressure", vent.pressure, " cmH₂O"))
    table.add_row(*_reading_row("Ventilator oxygen", vent.oxygen_level, "%"))
    table.add_row(
        "Ventilator firmware", "responsive" if vent.firmware_responsive else "unresponsive", "", ""
    )

    defib = snapshot.defibrillator
    table.add_row(*_reading_row("Defibrillator battery", defib.battery_voltage, "V"))
    table.add_row(*_reading_row("Defibrillator ECG", defib.ecg_signal, "mV"))
    table.add_row(*_reading_row("Defibrillator temperature", defib.temperature, "°C"))
    table.add_row(
        "Defibrillator capacitor", "ready" if defib.capacitor_ready else "not ready", "", ""
    )
    console.print(table)

    for event in snapshot.diagnostics[:diagnostics_shown]:
        style = STATUS_STYLES[event.severity]
        console.print(
            f"  {event.timestamp:%H:%M:%S} [{style}]{event.source_device.display_name}[/] "
            f"{event.text}"
        )


async def main(ticks: int) -> None:
    validate_config()
    config = get_config()
    configure_logging(config.logging)
    if config.debug:
        print_config_summary()

    engine = SimulationEngine(
        config.simulation, notifier=build_notification_channel(config.notifications)
    )

    try:
        async for snapshot in engine.run(max_ticks=ticks):
            render(snapshot)
    finally:
        await engine.stop()
        engine.close()


if __name__ == "__main__":
    tick_limit = int(sys.argv[1]) if len(sys.argv) > 1 else 20
    try:
        asyncio.run(main(tick_limit))
    except KeyboardInterrupt:
        console.print("\nSimulation stopped by user", style="yellow")
