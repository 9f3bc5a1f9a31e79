"""
Fire-and-forget hand-off of alert payloads to the external notification channel.

The simulation never waits on delivery. Inside a running event loop each
delivery becomes a task (synchronous channels run via ``asyncio.to_thread``);
without a loop, deliveries run on a single worker thread. Delivery errors are
logged and reported through ``on_failure``, never raised to the caller.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Protocol

import structlog

from icu_monitor.domain.models import AlertPayload

logger = structlog.get_logger(__name__)

FailureHandler = Callable[[str, str], None]


class NotificationChannel(Protocol):
    """Anything callable with an alert payload; may be sync or async."""

    def __call__(self, payload: AlertPayload) -> None | Awaitable[None]: ...


def _is_async_channel(channel: Any) -> bool:
    return inspect.iscoroutinefunction(channel) or inspect.iscoroutinefunction(
        getattr(channel, "__call__", None)
    )


async def _await(awaitable: Awaitable[None]) -> None:
    await awaitable


class AlertDispatcher:
    """Builds alert payloads and delivers them without blocking the tick."""

    def __init__(
        self,
        channel: NotificationChannel | None = None,
        on_failure: FailureHandler | None = None,
    ) -> None:
        self.channel = channel
        self.on_failure = on_failure
        self.logger = logger.bind(component="alert_dispatcher")
        self._tasks: set[asyncio.Task[None]] = set()
        self._futures: set[Future[None]] = set()
        self._executor: ThreadPoolExecutor | None = None

    def dispatch(self, device_name: str, issue: str, timestamp: str) -> AlertPayload:
        """Queue delivery of one alert and return immediately."""
        payload = AlertPayload(device_name=device_name, issue=issue, timestamp=timestamp)
        self.logger.warning("alert_dispatched", device=device_name, issue=issue)

        if self.channel is None:
            return payload

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._deliver_async(payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="alert-dispatch"
                )
            future = self._executor.submit(self._deliver_sync, payload)
            self._futures.add(future)
            future.add_done_callback(self._futures.discard)
        return payload

    async def _deliver_async(self, payload: AlertPayload) -> None:
        channel = self.channel
        if channel is None:
            return
        try:
            if _is_async_channel(channel):
                await channel(payload)  # type: ignore[misc]
            else:
                result = await asyncio.to_thread(channel, payload)
                if inspect.isawaitable(result):
                    await result
            self.logger.info("alert_delivered", device=payload.device_name)
        except Exception as e:
            self._report_failure(payload, e)

    def _deliver_sync(self, payload: AlertPayload) -> None:
        channel = self.channel
        if channel is None:
            return
        try:
            result = channel(payload)
            if inspect.isawaitable(result):
                asyncio.run(_await(result))
            self.logger.info("alert_delivered", device=payload.device_name)
        except Exception as e:
            self._report_failure(payload, e)

    def _report_failure(self, payload: AlertPayload, error: Exception) -> None:
        self.logger.error(
            "alert_delivery_failed",
            device=payload.device_name,
            issue=payload.issue,
            error=str(error),
        )
        if self.on_failure is not None:
            self.on_failure(payload.device_name, f"Alert notification failed: {error}")

    @property
    def pending(self) -> int:
        return len(self._tasks) + len(self._futures)

    def flush(self, timeout: float | None = None) -> None:
        """Wait for deliveries running on the worker thread."""
        if self._futures:
            wait(list(self._futures), timeout=timeout)

    async def wait_idle(self) -> None:
        """Wait for deliveries scheduled on the running event loop."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
