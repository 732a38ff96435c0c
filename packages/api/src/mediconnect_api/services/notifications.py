"""Fire-and-forget notification delivery.

Workflow services hand events to an in-process asyncio queue; a background
consumer task started in the app lifespan drains it into a sink. Publishing
never blocks and never raises, so workflow state never depends on
notification delivery. The module exposes a singleton initialised at app
startup via ``init_notification_dispatcher()``.
"""

import asyncio
import contextlib
import logging

import httpx
from pydantic import BaseModel

from ..core.config import Settings

logger = logging.getLogger(__name__)


class NotificationEvent(BaseModel):
    """User-facing alert describing a workflow change."""

    user_id: str
    title: str
    message: str
    type: str = "visa"
    related_id: int | None = None


class LoggingNotificationSink:
    """Sink used when no webhook is configured."""

    async def send(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification for %s: %s (type=%s, related_id=%s)",
            event.user_id,
            event.title,
            event.type,
            event.related_id,
        )


class WebhookNotificationSink:
    """POSTs each event as JSON to an external notification service."""

    def __init__(self, url: str, timeout: float = 5.0):
        self._url = url
        self._timeout = timeout

    async def send(self, event: NotificationEvent) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._url, json=event.model_dump())
            response.raise_for_status()


class NotificationDispatcher:
    """Bounded queue plus a single consumer task delivering to a sink."""

    def __init__(self, sink, maxsize: int = 1000):
        self.sink = sink
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def publish(self, event: NotificationEvent) -> bool:
        """Enqueue an event without waiting. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Notification queue full, dropping '%s' for %s", event.title, event.user_id,
            )
            return False
        return True

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.deliver(event)
            finally:
                self._queue.task_done()

    async def deliver(self, event: NotificationEvent) -> bool:
        """Send one event to the sink. Failures are logged, never raised."""
        try:
            await self.sink.send(event)
        except Exception:
            logger.warning(
                "Notification delivery failed for %s (%s)",
                event.user_id,
                event.title,
                exc_info=True,
            )
            return False
        return True

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """Give queued events a bounded chance to drain, then cancel the consumer."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except TimeoutError:
            logger.warning("Dropping %d undelivered notifications on shutdown", self.pending)
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_dispatcher: NotificationDispatcher | None = None


def build_sink(cfg: Settings):
    if cfg.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationSink(
            cfg.NOTIFICATION_WEBHOOK_URL, timeout=cfg.NOTIFICATION_TIMEOUT_SECONDS,
        )
    return LoggingNotificationSink()


def init_notification_dispatcher(cfg: Settings) -> NotificationDispatcher:
    """Initialise and start the singleton (called once from app lifespan)."""
    global _dispatcher  # noqa: PLW0603
    _dispatcher = NotificationDispatcher(build_sink(cfg), maxsize=cfg.NOTIFICATION_QUEUE_SIZE)
    _dispatcher.start()
    logger.info(
        "NotificationDispatcher started (webhook=%s)",
        "on" if cfg.NOTIFICATION_WEBHOOK_URL else "off",
    )
    return _dispatcher


async def shutdown_notification_dispatcher() -> None:
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is not None:
        await _dispatcher.stop()
        _dispatcher = None


def notify(
    user_id: str,
    title: str,
    message: str,
    type: str = "visa",
    related_id: int | None = None,
) -> bool:
    """Publish a notification if the dispatcher is running. Never raises."""
    if _dispatcher is None:
        logger.debug("Notification dispatcher not running, dropping '%s'", title)
        return False
    try:
        return _dispatcher.publish(
            NotificationEvent(
                user_id=user_id, title=title, message=message, type=type, related_id=related_id,
            )
        )
    except Exception:
        logger.warning("Failed to publish notification '%s'", title, exc_info=True)
        return False
