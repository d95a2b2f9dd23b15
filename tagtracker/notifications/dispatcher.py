"""Central notification dispatcher — builds notifiers from settings and fans
signals out to them."""

import logging
import queue
from typing import Optional

from tagtracker.alert_scheduler import AlertSignal
from tagtracker.notifications.notifier import (
    ConsoleNotifier,
    FileNotifier,
    WebhookNotifier,
)

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Send alert signals through every enabled channel.

    The file channel is always on; console and webhook are gated by
    settings. A failing channel is logged and reported, never raised.

    Usage::

        dispatcher = NotificationDispatcher.from_settings()
        inbox = alert_scheduler.subscribe()
        dispatcher.drain(inbox)       # call periodically
    """

    def __init__(
        self,
        file_path: Optional[str] = None,
        console: bool = False,
        webhook_url: str = "",
    ):
        self._channels = []
        if console:
            self._channels.append(("console", ConsoleNotifier()))
        if file_path:
            self._channels.append(("file", FileNotifier(log_path=file_path)))
        if webhook_url:
            self._channels.append(("webhook", WebhookNotifier(url=webhook_url)))

    @classmethod
    def from_settings(cls) -> "NotificationDispatcher":
        from config.settings import NOTIFY_CONSOLE, NOTIFY_FILE_PATH, NOTIFY_WEBHOOK_URL
        return cls(
            file_path=NOTIFY_FILE_PATH,
            console=NOTIFY_CONSOLE,
            webhook_url=NOTIFY_WEBHOOK_URL,
        )

    @property
    def channels(self) -> list[str]:
        return [name for name, _ in self._channels]

    def dispatch(self, signals: list[AlertSignal]) -> dict[str, bool]:
        """Returns a dict mapping channel name to success/failure."""
        if not signals:
            return {}

        results: dict[str, bool] = {}
        for name, notifier in self._channels:
            try:
                ok = notifier.send(signals)
                results[name] = ok is not False
            except Exception as exc:
                logger.error("%s notifier failed: %s", name, exc)
                results[name] = False

        logger.debug("Notification dispatch results: %s", results)
        return results

    def drain(self, inbox: queue.Queue) -> dict[str, bool]:
        """Dispatch everything waiting in a subscription queue."""
        signals = []
        while True:
            try:
                signals.append(inbox.get_nowait())
            except queue.Empty:
                break
        return self.dispatch(signals)
