"""Notification channels for alert signals."""

from tagtracker.notifications.notifier import (
    ConsoleNotifier,
    FileNotifier,
    WebhookNotifier,
)
from tagtracker.notifications.dispatcher import NotificationDispatcher

__all__ = [
    "ConsoleNotifier",
    "FileNotifier",
    "WebhookNotifier",
    "NotificationDispatcher",
]
