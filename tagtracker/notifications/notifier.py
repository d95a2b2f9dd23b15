"""
Delivery channels for alert signals.

Supports:
- Console output (rings the terminal bell when a signal asks for sound)
- Log file
- Webhook (JSON POST of newly raised alerts)
"""

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from tagtracker.alert_scheduler import AlertSignal, EventKind, Severity

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """Print signals to stdout."""

    SEVERITY_ICONS = {
        Severity.WARNING: "[!]",
        Severity.CRITICAL: "[XXX]",
    }

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def send(self, signals: list[AlertSignal]) -> None:
        for signal in signals:
            event = signal.event
            if signal.kind == EventKind.CLEARED:
                print(f"  [ok] cleared {event.event_id} ({signal.reason})", file=self.stream)
                continue
            icon = self.SEVERITY_ICONS.get(event.severity, "   ")
            bell = "\a" if signal.play_sound else ""
            print(f"{bell}  {icon} {event.title:22s} | {event.message}", file=self.stream)
            if event.location_name:
                print(f"       Location: {event.location_name}", file=self.stream)
            print(f"       Time remaining: {event.time_remaining}", file=self.stream)
        self.stream.flush()


class FileNotifier:
    """Append signals to a log file."""

    def __init__(self, log_path: str = "data/alerts.log"):
        self.log_path = Path(log_path)

    def send(self, signals: list[AlertSignal]) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

        lines = []
        for s in signals:
            e = s.event
            lines.append(
                f"{timestamp} {s.kind.value:7s} [{e.severity.value.upper():8s}] "
                f"{e.event_id} - {e.product_name} @ {e.location_name} - "
                f"{e.time_remaining}"
                f"{' - ' + s.reason if s.reason else ''}\n"
            )

        with self.log_path.open("a") as f:
            f.writelines(lines)


class WebhookNotifier:
    """POST newly raised alerts to a webhook as JSON.

    Cleared signals are not sent; a receiver only hears about conditions
    someone has to act on. The body looks like::

        {"sent_at": "...", "critical": 1, "warning": 0,
         "events": [{"event_id": "expired_tag_1", "play_sound": true, ...}]}
    """

    def __init__(self, url: str, headers: Optional[dict] = None, timeout: float = 10):
        self.url = url
        self.headers = headers or {"Content-Type": "application/json"}
        self.timeout = timeout

    def send(self, signals: list[AlertSignal]) -> bool:
        """Returns False only when a request was made and failed."""
        raised = [s for s in signals if s.kind == EventKind.RAISED]
        if not raised:
            return True

        severities = [s.event.severity for s in raised]
        payload = {
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "critical": severities.count(Severity.CRITICAL),
            "warning": severities.count(Severity.WARNING),
            "events": [
                dict(s.event.to_dict(), play_sound=s.play_sound) for s in raised
            ],
        }
        req = urllib.request.Request(
            self.url,
            data=json.dumps(payload).encode(),
            headers=self.headers,
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                logger.info("Webhook sent %d alert(s), status: %s", len(raised), resp.status)
                return resp.status < 400
        except OSError as exc:
            logger.error("Webhook to %s failed: %s", self.url, exc)
            return False
