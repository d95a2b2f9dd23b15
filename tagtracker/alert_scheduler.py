"""
Alert scheduler — re-evaluates the active tags of one viewer scope on a
fixed interval and turns status changes into notification signals.

Each tick fetches the scope's active tags, classifies them, and diffs the
expiring-soon (warning) and expired (critical) conditions against the
previous tick:

- a condition seen for the first time is ``raised`` (critical raises ask
  the presentation layer to play the alert sound, once);
- a condition that is still present stays live;
- a live condition that disappeared is ``cleared``.

Ticks never overlap. A failed fetch keeps the previous live set as it was.
"""

import logging
import queue
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from tagtracker.models import LifecycleState, Tag
from tagtracker.registry import TagNotFound
from tagtracker.status import TagStatus, classify
from tagtracker.utils import as_utc, fmt_dt, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


# Lower ranks are shown first.
SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1}

EVENT_PREFIX = {Severity.CRITICAL: "expired", Severity.WARNING: "expiring"}


class EventKind(str, Enum):
    RAISED = "raised"
    CLEARED = "cleared"


class FetchFailure(RuntimeError):
    """The store could not be read during a tick."""


@dataclass(frozen=True)
class ViewerScope:
    """The tags one viewer is shown: all locations, or a single one."""

    location_id: Optional[str] = None

    @classmethod
    def for_role(cls, role: str, location_id: Optional[str] = None) -> "ViewerScope":
        """Admins see every location; managers and kitchen staff see one."""
        if role == "admin":
            return cls()
        if not location_id:
            raise ValueError(f"A {role} viewer needs a location")
        return cls(location_id=location_id)

    @property
    def key(self) -> str:
        return self.location_id or "*"


@dataclass(frozen=True)
class NotificationEvent:
    """A live warning or critical condition for one tag."""

    event_id: str
    severity: Severity
    tag_id: str
    product_name: str
    location_name: str
    minutes_to_discard: int
    time_remaining: str
    generated_at: datetime

    @property
    def title(self) -> str:
        if self.severity == Severity.CRITICAL:
            return "PRODUCT EXPIRED"
        return "PRODUCT EXPIRING SOON"

    @property
    def message(self) -> str:
        name = self.product_name or "Unknown product"
        if self.severity == Severity.CRITICAL:
            return f"{name} has expired and must be discarded immediately!"
        return f"{name} will expire in {self.minutes_to_discard} minutes."

    def sort_key(self) -> tuple:
        return (SEVERITY_RANK[self.severity], as_utc(self.generated_at), self.tag_id)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "severity": self.severity.value,
            "tag_id": self.tag_id,
            "title": self.title,
            "message": self.message,
            "product_name": self.product_name,
            "location_name": self.location_name,
            "minutes_to_discard": self.minutes_to_discard,
            "time_remaining": self.time_remaining,
            "generated_at": fmt_dt(self.generated_at),
        }


@dataclass(frozen=True)
class AlertSignal:
    """One element of the notification stream."""

    kind: EventKind
    event: NotificationEvent
    play_sound: bool = False
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "play_sound": self.play_sound,
            "reason": self.reason,
            "event": self.event.to_dict(),
        }


def event_for(tag: Tag, now: datetime) -> Optional[NotificationEvent]:
    """The alert condition a tag is in at *now*, if any."""
    verdict = classify(tag.ready_at, tag.discard_at, now)
    if verdict.status == TagStatus.EXPIRED:
        severity = Severity.CRITICAL
        time_remaining = "EXPIRED"
    elif verdict.status == TagStatus.EXPIRING_SOON:
        severity = Severity.WARNING
        time_remaining = f"{verdict.minutes_to_discard} minutes"
    else:
        return None

    return NotificationEvent(
        event_id=f"{EVENT_PREFIX[severity]}_{tag.tag_id}",
        severity=severity,
        tag_id=tag.tag_id,
        product_name=tag.product_name,
        location_name=tag.location_name,
        minutes_to_discard=verdict.minutes_to_discard,
        time_remaining=time_remaining,
        generated_at=now,
    )


class AlertScheduler:
    """Recurring expiry checks and the live notification set for one scope.

    Usage:
        alerts = AlertScheduler(tag_registry, ViewerScope("loc_1")).start()
        inbox = alerts.subscribe()          # queue.Queue of AlertSignal
        current = alerts.front()            # most urgent live event
        alerts.acknowledge(current.event_id)
        alerts.stop()

    Tests drive ``tick()`` directly with an injected clock instead of
    starting the background job.
    """

    def __init__(
        self,
        tag_store,
        scope: ViewerScope = ViewerScope(),
        interval: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = tag_store
        self.scope = scope
        self.interval = interval
        self._clock = clock

        # Guards the live set, suppression set, subscribers and status.
        self._lock = threading.RLock()
        # Held for a whole tick so ticks never overlap.
        self._tick_lock = threading.Lock()

        self._live: dict[str, NotificationEvent] = {}
        self._suppressed: set[str] = set()
        self._subscribers: list[queue.Queue] = []

        self._generation = 0
        self._stopped = False
        self._scheduler: Optional[BackgroundScheduler] = None
        self._owns_scheduler = False
        self._job = None

        self._last_tick_at: Optional[datetime] = None
        self._last_success_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._job is not None and not self._stopped

    def start(
        self,
        scheduler: Optional[BackgroundScheduler] = None,
        job_id: Optional[str] = None,
    ) -> "AlertScheduler":
        """Schedule ticks every ``interval`` seconds, starting now.

        Pass a shared ``BackgroundScheduler`` to run alongside other jobs;
        otherwise a private one is created and started. On a shared
        scheduler *job_id* must be unique per loop, since an existing job
        with the same id is replaced.
        """
        with self._lock:
            if self._job is not None:
                return self
            self._stopped = False

        owns = scheduler is None
        if owns:
            scheduler = BackgroundScheduler(daemon=True)

        self._scheduler = scheduler
        self._owns_scheduler = owns
        self._job = scheduler.add_job(
            func=self.tick,
            trigger="interval",
            seconds=self.interval,
            id=job_id or f"alerts:{self.scope.key}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        if owns:
            scheduler.start()

        logger.info(
            "Alert checks started for scope %s every %s second(s)",
            self.scope.key, self.interval,
        )
        return self

    def stop(self) -> None:
        """Stop ticking. No signal is published after this returns and a
        fetch still in flight has its result thrown away."""
        with self._lock:
            self._stopped = True
            self._generation += 1
            job, self._job = self._job, None

        if job is not None:
            try:
                job.remove()
            except JobLookupError:
                pass
        if self._owns_scheduler and self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._owns_scheduler = False

        logger.info("Alert checks stopped for scope %s", self.scope.key)

    # ── Evaluation ───────────────────────────────────────────────

    def tick(self) -> bool:
        """Run one evaluation.

        Returns False when the fetch failed or the scheduler was stopped
        while it was in flight; the live set is unchanged in both cases.
        """
        with self._tick_lock:
            with self._lock:
                if self._stopped:
                    return False
                generation = self._generation

            try:
                tags = self._fetch()
            except FetchFailure as exc:
                with self._lock:
                    if generation == self._generation:
                        self._last_tick_at = self._clock()
                        self._last_error = str(exc)
                logger.warning("Alert check for scope %s failed: %s", self.scope.key, exc)
                return False

            now = self._clock()
            with self._lock:
                if generation != self._generation:
                    logger.debug("Discarding alert check result for scope %s", self.scope.key)
                    return False
                signals = self._apply(tags, now)
                self._last_tick_at = now
                self._last_success_at = now
                self._last_error = None
                self._publish(signals)

        if signals:
            logger.info(
                "Scope %s: %d signal(s), %d live event(s)",
                self.scope.key, len(signals), len(self._live),
            )
        return True

    def _fetch(self) -> list[Tag]:
        try:
            return self._store.list(
                location_id=self.scope.location_id,
                state=LifecycleState.ACTIVE,
            )
        except Exception as exc:
            raise FetchFailure(f"{type(exc).__name__}: {exc}") from exc

    def _apply(self, tags: list[Tag], now: datetime) -> list[AlertSignal]:
        """Diff the conditions at *now* against the live set. Caller holds the lock."""
        current: dict[str, NotificationEvent] = {}
        for tag in tags:
            if tag.lifecycle_state != LifecycleState.ACTIVE:
                continue
            event = event_for(tag, now)
            if event is not None:
                current[event.event_id] = event
        present_tags = {e.tag_id for e in current.values()}
        fetched_tags = {t.tag_id for t in tags}

        # An acknowledged condition may raise again only after it has cleared.
        self._suppressed.intersection_update(current)

        cleared = []
        for event_id in [e for e in self._live if e not in current]:
            event = self._live.pop(event_id)
            if event.tag_id in present_tags:
                reason = "escalated" if event.severity == Severity.WARNING else "condition_cleared"
            elif event.tag_id not in fetched_tags:
                reason = "tag_inactive"
            else:
                reason = "condition_cleared"
            cleared.append(AlertSignal(EventKind.CLEARED, event, reason=reason))

        raised = []
        for event_id, fresh in current.items():
            if event_id in self._suppressed:
                continue
            live = self._live.get(event_id)
            if live is not None:
                self._live[event_id] = replace(
                    live,
                    product_name=fresh.product_name,
                    location_name=fresh.location_name,
                    minutes_to_discard=fresh.minutes_to_discard,
                    time_remaining=fresh.time_remaining,
                )
                continue
            self._live[event_id] = fresh
            raised.append(AlertSignal(
                EventKind.RAISED,
                fresh,
                play_sound=fresh.severity == Severity.CRITICAL,
                reason="new_condition",
            ))

        raised.sort(key=lambda s: s.event.sort_key())
        return cleared + raised

    # ── Acknowledgment ───────────────────────────────────────────

    def acknowledge(self, event_id: str) -> Optional[NotificationEvent]:
        """Dismiss a live event.

        Acknowledging a critical event discards its tag in the store, since
        the product is physically gone. Returns ``None`` for an id that is
        no longer live; dismissals racing a clearing tick are expected.
        """
        with self._lock:
            event = self._live.get(event_id)
        if event is None:
            logger.debug("Acknowledge for %s ignored: not live", event_id)
            return None

        if event.severity == Severity.CRITICAL:
            try:
                self._store.update(event.tag_id, lifecycle_state=LifecycleState.DISCARDED)
            except TagNotFound:
                logger.warning("Tag %s missing while acknowledging %s", event.tag_id, event_id)

        with self._lock:
            if self._live.pop(event_id, None) is not None:
                self._suppressed.add(event_id)
                self._publish([AlertSignal(EventKind.CLEARED, event, reason="acknowledged")])

        logger.info("Acknowledged %s (%s)", event_id, event.severity.value)
        return event

    # ── Presentation interface ───────────────────────────────────

    def live_events(self) -> list[NotificationEvent]:
        """Live events, most urgent first: critical before warning, then
        oldest ``generated_at``, then tag id."""
        with self._lock:
            return sorted(self._live.values(), key=lambda e: e.sort_key())

    def front(self) -> Optional[NotificationEvent]:
        """The single event to display now, if any."""
        events = self.live_events()
        return events[0] if events else None

    def subscribe(self) -> queue.Queue:
        """Return a queue that receives every later ``AlertSignal`` in order."""
        inbox: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.append(inbox)
        return inbox

    def unsubscribe(self, inbox: queue.Queue) -> None:
        with self._lock:
            if inbox in self._subscribers:
                self._subscribers.remove(inbox)

    def _publish(self, signals: list[AlertSignal]) -> None:
        # Caller holds the lock, so signals from ticks and acknowledgments
        # reach every subscriber in the order the live set changed.
        if self._stopped or not signals:
            return
        for inbox in self._subscribers:
            for signal in signals:
                inbox.put_nowait(signal)

    def status(self) -> dict:
        """Health of the loop, for a transient status indicator."""
        with self._lock:
            return {
                "scope": self.scope.key,
                "running": self.running,
                "interval_seconds": self.interval,
                "last_tick_at": fmt_dt(self._last_tick_at),
                "last_success_at": fmt_dt(self._last_success_at),
                "last_error": self._last_error,
                "stale": self._last_error is not None,
                "live_events": len(self._live),
            }

    def snapshot(self) -> dict:
        """Front event, ordered queue and loop status in one payload."""
        events = self.live_events()
        return {
            "front": events[0].to_dict() if events else None,
            "queue": [e.to_dict() for e in events],
            "status": self.status(),
        }
