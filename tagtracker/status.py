"""Lifecycle classifier — derive a tag's live status from its time window."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from tagtracker.utils import as_utc, utcnow

# Lookahead before discard in which a tag counts as expiring soon.
EXPIRING_SOON_WINDOW = timedelta(minutes=30)

_MINUTE = timedelta(minutes=1)


class TagStatus(str, Enum):
    """Derived status of an active tag. Never persisted."""

    PREPARING = "preparing"
    READY = "ready"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


STATUS_LABELS = {
    TagStatus.PREPARING: "PREPARING",
    TagStatus.READY: "READY",
    TagStatus.EXPIRING_SOON: "EXPIRING SOON",
    TagStatus.EXPIRED: "EXPIRED",
}


@dataclass(frozen=True)
class StatusVerdict:
    """Outcome of ``classify``.

    ``minutes_to_discard`` is signed: zero or negative once expired.
    """

    status: TagStatus
    minutes_to_discard: int

    @property
    def label(self) -> str:
        return STATUS_LABELS[self.status]

    @property
    def time_remaining(self) -> str:
        return format_time_remaining(self.minutes_to_discard)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "label": self.label,
            "minutes_to_discard": self.minutes_to_discard,
            "time_remaining": self.time_remaining,
        }


def classify(ready_at: datetime, discard_at: datetime, now: datetime) -> StatusVerdict:
    """Classify a time window at instant *now*. First matching rule wins.

    Discard rules are checked before readiness, so a window whose discard
    time precedes its ready time still reports expired / expiring soon.
    """
    ready_at, discard_at, now = as_utc(ready_at), as_utc(discard_at), as_utc(now)
    remaining = discard_at - now

    if now >= discard_at:
        return StatusVerdict(TagStatus.EXPIRED, remaining // _MINUTE)

    if remaining <= EXPIRING_SOON_WINDOW:
        # ceil: 10 seconds left still reads as 1 minute
        return StatusVerdict(TagStatus.EXPIRING_SOON, -(-remaining // _MINUTE))

    if now < ready_at:
        return StatusVerdict(TagStatus.PREPARING, remaining // _MINUTE)

    return StatusVerdict(TagStatus.READY, remaining // _MINUTE)


def classify_tag(tag, now: Optional[datetime] = None) -> StatusVerdict:
    """Classify a stored tag, using the current time when *now* is omitted."""
    return classify(tag.ready_at, tag.discard_at, now or utcnow())


def format_time_remaining(minutes: int) -> str:
    """Render minutes to discard the way the dashboards show it."""
    if minutes <= 0:
        return "EXPIRED"
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h {minutes % 60}m"
