"""
MRD Tag Tracker.

Tracks prepared food through its made / ready / discard window and raises
alerts as discard deadlines approach or pass.

Features:
- Relative-minute, start-of-day and end-of-day time policies
- Live status per tag (preparing, ready, expiring soon, expired)
- Recurring alert checks per viewer scope with deduplicated, ordered
  notifications and one-shot sound escalation
- Notifications via console, log file and webhook
"""

from tagtracker.policy import (
    EndOfDay,
    InvalidPolicy,
    RelativeMinutes,
    StartOfDay,
    resolve,
)
from tagtracker.status import EXPIRING_SOON_WINDOW, StatusVerdict, TagStatus, classify
from tagtracker.models import LifecycleState, Location, Product, Tag
from tagtracker.registry import LocationRegistry, ProductRegistry, TagRegistry
from tagtracker.tags import TagService
from tagtracker.alert_scheduler import AlertScheduler, NotificationEvent, Severity, ViewerScope

__all__ = [
    "EndOfDay",
    "InvalidPolicy",
    "RelativeMinutes",
    "StartOfDay",
    "resolve",
    "EXPIRING_SOON_WINDOW",
    "StatusVerdict",
    "TagStatus",
    "classify",
    "LifecycleState",
    "Location",
    "Product",
    "Tag",
    "LocationRegistry",
    "ProductRegistry",
    "TagRegistry",
    "TagService",
    "AlertScheduler",
    "NotificationEvent",
    "Severity",
    "ViewerScope",
]
