"""
Time policies — how a product's ready and discard times derive from the
moment it was made.

Three policy kinds exist:

- ``RelativeMinutes``: fixed minute offsets from the made time.
- ``StartOfDay``: midnight at the start of (made date + N days).
- ``EndOfDay``: the last millisecond of (made date + N days).

``resolve`` is pure: the same policy, made time and timezone always give
the same pair of instants, which is what lets a tag freeze them at creation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)


class InvalidPolicy(ValueError):
    """A product's time policy cannot produce a valid time window."""


@dataclass(frozen=True)
class RelativeMinutes:
    ready_offset_min: int
    discard_offset_min: int

    time_type = "hours"


@dataclass(frozen=True)
class StartOfDay:
    day_offset: int = 0

    time_type = "start_of_day"


@dataclass(frozen=True)
class EndOfDay:
    day_offset: int = 0

    time_type = "end_of_day"


TimePolicy = Union[RelativeMinutes, StartOfDay, EndOfDay]

POLICY_TYPES = {
    RelativeMinutes.time_type: RelativeMinutes,
    StartOfDay.time_type: StartOfDay,
    EndOfDay.time_type: EndOfDay,
}


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_policy(policy: TimePolicy) -> None:
    """Raise ``InvalidPolicy`` if *policy* is malformed."""
    if isinstance(policy, RelativeMinutes):
        offsets = (policy.ready_offset_min, policy.discard_offset_min)
        if not all(_is_int(o) for o in offsets):
            raise InvalidPolicy(f"Offsets must be whole minutes: {offsets}")
        if any(o < 0 for o in offsets):
            raise InvalidPolicy(
                f"Offsets must not be negative (ready={policy.ready_offset_min}, "
                f"discard={policy.discard_offset_min})"
            )
        return
    if isinstance(policy, (StartOfDay, EndOfDay)):
        if not _is_int(policy.day_offset):
            raise InvalidPolicy(f"Day offset must be a whole number: {policy.day_offset!r}")
        return
    raise InvalidPolicy(f"Unknown time policy: {policy!r}")


def resolve(
    policy: TimePolicy,
    made_at: datetime,
    tz: tzinfo,
) -> tuple[datetime, datetime]:
    """Compute ``(ready_at, discard_at)`` for an item made at *made_at*.

    *tz* is the timezone of the location the item was made at. It decides
    the calendar date for the day-based policies and is how a naive
    *made_at* (wall-clock time) is interpreted. Results are aware UTC
    datetimes.
    """
    validate_policy(policy)

    if made_at.tzinfo is None:
        local_made = made_at.replace(tzinfo=tz)
    else:
        local_made = made_at.astimezone(tz)

    if isinstance(policy, RelativeMinutes):
        base = local_made.astimezone(timezone.utc)
        return (
            base + timedelta(minutes=policy.ready_offset_min),
            base + timedelta(minutes=policy.discard_offset_min),
        )

    target = local_made.date() + timedelta(days=policy.day_offset)
    wall = time.min if isinstance(policy, StartOfDay) else END_OF_DAY
    instant = datetime.combine(target, wall, tzinfo=tz).astimezone(timezone.utc)
    return instant, instant


def resolve_timezone(name: Optional[str] = None) -> tzinfo:
    """Return the tzinfo for a location's zone name.

    Falls back to ``DEFAULT_TIMEZONE`` and then to the local zone of this
    process. The local-zone fallback is imprecise when the server and the
    kitchen are in different zones, so it is logged.
    """
    from config.settings import DEFAULT_TIMEZONE

    for candidate in (name, DEFAULT_TIMEZONE):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, ignoring", candidate)

    logger.warning("No location timezone configured; using the process local zone")
    return datetime.now().astimezone().tzinfo


def policy_to_dict(policy: TimePolicy) -> dict:
    """Serialize a policy using the product record field names."""
    data = {"time_type": policy.time_type}
    if isinstance(policy, RelativeMinutes):
        data["ready_time_minutes"] = policy.ready_offset_min
        data["discard_time_minutes"] = policy.discard_offset_min
    else:
        data["day_offset"] = policy.day_offset
    return data


def _whole(data: dict, name: str) -> int:
    """Read a whole-number field; missing or empty means 0."""
    value = data.get(name)
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise InvalidPolicy(f"{name} must be a whole number, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidPolicy(f"{name} must be a whole number, got {value!r}")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPolicy(f"{name} must be a whole number, got {value!r}") from exc


def policy_from_dict(data: dict) -> TimePolicy:
    """Build a policy from product record fields, validating it."""
    time_type = data.get("time_type") or RelativeMinutes.time_type
    cls = POLICY_TYPES.get(time_type)
    if cls is None:
        raise InvalidPolicy(f"Unknown time_type: {time_type}")

    if cls is RelativeMinutes:
        policy = RelativeMinutes(
            ready_offset_min=_whole(data, "ready_time_minutes"),
            discard_offset_min=_whole(data, "discard_time_minutes"),
        )
    else:
        policy = cls(day_offset=_whole(data, "day_offset"))

    validate_policy(policy)
    return policy
