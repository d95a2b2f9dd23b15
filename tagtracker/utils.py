"""Small datetime helpers shared by the lifecycle modules."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Default clock: the current instant, timezone-aware in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are read as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_dt(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def fmt_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def as_bool(value) -> bool:
    """Coerce a stored flag to ``bool``.

    Older records keep flags as the text ``"1"``/``"0"``; those never get
    past the store boundary.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("1", "true", "yes", "on")
