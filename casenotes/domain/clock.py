from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_datetime(dt: datetime) -> datetime:
    """Naive UTC, the form timestamps are stored in."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def date_key(moment: datetime | date) -> str:
    return moment.strftime("%Y%m%d")
