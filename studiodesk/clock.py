"""
Time source for scheduling logic.

All instants handled by the core are naive UTC datetimes, matching how they
are stored in the database.
"""

from datetime import datetime, timedelta, timezone


def to_utc_naive(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SystemClock:
    """Wall clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FrozenClock:
    """Manually driven clock for simulations and tests"""

    def __init__(self, start: datetime):
        self._now = to_utc_naive(start)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = to_utc_naive(value)

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now
