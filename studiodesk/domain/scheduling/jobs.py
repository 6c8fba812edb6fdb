"""Deferred notification job records and retry policy"""

import enum
import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from ...config import JOB_BACKOFF_BASE_SECONDS, JOB_BACKOFF_MAX_SECONDS, JOB_MAX_ATTEMPTS

_sequence = itertools.count()


class JobKind(str, enum.Enum):
    BOOKING_REMINDER = "booking_reminder"
    PAYMENT_REMINDER = "payment_reminder"
    FOLLOW_UP = "follow_up"


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff, bounded: base * factor^(attempt-1), capped at max_seconds"""

    base_seconds: int = JOB_BACKOFF_BASE_SECONDS
    factor: int = 2
    max_seconds: int = JOB_BACKOFF_MAX_SECONDS

    def delay(self, attempt: int) -> timedelta:
        """Delay before the retry that follows the given (1-based) failed attempt"""
        seconds = self.base_seconds * (self.factor ** max(attempt - 1, 0))
        return timedelta(seconds=min(seconds, self.max_seconds))


@dataclass(frozen=True, order=True)
class ScheduledJob:
    """
    One unit of deferred work.

    Ordered by (due_at, seq) so a heap pops the earliest job first and jobs
    with the same due time keep insertion order.
    """

    due_at: datetime
    kind: JobKind = field(compare=False)
    subject_id: str = field(compare=False)
    seq: int = field(default_factory=lambda: next(_sequence))
    attempt: int = field(default=1, compare=False)
    max_attempts: int = field(default=JOB_MAX_ATTEMPTS, compare=False)

    @property
    def attempts_left(self) -> int:
        return self.max_attempts - self.attempt

    def next_attempt(self, due_at: datetime) -> "ScheduledJob":
        return replace(self, due_at=due_at, attempt=self.attempt + 1, seq=next(_sequence))
