"""Job Scheduler - turns booking/invoice events into delayed notification jobs"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ...config import JOB_MAX_ATTEMPTS
from ...errors import SchedulingSkipped
from .jobs import JobKind, ScheduledJob

logger = logging.getLogger(__name__)

REMINDER_LEAD_TIME = timedelta(hours=24)
FOLLOW_UP_DELAY = timedelta(hours=24)
PAYMENT_REMINDER_GRACE = timedelta(hours=24)


class JobScheduler:
    """
    Schedule notification jobs on a queue.

    Scheduling is not idempotent: two calls for one subject create two jobs.
    Duplicates are harmless because the runner re-checks the subject's state
    before dispatching.
    """

    def __init__(self, queue, clock, max_attempts: int = JOB_MAX_ATTEMPTS):
        self.queue = queue
        self.clock = clock
        self.max_attempts = max_attempts

    async def schedule(
        self, kind: JobKind, subject_id: str, due_at: datetime
    ) -> Optional[ScheduledJob]:
        """Enqueue a job; returns None when the job was skipped"""
        try:
            run_at = self._resolve_due_at(kind, subject_id, due_at)
        except SchedulingSkipped as e:
            logger.info(f"⏭️ {e.message}")
            return None

        job = ScheduledJob(
            due_at=run_at,
            kind=kind,
            subject_id=subject_id,
            max_attempts=self.max_attempts,
        )
        await self.queue.push(job)
        logger.info(f"📋 Scheduled {kind.value} for {subject_id} at {run_at.isoformat()}")
        return job

    def _resolve_due_at(self, kind: JobKind, subject_id: str, due_at: datetime) -> datetime:
        now = self.clock.now()
        if due_at > now:
            return due_at

        if kind == JobKind.PAYMENT_REMINDER:
            # Overdue invoices still get their reminder, right away
            return now
        elif kind == JobKind.BOOKING_REMINDER:
            raise SchedulingSkipped(
                f"Reminder time for booking {subject_id} is in the past, skipping"
            )
        elif kind == JobKind.FOLLOW_UP:
            return now
        raise ValueError(f"Unhandled job kind: {kind!r}")

    async def schedule_booking_reminder(
        self, booking_id: str, scheduled_at: datetime
    ) -> Optional[ScheduledJob]:
        """Reminder one day before the appointment"""
        return await self.schedule(
            JobKind.BOOKING_REMINDER, booking_id, scheduled_at - REMINDER_LEAD_TIME
        )

    async def schedule_payment_reminder(
        self, invoice_id: str, due_date: datetime
    ) -> Optional[ScheduledJob]:
        """Reminder one day after the due date, immediately if that has passed"""
        return await self.schedule(
            JobKind.PAYMENT_REMINDER, invoice_id, due_date + PAYMENT_REMINDER_GRACE
        )

    async def schedule_follow_up(self, booking_id: str) -> Optional[ScheduledJob]:
        """Follow-up one day after completion"""
        return await self.schedule(
            JobKind.FOLLOW_UP, booking_id, self.clock.now() + FOLLOW_UP_DELAY
        )
