"""
Job queues.

InMemoryJobQueue is a priority queue keyed by due time, consumed by
InProcessWorker. ArqJobQueue hands jobs to the Redis-backed arq worker
(see studiodesk/worker.py), which applies the same retry budget.
"""

import heapq
import logging
import threading
from datetime import datetime
from typing import Optional

from ...clock import as_aware_utc
from .jobs import JobKind, ScheduledJob

logger = logging.getLogger(__name__)


def task_name(kind: JobKind) -> str:
    """arq function that executes jobs of this kind"""
    if kind == JobKind.BOOKING_REMINDER:
        return "booking_reminder_task"
    elif kind == JobKind.PAYMENT_REMINDER:
        return "payment_reminder_task"
    elif kind == JobKind.FOLLOW_UP:
        return "follow_up_task"
    raise ValueError(f"Unhandled job kind: {kind!r}")


class InMemoryJobQueue:
    """Thread-safe min-heap of ScheduledJob ordered by due_at"""

    def __init__(self):
        self._heap: list[ScheduledJob] = []
        self._lock = threading.Lock()

    async def push(self, job: ScheduledJob) -> Optional[str]:
        self.push_nowait(job)
        return str(job.seq)

    def push_nowait(self, job: ScheduledJob) -> None:
        with self._lock:
            heapq.heappush(self._heap, job)

    def pop_due(self, now: datetime) -> list[ScheduledJob]:
        """Remove and return every job due at or before now, earliest first"""
        due = []
        with self._lock:
            while self._heap and self._heap[0].due_at <= now:
                due.append(heapq.heappop(self._heap))
        return due

    def pending(self) -> list[ScheduledJob]:
        with self._lock:
            return sorted(self._heap)

    def next_due_at(self) -> Optional[datetime]:
        with self._lock:
            return self._heap[0].due_at if self._heap else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)


class ArqJobQueue:
    """Enqueue jobs on an arq Redis pool with deferred execution"""

    def __init__(self, pool):
        self.pool = pool

    async def push(self, job: ScheduledJob) -> Optional[str]:
        arq_job = await self.pool.enqueue_job(
            task_name(job.kind),
            job.subject_id,
            _defer_until=as_aware_utc(job.due_at),
        )
        if arq_job is None:
            # arq returns None when a job with the same id already exists
            logger.warning(f"⚠️ arq did not accept {job.kind.value} job for {job.subject_id}")
            return None
        logger.info(f"📋 {job.kind.value} job queued: {arq_job.job_id}")
        return arq_job.job_id
