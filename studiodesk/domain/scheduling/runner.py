"""
Job execution.

JobRunner re-reads the subject of a job and dispatches only if its state
still calls for the notification; that re-check is what makes duplicate or
stale jobs harmless. InProcessWorker polls an InMemoryJobQueue and applies
the retry budget with exponential backoff.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import WORKER_POLL_INTERVAL_SECONDS
from ...errors import DispatchFailure
from ...models import Booking, BookingStatus
from ...models_invoice import Invoice, InvoiceStatus
from .jobs import BackoffPolicy, JobKind, ScheduledJob

logger = logging.getLogger(__name__)

DISPATCHED = "dispatched"
SKIPPED = "skipped"
RETRYING = "retrying"
ABANDONED = "abandoned"


class JobRunner:
    """Executes one job against current database state"""

    def __init__(self, db: Session, dispatcher):
        self.db = db
        self.dispatcher = dispatcher

    async def execute(self, kind: JobKind, subject_id: str) -> str:
        if kind == JobKind.BOOKING_REMINDER:
            return await self._booking_reminder(subject_id)
        elif kind == JobKind.PAYMENT_REMINDER:
            return await self._payment_reminder(subject_id)
        elif kind == JobKind.FOLLOW_UP:
            return await self._follow_up(subject_id)
        raise ValueError(f"Unhandled job kind: {kind!r}")

    def _fresh_booking(self, booking_id: str) -> Optional[Booking]:
        return (
            self.db.query(Booking).populate_existing().filter(Booking.id == booking_id).first()
        )

    def _fresh_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return (
            self.db.query(Invoice).populate_existing().filter(Invoice.id == invoice_id).first()
        )

    async def _booking_reminder(self, booking_id: str) -> str:
        booking = self._fresh_booking(booking_id)
        if not booking:
            logger.warning(f"⚠️ Booking {booking_id} not found, skipping reminder")
            return SKIPPED
        if booking.status != BookingStatus.CONFIRMED:
            logger.info(
                f"⏭️ Booking {booking_id} is {booking.status.value}, not confirmed, skipping reminder"
            )
            return SKIPPED

        await self._dispatch(self.dispatcher.send_booking_reminder, booking, "booking reminder")
        logger.info(f"✅ Booking reminder sent for {booking_id}")
        return DISPATCHED

    async def _payment_reminder(self, invoice_id: str) -> str:
        invoice = self._fresh_invoice(invoice_id)
        if not invoice:
            logger.warning(f"⚠️ Invoice {invoice_id} not found, skipping reminder")
            return SKIPPED
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            logger.info(f"⏭️ Invoice {invoice_id} is {invoice.status.value}, skipping reminder")
            return SKIPPED

        await self._dispatch(self.dispatcher.send_payment_reminder, invoice, "payment reminder")
        logger.info(f"✅ Payment reminder sent for invoice {invoice_id}")
        return DISPATCHED

    async def _follow_up(self, booking_id: str) -> str:
        booking = self._fresh_booking(booking_id)
        if not booking:
            logger.warning(f"⚠️ Booking {booking_id} not found, skipping follow-up")
            return SKIPPED
        if booking.status != BookingStatus.COMPLETED:
            logger.info(f"⏭️ Booking {booking_id} is not completed, skipping follow-up")
            return SKIPPED

        await self._dispatch(self.dispatcher.send_follow_up, booking, "follow-up")
        logger.info(f"✅ Follow-up email sent for {booking_id}")
        return DISPATCHED

    async def _dispatch(self, send, subject, label: str) -> None:
        try:
            await send(subject)
        except Exception as e:
            logger.error(f"❌ Failed to send {label} for {subject.id}: {e}")
            raise DispatchFailure(f"Failed to send {label} for {subject.id}: {e}") from e


class InProcessWorker:
    """Poll an InMemoryJobQueue and run due jobs concurrently"""

    def __init__(self, queue, runner, clock, backoff: Optional[BackoffPolicy] = None):
        self.queue = queue
        self.runner = runner
        self.clock = clock
        self.backoff = backoff or BackoffPolicy()

    async def run_due(self) -> dict:
        """Run every job due now; returns a count per outcome"""
        jobs = self.queue.pop_due(self.clock.now())
        summary = {DISPATCHED: 0, SKIPPED: 0, RETRYING: 0, ABANDONED: 0}
        if not jobs:
            return summary

        logger.info(f"🔄 Running {len(jobs)} due job(s)")
        outcomes = await asyncio.gather(*(self._run(job) for job in jobs))
        for outcome in outcomes:
            summary[outcome] += 1
        return summary

    async def _run(self, job: ScheduledJob) -> str:
        try:
            return await self.runner.execute(job.kind, job.subject_id)
        except Exception as e:
            if job.attempt >= job.max_attempts:
                logger.error(
                    f"❌ Abandoning {job.kind.value} for {job.subject_id} "
                    f"after {job.attempt} attempts: {e}"
                )
                return ABANDONED

            retry_at = self.clock.now() + self.backoff.delay(job.attempt)
            self.queue.push_nowait(job.next_attempt(retry_at))
            logger.warning(
                f"⚠️ {job.kind.value} for {job.subject_id} failed "
                f"(attempt {job.attempt}/{job.max_attempts}), retrying at {retry_at.isoformat()}"
            )
            return RETRYING

    async def run_forever(self, poll_interval: float = WORKER_POLL_INTERVAL_SECONDS):
        logger.info("🚀 Starting in-process job worker...")
        while True:
            try:
                await self.run_due()
            except Exception as e:
                logger.error(f"❌ Error in job worker loop: {e}")
            await asyncio.sleep(poll_interval)


class SessionJobRunner:
    """JobRunner that opens a fresh session for every job"""

    def __init__(self, session_factory, dispatcher):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    async def execute(self, kind: JobKind, subject_id: str) -> str:
        db = self.session_factory()
        try:
            return await JobRunner(db, self.dispatcher).execute(kind, subject_id)
        finally:
            db.close()
