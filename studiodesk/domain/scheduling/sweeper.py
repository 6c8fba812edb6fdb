"""
Reconciliation sweeps
Periodic scans that re-derive which notification jobs should exist, so a
missed schedule call (restart, lost enqueue) is caught up. Re-scheduling is
safe because the job runner re-checks subject state before dispatching.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, BookingStatus
from ...models_invoice import UNPAID_INVOICE_STATUSES, Invoice, InvoiceStatus
from .scheduler import JobScheduler

logger = logging.getLogger(__name__)

UPCOMING_WINDOW = timedelta(hours=48)
COMPLETED_WINDOW_START = timedelta(hours=48)
COMPLETED_WINDOW_END = timedelta(hours=24)

UPCOMING_BOOKINGS = "upcoming_bookings"
OVERDUE_INVOICES = "overdue_invoices"
COMPLETED_BOOKINGS = "completed_bookings"


class ReconciliationSweeper:
    def __init__(self, db: Session, scheduler: JobScheduler, clock):
        self.db = db
        self.scheduler = scheduler
        self.clock = clock

    async def sweep_upcoming_bookings(self) -> dict:
        """
        Hourly: (re-)schedule reminders for CONFIRMED bookings in the next 48 hours
        """
        logger.info("🔄 Checking for upcoming bookings to schedule reminders...")
        now = self.clock.now()
        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.status == BookingStatus.CONFIRMED,
                Booking.scheduled_at >= now,
                Booking.scheduled_at <= now + UPCOMING_WINDOW,
            )
            .order_by(Booking.scheduled_at.asc())
            .all()
        )
        logger.info(f"Found {len(bookings)} upcoming bookings")

        scheduled = 0
        for booking in bookings:
            try:
                job = await self.scheduler.schedule_booking_reminder(booking.id, booking.scheduled_at)
                if job:
                    scheduled += 1
            except Exception as e:
                logger.error(f"❌ Failed to schedule reminder for booking {booking.id}: {e}")

        return {"found": len(bookings), "scheduled": scheduled}

    async def sweep_overdue_invoices(self) -> dict:
        """
        Daily: mark unpaid invoices past their due date OVERDUE and schedule a payment reminder
        """
        logger.info("🔄 Checking for overdue invoices...")
        now = self.clock.now()
        invoices = (
            self.db.query(Invoice)
            .filter(
                Invoice.status.in_(UNPAID_INVOICE_STATUSES),
                Invoice.due_date.isnot(None),
                Invoice.due_date < now,
            )
            .all()
        )
        logger.info(f"Found {len(invoices)} overdue invoices")

        marked = 0
        scheduled = 0
        for invoice in invoices:
            if invoice.status != InvoiceStatus.OVERDUE:
                try:
                    invoice.status = InvoiceStatus.OVERDUE
                    invoice.updated_at = now
                    self.db.commit()
                    marked += 1
                    logger.info(f"✅ Invoice {invoice.id} marked OVERDUE")
                except Exception as e:
                    logger.error(f"❌ Failed to mark invoice {invoice.id} overdue: {e}")
                    self.db.rollback()
                    continue

            try:
                job = await self.scheduler.schedule_payment_reminder(invoice.id, invoice.due_date)
                if job:
                    scheduled += 1
            except Exception as e:
                logger.error(f"❌ Failed to schedule payment reminder for invoice {invoice.id}: {e}")

        return {"found": len(invoices), "marked_overdue": marked, "scheduled": scheduled}

    async def sweep_completed_bookings(self) -> dict:
        """
        Daily: schedule follow-ups for bookings completed 24-48 hours ago.

        Only that window is scanned; a booking whose window passes without a
        sweep (e.g. worker downtime) does not get a follow-up.
        """
        logger.info("🔄 Checking for recently completed bookings...")
        now = self.clock.now()
        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.status == BookingStatus.COMPLETED,
                Booking.updated_at >= now - COMPLETED_WINDOW_START,
                Booking.updated_at < now - COMPLETED_WINDOW_END,
            )
            .all()
        )
        logger.info(f"Found {len(bookings)} recently completed bookings")

        scheduled = 0
        for booking in bookings:
            try:
                job = await self.scheduler.schedule_follow_up(booking.id)
                if job:
                    scheduled += 1
            except Exception as e:
                logger.error(f"❌ Failed to schedule follow-up for booking {booking.id}: {e}")

        return {"found": len(bookings), "scheduled": scheduled}

    async def run(self, name: str) -> dict:
        if name == UPCOMING_BOOKINGS:
            return await self.sweep_upcoming_bookings()
        elif name == OVERDUE_INVOICES:
            return await self.sweep_overdue_invoices()
        elif name == COMPLETED_BOOKINGS:
            return await self.sweep_completed_bookings()
        raise ValueError(f"Unknown sweep: {name}")


class SweepCadence:
    """Tracks when each sweep last ran; hourly for upcoming, daily for the rest"""

    PERIODS = {
        UPCOMING_BOOKINGS: timedelta(hours=1),
        OVERDUE_INVOICES: timedelta(days=1),
        COMPLETED_BOOKINGS: timedelta(days=1),
    }

    def __init__(self):
        self.last_run: dict[str, Optional[datetime]] = {name: None for name in self.PERIODS}

    def due(self, now: datetime) -> list[str]:
        return [
            name
            for name, period in self.PERIODS.items()
            if self.last_run[name] is None or now - self.last_run[name] >= period
        ]

    def mark_ran(self, name: str, now: datetime) -> None:
        self.last_run[name] = now


async def run_sweep_loop(session_factory, scheduler: JobScheduler, clock, tick_seconds: float = 60):
    """In-process replacement for the arq cron jobs"""
    logger.info("🚀 Starting in-process sweep loop...")
    cadence = SweepCadence()
    while True:
        now = clock.now()
        for name in cadence.due(now):
            db = session_factory()
            try:
                summary = await ReconciliationSweeper(db, scheduler, clock).run(name)
                logger.info(f"📊 Sweep {name} complete: {summary}")
            except Exception as e:
                logger.error(f"❌ Sweep {name} failed: {e}")
            finally:
                db.close()
            cadence.mark_ran(name, now)
        await asyncio.sleep(tick_seconds)
