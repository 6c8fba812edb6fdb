"""Booking service - Booking lifecycle orchestration"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...clock import to_utc_naive
from ...errors import InvalidOperation, NotFound, SlotConflict
from ...locks import row_write_lock
from ...models import Booking, BookingStatus, Customer, Service, Studio
from . import state_machine
from .conflicts import ConflictMode, has_conflict, studio_write_lock
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)


def conflict_message(mode: ConflictMode) -> str:
    if mode == ConflictMode.EXACT_INSTANT:
        return "This time slot is already booked. Please choose another time."
    elif mode == ConflictMode.INTERVAL_OVERLAP:
        return "This time slot is not available"
    raise ValueError(f"Unhandled conflict mode: {mode!r}")


class BookingService:
    """
    Service layer for the booking lifecycle.

    Status changes go through the state machine and are committed together
    with their status log entry. Notifications and job scheduling happen
    after the commit and never fail the mutation that triggered them.
    """

    def __init__(self, db: Session, scheduler, dispatcher, clock):
        self.db = db
        self.repo = BookingRepository()
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_bookable_studio(self, slug: str, message: str = "Studio is not accepting bookings") -> Studio:
        studio = self.repo.get_studio_by_slug(self.db, slug)
        if not studio:
            raise NotFound("Studio not found")
        if studio.status != "ACTIVE":
            raise InvalidOperation(message)
        return studio

    def get_bookable_service(self, studio: Studio, service_id: str) -> Service:
        service = self.repo.get_active_service(self.db, studio.id, service_id)
        if not service:
            raise NotFound("Service not found or not available")
        return service

    def get_booking(self, booking_id: str, studio_id: Optional[str] = None) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id, studio_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    def list_bookings(
        self,
        studio_id: str,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
    ) -> tuple[list[Booking], int]:
        return self.repo.list_bookings(self.db, studio_id, page, limit, status)

    def get_upcoming(self, studio_id: str, limit: int = 10) -> list[Booking]:
        return self.repo.get_upcoming(self.db, studio_id, self.clock.now(), limit)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def reserve_slot(
        self,
        studio: Studio,
        service: Service,
        scheduled_at: datetime,
        resolve_customer: Callable[[], Customer],
        mode: ConflictMode,
        customer_notes: Optional[str] = None,
        log_note: str = state_machine.INITIAL_STATUS_NOTE,
    ) -> Booking:
        """
        Conflict-check and insert a booking as one unit.

        The customer is resolved inside the lock so a rejected request leaves
        nothing behind.
        """
        with studio_write_lock(self.db, studio.id):
            result = has_conflict(
                self.db,
                studio.id,
                scheduled_at,
                timedelta(minutes=service.duration_minutes),
                mode,
            )
            if result:
                logger.warning(
                    f"⚠️ Slot conflict for studio {studio.id} at {scheduled_at.isoformat()} "
                    f"with booking {result.conflicting_booking.id}"
                )
                raise SlotConflict(conflict_message(mode), result.conflicting_booking.id)

            try:
                customer = resolve_customer()
                booking = Booking(
                    studio_id=studio.id,
                    customer_id=customer.id,
                    service_id=service.id,
                    scheduled_at=scheduled_at,
                    duration_minutes=service.duration_minutes,
                    customer_notes=customer_notes,
                )
                state_machine.start(booking, self.clock.now(), log_note)
                self.db.add(booking)
                self.db.commit()
            except Exception as e:
                logger.error(f"❌ Failed to create booking for studio {studio.id}: {e}")
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} created for studio {studio.id} ({mode.value})")
        return booking

    async def create_booking(self, data: BookingCreate) -> Booking:
        """Create a booking from the studio dashboard (exact-instant conflict policy)"""
        studio = self.get_bookable_studio(data.studioSlug)
        service = self.get_bookable_service(studio, data.serviceId)
        scheduled_at = to_utc_naive(data.scheduledDate)

        def resolve_customer() -> Customer:
            customer = self.repo.find_customer_by_email(self.db, studio.id, data.customerEmail)
            if customer:
                return customer
            return self.repo.create_customer(
                self.db,
                studio.id,
                name=data.customerName,
                email=data.customerEmail,
                phone=data.customerPhone,
            )

        booking = self.reserve_slot(
            studio,
            service,
            scheduled_at,
            resolve_customer,
            ConflictMode.EXACT_INSTANT,
            customer_notes=data.notes,
        )

        try:
            await self.dispatcher.send_booking_confirmation(booking)
        except Exception as e:
            logger.error(f"❌ Failed to send booking confirmation email for {booking.id}: {e}")

        return booking

    # ------------------------------------------------------------------
    # Updates and status changes
    # ------------------------------------------------------------------

    async def update_booking(
        self, booking_id: str, data: BookingUpdate, studio_id: Optional[str] = None
    ) -> Booking:
        """Reschedule or annotate a booking; status changes go through update_status"""
        booking = self.get_booking(booking_id, studio_id)
        rescheduled = False

        with studio_write_lock(self.db, booking.studio_id):
            if data.scheduledDate is not None:
                new_time = to_utc_naive(data.scheduledDate)
                result = has_conflict(
                    self.db,
                    booking.studio_id,
                    new_time,
                    timedelta(minutes=booking.duration_minutes),
                    ConflictMode.EXACT_INSTANT,
                    exclude_booking_id=booking.id,
                )
                if result:
                    raise SlotConflict(
                        "This time slot is already booked", result.conflicting_booking.id
                    )
                booking.scheduled_at = new_time
                rescheduled = True

            if data.assignedTo:
                booking.assigned_to_user_id = data.assignedTo
            if data.notes:
                booking.internal_notes = data.notes

            booking.updated_at = self.clock.now()
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)

        if rescheduled and booking.status == BookingStatus.CONFIRMED:
            try:
                await self.scheduler.schedule_booking_reminder(booking.id, booking.scheduled_at)
            except Exception as e:
                logger.error(f"❌ Failed to reschedule reminder for booking {booking.id}: {e}")

        return booking

    def _apply(self, booking_id: str, studio_id: Optional[str], change) -> tuple:
        """Run a state machine change under the booking's row lock and commit it"""
        self.get_booking(booking_id, studio_id)

        with row_write_lock(self.db, Booking, booking_id):
            booking = (
                self.db.query(Booking)
                .populate_existing()
                .filter(Booking.id == booking_id)
                .first()
            )
            event = change(booking, self.clock.now())
            try:
                self.db.commit()
            except Exception as e:
                logger.error(f"❌ Failed to persist status change for booking {booking_id}: {e}")
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(
            f"✅ Booking {booking_id} transitioned: "
            f"{event.from_status.value} → {event.to_status.value}"
        )
        return booking, event

    async def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        notes: Optional[str] = None,
        studio_id: Optional[str] = None,
    ) -> Booking:
        booking, event = self._apply(
            booking_id,
            studio_id,
            lambda b, now: state_machine.transition(b, status, now, notes),
        )

        try:
            await self.dispatcher.send_booking_status_update(booking, status, notes)
        except Exception as e:
            logger.error(f"❌ Failed to send status update email for {booking_id}: {e}")

        await self._schedule_follow_on_jobs(booking, event)
        return booking

    async def cancel(
        self, booking_id: str, notes: Optional[str] = None, studio_id: Optional[str] = None
    ) -> Booking:
        booking, _event = self._apply(
            booking_id,
            studio_id,
            lambda b, now: state_machine.cancel(b, now, notes),
        )
        return booking

    async def _schedule_follow_on_jobs(self, booking: Booking, event: state_machine.TransitionEvent):
        try:
            if event.to_status == BookingStatus.CONFIRMED:
                await self.scheduler.schedule_booking_reminder(booking.id, booking.scheduled_at)
            elif event.to_status == BookingStatus.COMPLETED:
                await self.scheduler.schedule_follow_up(booking.id)
        except Exception as e:
            logger.error(f"❌ Failed to schedule automated email for booking {booking.id}: {e}")
