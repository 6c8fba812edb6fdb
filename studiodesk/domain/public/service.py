"""Public booking service - self-service booking page operations"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ...clock import to_utc_naive
from ...errors import InvalidOperation, NotFound
from ...models import Booking, Customer
from ..bookings.conflicts import ConflictMode, list_available_slots
from ..bookings.repository import BookingRepository
from ..bookings.service import BookingService
from .schemas import AvailabilityResponse, PublicBookingCreate, TimeSlot

logger = logging.getLogger(__name__)

PUBLIC_BOOKING_NOTE = "Booking created via public form"


class PublicBookingService:
    """Service for unauthenticated booking requests, addressed by studio slug"""

    def __init__(self, db: Session, bookings: BookingService, clock):
        self.db = db
        self.repo = BookingRepository()
        self.bookings = bookings
        self.clock = clock

    def create_public_booking(self, slug: str, data: PublicBookingCreate) -> Booking:
        studio = self.bookings.get_bookable_studio(
            slug, "Studio is not accepting bookings at this time"
        )
        service = self.bookings.get_bookable_service(studio, data.serviceId)

        scheduled_at = to_utc_naive(data.scheduledAt)
        if scheduled_at < self.clock.now():
            raise InvalidOperation("Scheduled time must be in the future")

        def resolve_customer() -> Customer:
            customer = self.repo.find_customer_by_phone(self.db, studio.id, data.customerPhone)
            if not customer:
                return self.repo.create_customer(
                    self.db,
                    studio.id,
                    name=data.customerName,
                    email=data.customerEmail,
                    phone=data.customerPhone,
                )
            # Returning customers keep their email unless a new one is supplied
            customer.name = data.customerName
            customer.email = data.customerEmail or customer.email
            return customer

        booking = self.bookings.reserve_slot(
            studio,
            service,
            scheduled_at,
            resolve_customer,
            ConflictMode.INTERVAL_OVERLAP,
            customer_notes=data.customerNotes,
            log_note=PUBLIC_BOOKING_NOTE,
        )
        logger.info(f"✅ Public booking {booking.id} created for studio {slug}")
        return booking

    def get_available_slots(self, slug: str, service_id: str, day: date) -> AvailabilityResponse:
        studio = self.repo.get_studio_by_slug(self.db, slug)
        if not studio:
            raise NotFound("Studio not found")

        service = self.repo.get_active_service(self.db, studio.id, service_id)
        if not service:
            raise NotFound("Service not found")

        slots = list_available_slots(
            self.db, studio, service.duration_minutes, day, self.clock.now()
        )
        return AvailabilityResponse(
            date=day.isoformat(),
            serviceId=service.id,
            serviceName=service.name,
            durationMinutes=service.duration_minutes,
            slots=[TimeSlot(time=s.time, available=s.available) for s in slots],
        )
