"""Public router - booking page endpoints (no authentication)"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...dependencies import get_clock
from ..bookings.router import get_booking_service
from ..bookings.service import BookingService
from .schemas import (
    AvailabilityResponse,
    PublicBookingCreate,
    PublicBookingResponse,
    PublicCustomerSummary,
    PublicServiceSummary,
)
from .service import PublicBookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/studios", tags=["Public"])


def get_public_service(
    db: Session = Depends(get_db),
    bookings: BookingService = Depends(get_booking_service),
    clock=Depends(get_clock),
) -> PublicBookingService:
    return PublicBookingService(db, bookings, clock)


@router.get("/{slug}/availability", response_model=AvailabilityResponse)
async def get_availability(
    slug: str,
    serviceId: str = Query(...),
    date: date = Query(...),
    service: PublicBookingService = Depends(get_public_service),
):
    """Open time slots for a service on a studio-local date"""
    return service.get_available_slots(slug, serviceId, date)


@router.post("/{slug}/bookings", response_model=PublicBookingResponse, status_code=201)
async def create_public_booking(
    slug: str,
    data: PublicBookingCreate,
    service: PublicBookingService = Depends(get_public_service),
):
    booking = service.create_public_booking(slug, data)
    return PublicBookingResponse(
        id=booking.id,
        scheduledAt=booking.scheduled_at,
        status=booking.status,
        service=PublicServiceSummary(
            name=booking.service.name,
            price=booking.service.price,
            durationMinutes=booking.service.duration_minutes,
        ),
        customer=PublicCustomerSummary(
            name=booking.customer.name,
            email=booking.customer.email,
            phone=booking.customer.phone,
        ),
    )
