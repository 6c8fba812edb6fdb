"""Booking router - FastAPI endpoints for booking operations"""

import logging
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_studio
from ...database import get_db
from ...dependencies import get_clock, get_dispatcher, get_scheduler
from ...models import Booking, BookingStatus, Studio
from .schemas import (
    BookingCancel,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatusUpdate,
    BookingUpdate,
    StatusLogResponse,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
    dispatcher=Depends(get_dispatcher),
    clock=Depends(get_clock),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, scheduler, dispatcher, clock)


def to_response(booking: Booking) -> BookingResponse:
    """Serialize a booking with its status history, newest entry first"""
    return BookingResponse(
        id=booking.id,
        studioId=booking.studio_id,
        customerId=booking.customer_id,
        serviceId=booking.service_id,
        scheduledAt=booking.scheduled_at,
        durationMinutes=booking.duration_minutes,
        status=booking.status,
        customerNotes=booking.customer_notes,
        internalNotes=booking.internal_notes,
        assignedTo=booking.assigned_to_user_id,
        createdAt=booking.created_at,
        updatedAt=booking.updated_at,
        statusLogs=[
            StatusLogResponse(status=log.status, notes=log.notes, createdAt=log.created_at)
            for log in reversed(booking.status_logs)
        ],
    )


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking inquiry for a studio (identified by slug)"""
    booking = await service.create_booking(data)
    return to_response(booking)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[BookingStatus] = Query(None),
    studio: Studio = Depends(get_current_studio),
    service: BookingService = Depends(get_booking_service),
):
    bookings, total = service.list_bookings(studio.id, page, limit, status)
    return BookingListResponse(
        data=[to_response(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        totalPages=ceil(total / limit) if total else 0,
    )


@router.get("/upcoming", response_model=list[BookingResponse])
async def get_upcoming_bookings(
    limit: int = Query(10, ge=1, le=100),
    studio: Studio = Depends(get_current_studio),
    service: BookingService = Depends(get_booking_service),
):
    """Active bookings that haven't started yet, soonest first"""
    return [to_response(b) for b in service.get_upcoming(studio.id, limit)]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    studio: Studio = Depends(get_current_studio),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(service.get_booking(booking_id, studio.id))


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    studio: Studio = Depends(get_current_studio),
    service: BookingService = Depends(get_booking_service),
):
    """Reschedule, assign or annotate a booking"""
    booking = await service.update_booking(booking_id, data, studio.id)
    return to_response(booking)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    studio: Studio = Depends(get_current_studio),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.update_status(booking_id, data.status, data.notes, studio.id)
    return to_response(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    data: Optional[BookingCancel] = None,
    studio: Studio = Depends(get_current_studio),
    service: BookingService = Depends(get_booking_service),
):
    notes = data.notes if data else None
    booking = await service.cancel(booking_id, notes, studio.id)
    return to_response(booking)
