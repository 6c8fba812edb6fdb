"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import BookingStatus


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class BookingCreate(BaseModel):
    """Schema for creating a booking from the studio dashboard"""

    studioSlug: str
    serviceId: str
    scheduledDate: datetime
    customerName: str
    customerEmail: str
    customerPhone: str
    notes: Optional[str] = None

    @field_validator("studioSlug", "customerName", "customerPhone", "notes")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    @field_validator("customerEmail")
    @classmethod
    def normalize_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class BookingUpdate(BaseModel):
    """Schema for rescheduling or annotating a booking"""

    scheduledDate: Optional[datetime] = None
    assignedTo: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v):
        return _strip(v)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v):
        return _strip(v)


class BookingCancel(BaseModel):
    notes: Optional[str] = None


class StatusLogResponse(BaseModel):
    status: BookingStatus
    notes: Optional[str] = None
    createdAt: datetime


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: str
    studioId: str
    customerId: str
    serviceId: str
    scheduledAt: datetime
    durationMinutes: int
    status: BookingStatus
    customerNotes: Optional[str] = None
    internalNotes: Optional[str] = None
    assignedTo: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    statusLogs: list[StatusLogResponse] = []


class BookingListResponse(BaseModel):
    data: list[BookingResponse]
    total: int
    page: int
    limit: int
    totalPages: int
