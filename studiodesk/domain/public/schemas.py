"""Public booking schemas - no authentication required"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import BookingStatus


class PublicBookingCreate(BaseModel):
    """Schema for a booking request from a studio's public booking page"""

    customerName: str
    customerEmail: Optional[str] = None
    customerPhone: str
    serviceId: str
    scheduledAt: datetime
    customerNotes: Optional[str] = None

    @field_validator("customerName", "customerPhone")
    @classmethod
    def require_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be empty")
        return v

    @field_validator("customerEmail")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if not v:
            return None
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class PublicServiceSummary(BaseModel):
    name: str
    price: float
    durationMinutes: int


class PublicCustomerSummary(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class PublicBookingResponse(BaseModel):
    id: str
    scheduledAt: datetime
    status: BookingStatus
    service: PublicServiceSummary
    customer: PublicCustomerSummary


class TimeSlot(BaseModel):
    time: datetime
    available: bool = True


class AvailabilityResponse(BaseModel):
    date: str
    serviceId: str
    serviceName: str
    durationMinutes: int
    slots: list[TimeSlot]
