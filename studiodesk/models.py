import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .config import DEFAULT_STUDIO_TIMEZONE
from .database import Base


def generate_id():
    """Generate an opaque identifier"""
    return str(uuid.uuid4())


class BookingStatus(str, enum.Enum):
    INQUIRY = "INQUIRY"
    QUOTED = "QUOTED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Bookings that still hold their calendar slot
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.INQUIRY,
    BookingStatus.QUOTED,
    BookingStatus.CONFIRMED,
)

# Bookings that have vacated the calendar
CLOSED_BOOKING_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

booking_status_enum = Enum(BookingStatus, name="booking_status")


class Studio(Base):
    __tablename__ = "studios"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), default="ACTIVE", nullable=False)  # ACTIVE, SUSPENDED
    timezone = Column(String(64), default=DEFAULT_STUDIO_TIMEZONE, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    services = relationship("Service", back_populates="studio")
    bookings = relationship("Booking", back_populates="studio")


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    studio_id = Column(String(36), ForeignKey("studios.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    price = Column(Float, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    studio = relationship("Studio", back_populates="services")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_id)
    studio_id = Column(String(36), ForeignKey("studios.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_studio_scheduled", "studio_id", "scheduled_at"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    studio_id = Column(String(36), ForeignKey("studios.id"), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    assigned_to_user_id = Column(String(36), nullable=True)

    scheduled_at = Column(DateTime, nullable=False)  # UTC appointment start
    # Copied from the service at booking time; later service edits don't apply
    duration_minutes = Column(Integer, nullable=False)
    status = Column(
        booking_status_enum,
        default=BookingStatus.INQUIRY,
        nullable=False,
        index=True,
    )

    customer_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    # Set from the injected clock on every status change
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    studio = relationship("Studio", back_populates="bookings")
    customer = relationship("Customer")
    service = relationship("Service")
    status_logs = relationship(
        "BookingStatusLog",
        back_populates="booking",
        order_by="BookingStatusLog.id",
        cascade="all, delete-orphan",
    )


class BookingStatusLog(Base):
    """Append-only history, one row per status change"""

    __tablename__ = "booking_status_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    status = Column(booking_status_enum, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)

    booking = relationship("Booking", back_populates="status_logs")
