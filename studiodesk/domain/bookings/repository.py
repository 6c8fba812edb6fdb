"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    Customer,
    Service,
    Studio,
)


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_studio_by_slug(db: Session, slug: str) -> Optional[Studio]:
        return db.query(Studio).filter(Studio.slug == slug).first()

    @staticmethod
    def get_studio(db: Session, studio_id: str) -> Optional[Studio]:
        return db.query(Studio).filter(Studio.id == studio_id).first()

    @staticmethod
    def get_active_service(db: Session, studio_id: str, service_id: str) -> Optional[Service]:
        """Get a service that belongs to the studio and is bookable"""
        return (
            db.query(Service)
            .filter(
                Service.id == service_id,
                Service.studio_id == studio_id,
                Service.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def find_customer_by_email(db: Session, studio_id: str, email: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.studio_id == studio_id, Customer.email == email)
            .first()
        )

    @staticmethod
    def find_customer_by_phone(db: Session, studio_id: str, phone: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.studio_id == studio_id, Customer.phone == phone)
            .first()
        )

    @staticmethod
    def create_customer(db: Session, studio_id: str, **customer_data) -> Customer:
        customer = Customer(studio_id=studio_id, **customer_data)
        db.add(customer)
        db.flush()
        return customer

    @staticmethod
    def get_booking(db: Session, booking_id: str, studio_id: Optional[str] = None) -> Optional[Booking]:
        """Get a booking, optionally scoped to a studio"""
        query = db.query(Booking).filter(Booking.id == booking_id)
        if studio_id:
            query = query.filter(Booking.studio_id == studio_id)
        return query.first()

    @staticmethod
    def list_bookings(
        db: Session,
        studio_id: str,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
    ) -> tuple[list[Booking], int]:
        query = db.query(Booking).filter(Booking.studio_id == studio_id)
        if status:
            query = query.filter(Booking.status == status)

        total = query.count()
        bookings = (
            query.order_by(Booking.scheduled_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return bookings, total

    @staticmethod
    def get_upcoming(db: Session, studio_id: str, now: datetime, limit: int = 10) -> list[Booking]:
        """Active bookings that haven't started yet, soonest first"""
        return (
            db.query(Booking)
            .filter(
                Booking.studio_id == studio_id,
                Booking.scheduled_at >= now,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .order_by(Booking.scheduled_at.asc())
            .limit(limit)
            .all()
        )
