"""
Slot conflict detection and available-slot enumeration.

Two overlap policies are in use:

- exact-instant: only an identical start time among INQUIRY/QUOTED/CONFIRMED
  bookings blocks the slot (authenticated create/reschedule)
- interval-overlap: half-open [start, end) intersection against every booking
  that is not CANCELLED or COMPLETED (public booking, availability)
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...config import SLOT_STEP_MINUTES, STUDIO_CLOSE_HOUR, STUDIO_OPEN_HOUR
from ...locks import row_write_lock
from ...models import (
    ACTIVE_BOOKING_STATUSES,
    CLOSED_BOOKING_STATUSES,
    Booking,
    Studio,
)

logger = logging.getLogger(__name__)


class ConflictMode(str, enum.Enum):
    EXACT_INSTANT = "exact_instant"
    INTERVAL_OVERLAP = "interval_overlap"


@dataclass(frozen=True)
class ConflictResult:
    has_conflict: bool
    conflicting_booking: Optional[Booking] = None

    def __bool__(self) -> bool:
        return self.has_conflict


@dataclass(frozen=True)
class AvailableSlot:
    time: datetime  # naive UTC
    available: bool = True


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval intersection: touching endpoints do not overlap"""
    return start_a < end_b and end_a > start_b


def booking_end(booking: Booking) -> datetime:
    return booking.scheduled_at + timedelta(minutes=booking.duration_minutes)


def has_conflict(
    db: Session,
    studio_id: str,
    candidate_start: datetime,
    candidate_duration: timedelta,
    mode: ConflictMode,
    exclude_booking_id: Optional[str] = None,
) -> ConflictResult:
    """Check a candidate window against the studio's bookings"""
    if mode == ConflictMode.EXACT_INSTANT:
        query = db.query(Booking).filter(
            Booking.studio_id == studio_id,
            Booking.scheduled_at == candidate_start,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        conflict = query.first()
        return ConflictResult(conflict is not None, conflict)

    elif mode == ConflictMode.INTERVAL_OVERLAP:
        candidate_end = candidate_start + candidate_duration
        for booking in _blocking_bookings(db, studio_id, candidate_start, candidate_end):
            if exclude_booking_id and booking.id == exclude_booking_id:
                continue
            if intervals_overlap(candidate_start, candidate_end, booking.scheduled_at, booking_end(booking)):
                return ConflictResult(True, booking)
        return ConflictResult(False)

    raise ValueError(f"Unhandled conflict mode: {mode!r}")


def _blocking_bookings(
    db: Session, studio_id: str, window_start: datetime, window_end: datetime
) -> list[Booking]:
    """
    Bookings that could intersect [window_start, window_end).

    Durations are per booking, so the lower bound is widened by the longest
    duration on record for the studio.
    """
    longest = _longest_duration_minutes(db, studio_id)
    return (
        db.query(Booking)
        .filter(
            Booking.studio_id == studio_id,
            Booking.status.notin_(CLOSED_BOOKING_STATUSES),
            Booking.scheduled_at < window_end,
            Booking.scheduled_at > window_start - timedelta(minutes=longest),
        )
        .order_by(Booking.scheduled_at.asc())
        .all()
    )


def _longest_duration_minutes(db: Session, studio_id: str) -> int:
    longest = (
        db.query(func.max(Booking.duration_minutes))
        .filter(Booking.studio_id == studio_id)
        .scalar()
    )
    return longest or 0


def candidate_slot_times(day: date, tz_name: str) -> list[datetime]:
    """Studio-hours start times for a local calendar day, as naive UTC"""
    tz = ZoneInfo(tz_name)
    slots = []
    minute_of_day = STUDIO_OPEN_HOUR * 60
    while minute_of_day < STUDIO_CLOSE_HOUR * 60:
        local = datetime.combine(day, time(minute_of_day // 60, minute_of_day % 60), tzinfo=tz)
        slots.append(local.astimezone(ZoneInfo("UTC")).replace(tzinfo=None))
        minute_of_day += SLOT_STEP_MINUTES
    return slots


def list_available_slots(
    db: Session,
    studio: Studio,
    duration_minutes: int,
    day: date,
    now: datetime,
) -> list[AvailableSlot]:
    """
    Open slots for a service on a studio-local date.

    Past slots and slots that overlap a blocking booking are dropped rather
    than returned as unavailable.
    """
    candidates = candidate_slot_times(day, studio.timezone)
    if not candidates:
        return []

    duration = timedelta(minutes=duration_minutes)
    existing = _blocking_bookings(db, studio.id, candidates[0], candidates[-1] + duration)

    slots = []
    for slot_time in candidates:
        if slot_time < now:
            continue
        slot_end = slot_time + duration
        if any(
            intervals_overlap(slot_time, slot_end, b.scheduled_at, booking_end(b)) for b in existing
        ):
            continue
        slots.append(AvailableSlot(time=slot_time))

    logger.debug(f"Studio {studio.id} has {len(slots)} open slots on {day.isoformat()}")
    return slots


def studio_write_lock(db: Session, studio_id: str):
    """Serialise conflict-check-then-write for one studio; commit inside the block"""
    return row_write_lock(db, Studio, studio_id)
