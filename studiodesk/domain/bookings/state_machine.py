"""
Booking status state machine.

INQUIRY → QUOTED → CONFIRMED → IN_PROGRESS → COMPLETED
Any non-terminal status → CANCELLED

The machine only validates and applies the change to the in-memory booking
(status, updated_at, status log row). Persisting the change and triggering
side effects such as reminder jobs is the caller's job.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...errors import InvalidOperation, InvalidTransition
from ...models import Booking, BookingStatus, BookingStatusLog

INITIAL_STATUS_NOTE = "Booking inquiry received"
CANCELLED_NOTE = "Booking cancelled"


@dataclass(frozen=True)
class TransitionEvent:
    booking_id: str
    from_status: BookingStatus
    to_status: BookingStatus
    at: datetime
    note: str


def next_statuses(status: BookingStatus) -> tuple:
    """Statuses reachable from the given status in one step"""
    if status == BookingStatus.INQUIRY:
        return (BookingStatus.QUOTED, BookingStatus.CANCELLED)
    elif status == BookingStatus.QUOTED:
        return (BookingStatus.CONFIRMED, BookingStatus.CANCELLED)
    elif status == BookingStatus.CONFIRMED:
        return (BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED)
    elif status == BookingStatus.IN_PROGRESS:
        return (BookingStatus.COMPLETED, BookingStatus.CANCELLED)
    elif status == BookingStatus.COMPLETED:
        return ()
    elif status == BookingStatus.CANCELLED:
        return ()
    raise ValueError(f"Unhandled booking status: {status!r}")


def is_terminal(status: BookingStatus) -> bool:
    return not next_statuses(status)


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in next_statuses(current)


def default_note(target: BookingStatus) -> str:
    return f"Status changed to {target.value}"


def start(booking: Booking, now: datetime, note: str = INITIAL_STATUS_NOTE) -> Booking:
    """Put a freshly built booking into its initial status with one log entry"""
    booking.status = BookingStatus.INQUIRY
    booking.created_at = now
    booking.updated_at = now
    booking.status_logs.append(
        BookingStatusLog(status=BookingStatus.INQUIRY, notes=note, created_at=now)
    )
    return booking


def transition(
    booking: Booking,
    target: BookingStatus,
    now: datetime,
    note: Optional[str] = None,
) -> TransitionEvent:
    """
    Apply a status change to the booking.

    Raises InvalidTransition without touching the booking when the target is
    not reachable from the current status.
    """
    current = booking.status
    if not can_transition(current, target):
        raise InvalidTransition(current, target)

    message = note or default_note(target)
    booking.status = target
    booking.updated_at = now
    booking.status_logs.append(BookingStatusLog(status=target, notes=message, created_at=now))

    return TransitionEvent(
        booking_id=booking.id,
        from_status=current,
        to_status=target,
        at=now,
        note=message,
    )


def cancel(booking: Booking, now: datetime, note: Optional[str] = None) -> TransitionEvent:
    """Cancel a booking; completed or already cancelled bookings are rejected up front"""
    if booking.status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
        raise InvalidOperation(f"Cannot cancel a {booking.status.value.lower()} booking")
    return transition(booking, BookingStatus.CANCELLED, now, note or CANCELLED_NOTE)


def status_update_title(status: BookingStatus) -> str:
    """Headline used when telling a customer about a status change"""
    if status == BookingStatus.INQUIRY:
        return "Booking Received"
    elif status == BookingStatus.QUOTED:
        return "Quote Ready"
    elif status == BookingStatus.CONFIRMED:
        return "Booking Confirmed"
    elif status == BookingStatus.IN_PROGRESS:
        return "Session In Progress"
    elif status == BookingStatus.COMPLETED:
        return "Session Completed"
    elif status == BookingStatus.CANCELLED:
        return "Booking Cancelled"
    raise ValueError(f"Unhandled booking status: {status!r}")
