"""
Notification Dispatcher
Decides who gets told about a booking or invoice event; delivery is delegated
to the email service. Every send may raise; job callers treat that as a
retryable failure, request handlers log and continue.
"""

import logging
from typing import Optional

from ..domain.bookings.state_machine import status_update_title
from ..email_service import send_email
from ..models import Booking, BookingStatus
from ..models_invoice import Invoice

logger = logging.getLogger(__name__)


def _fmt(value) -> str:
    return value.strftime("%A, %B %d %Y at %H:%M UTC") if value else "TBD"


class EmailNotificationDispatcher:
    """Sends booking and invoice notifications to customers by email"""

    def __init__(self, sender=send_email):
        self.sender = sender

    async def _send(self, to: Optional[str], subject: str, body: str, reply_to=None) -> dict:
        if not to:
            logger.debug(f"⚠️ No email address for notification '{subject}', skipping")
            return {"skipped": True}
        return await self.sender(
            to=to, subject=subject, html_content=f"<p>{body}</p>", reply_to=reply_to
        )

    async def send_booking_confirmation(self, booking: Booking) -> dict:
        return await self._send(
            booking.customer.email,
            f"Booking Confirmation - {booking.studio.name}",
            f"Hi {booking.customer.name}, we received your {booking.service.name} "
            f"request for {_fmt(booking.scheduled_at)}.",
            reply_to=booking.studio.email,
        )

    async def send_booking_status_update(
        self, booking: Booking, status: BookingStatus, notes: Optional[str] = None
    ) -> dict:
        body = (
            f"Hi {booking.customer.name}, your {booking.service.name} booking on "
            f"{_fmt(booking.scheduled_at)} is now {status.value.replace('_', ' ').lower()}."
        )
        if notes:
            body += f" Note from the studio: {notes}"
        return await self._send(
            booking.customer.email,
            f"{status_update_title(status)} - {booking.studio.name}",
            body,
            reply_to=booking.studio.email,
        )

    async def send_booking_reminder(self, booking: Booking) -> dict:
        return await self._send(
            booking.customer.email,
            f"Reminder: Your {booking.service.name} session tomorrow",
            f"Hi {booking.customer.name}, see you on {_fmt(booking.scheduled_at)}.",
            reply_to=booking.studio.email,
        )

    async def send_invoice(self, invoice: Invoice) -> dict:
        return await self._send(
            invoice.customer.email,
            f"Invoice #{invoice.invoice_number} from {invoice.studio.name}",
            f"Hi {invoice.customer.name}, your invoice {invoice.invoice_number} for "
            f"{invoice.total:.2f} is due {_fmt(invoice.due_date)}.",
            reply_to=invoice.studio.email,
        )

    async def send_payment_reminder(self, invoice: Invoice) -> dict:
        balance = invoice.total - invoice.amount_paid
        return await self._send(
            invoice.customer.email,
            f"Payment Reminder - Invoice #{invoice.invoice_number}",
            f"Hi {invoice.customer.name}, invoice {invoice.invoice_number} has an "
            f"outstanding balance of {balance:.2f}, due {_fmt(invoice.due_date)}.",
            reply_to=invoice.studio.email,
        )

    async def send_follow_up(self, booking: Booking) -> dict:
        return await self._send(
            booking.customer.email,
            f"Thank you for choosing {booking.studio.name}!",
            f"Hi {booking.customer.name}, thanks for your {booking.service.name} session. "
            "We'd love to hear how it went.",
            reply_to=booking.studio.email,
        )
