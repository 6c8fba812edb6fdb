"""Invoice service - sending invoices and recording payments"""

import logging

from sqlalchemy.orm import Session

from ...clock import to_utc_naive
from ...errors import InvalidOperation, NotFound
from ...locks import row_write_lock
from ...models import Studio
from ...models_invoice import Invoice, InvoiceStatus, Payment
from .repository import InvoiceRepository
from .schemas import InvoiceCreate, PaymentCreate

logger = logging.getLogger(__name__)


def paid_status(amount_paid: float, total: float) -> InvoiceStatus:
    """Invoice status implied by the money received so far"""
    if amount_paid <= 0:
        return InvoiceStatus.SENT
    if round(amount_paid, 2) >= round(total, 2):
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


class InvoiceService:
    def __init__(self, db: Session, scheduler, dispatcher, clock):
        self.db = db
        self.repo = InvoiceRepository()
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.clock = clock

    def get_invoice(self, invoice_id: str, studio_id: str) -> Invoice:
        invoice = self.repo.get_invoice(self.db, invoice_id, studio_id)
        if not invoice:
            raise NotFound("Invoice not found")
        return invoice

    def generate_invoice_number(self, studio_id: str) -> str:
        """INV-YYYY-NNNNN, sequential per studio"""
        sequence = self.repo.count_for_studio(self.db, studio_id) + 1
        return f"INV-{self.clock.now().year}-{sequence:05d}"

    def create_invoice(self, data: InvoiceCreate, studio: Studio) -> Invoice:
        if not self.repo.get_customer(self.db, data.customerId, studio.id):
            raise NotFound("Customer not found")
        if data.bookingId and not self.repo.get_booking(self.db, data.bookingId, studio.id):
            raise NotFound("Booking not found")

        now = self.clock.now()
        with row_write_lock(self.db, Studio, studio.id):
            invoice = Invoice(
                studio_id=studio.id,
                customer_id=data.customerId,
                booking_id=data.bookingId,
                invoice_number=self.generate_invoice_number(studio.id),
                total=data.total,
                status=InvoiceStatus.DRAFT,
                due_date=to_utc_naive(data.dueDate) if data.dueDate else None,
                notes=data.notes,
                created_at=now,
                updated_at=now,
            )
            try:
                self.db.add(invoice)
                self.db.commit()
            except Exception as e:
                logger.error(f"❌ Failed to create invoice for studio {studio.id}: {e}")
                self.db.rollback()
                raise

        self.db.refresh(invoice)
        logger.info(f"✅ Invoice {invoice.invoice_number} created for studio {studio.id}")
        return invoice

    async def send_invoice(self, invoice_id: str, studio_id: str) -> Invoice:
        """
        Mark a draft invoice SENT, email it and schedule its payment reminder.

        The email and the reminder are best-effort; the invoice stays SENT
        if either fails.
        """
        invoice = self.get_invoice(invoice_id, studio_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidOperation("Only draft invoices can be sent")

        invoice.status = InvoiceStatus.SENT
        invoice.updated_at = self.clock.now()
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(invoice)

        try:
            await self.dispatcher.send_invoice(invoice)
        except Exception as e:
            logger.error(f"❌ Failed to send invoice email for {invoice.invoice_number}: {e}")

        if invoice.due_date:
            try:
                await self.scheduler.schedule_payment_reminder(invoice.id, invoice.due_date)
            except Exception as e:
                logger.error(
                    f"❌ Failed to schedule payment reminder for {invoice.invoice_number}: {e}"
                )

        return invoice

    def record_payment(self, invoice_id: str, data: PaymentCreate, studio_id: str) -> Payment:
        self.get_invoice(invoice_id, studio_id)

        with row_write_lock(self.db, Invoice, invoice_id):
            invoice = (
                self.db.query(Invoice)
                .populate_existing()
                .filter(Invoice.id == invoice_id)
                .first()
            )
            if invoice.status == InvoiceStatus.CANCELLED:
                raise InvalidOperation("Cannot add payment to cancelled invoice")

            remaining = round(invoice.total - invoice.amount_paid, 2)
            if round(data.amount, 2) > remaining:
                raise InvalidOperation(
                    f"Payment amount (${data.amount:.2f}) exceeds remaining balance (${remaining:.2f})"
                )

            now = self.clock.now()
            payment = Payment(
                invoice_id=invoice.id,
                amount=data.amount,
                payment_method=data.paymentMethod,
                transaction_id=data.transactionId,
                paid_at=now,
            )
            invoice.payments.append(payment)
            invoice.status = paid_status(invoice.amount_paid, invoice.total)
            invoice.updated_at = now
            try:
                self.db.commit()
            except Exception as e:
                logger.error(f"❌ Failed to record payment for invoice {invoice_id}: {e}")
                self.db.rollback()
                raise

        self.db.refresh(payment)
        logger.info(
            f"✅ Payment {payment.id} recorded on invoice {invoice.invoice_number} "
            f"({invoice.status.value})"
        )
        return payment

    def remove_payment(self, invoice_id: str, payment_id: str, studio_id: str) -> Invoice:
        self.get_invoice(invoice_id, studio_id)

        with row_write_lock(self.db, Invoice, invoice_id):
            payment = self.repo.get_payment(self.db, payment_id, invoice_id)
            if not payment:
                raise NotFound("Payment not found")

            invoice = payment.invoice
            invoice.payments.remove(payment)
            if invoice.status != InvoiceStatus.CANCELLED:
                invoice.status = paid_status(invoice.amount_paid, invoice.total)
            invoice.updated_at = self.clock.now()
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(invoice)
        return invoice
