"""Invoice repository - Database operations for invoices and payments"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, Customer
from ...models_invoice import Invoice, Payment


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def get_invoice(db: Session, invoice_id: str, studio_id: str) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .filter(Invoice.id == invoice_id, Invoice.studio_id == studio_id)
            .first()
        )

    @staticmethod
    def get_payment(db: Session, payment_id: str, invoice_id: str) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.id == payment_id, Payment.invoice_id == invoice_id)
            .first()
        )

    @staticmethod
    def get_customer(db: Session, customer_id: str, studio_id: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.studio_id == studio_id)
            .first()
        )

    @staticmethod
    def get_booking(db: Session, booking_id: str, studio_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.studio_id == studio_id)
            .first()
        )

    @staticmethod
    def count_for_studio(db: Session, studio_id: str) -> int:
        return db.query(Invoice).filter(Invoice.studio_id == studio_id).count()
