"""
Invoice and Payment Models (scheduling-relevant fields only)
"""

import enum

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .database import Base
from .models import generate_id


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


# Invoices still waiting on money
UNPAID_INVOICE_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)


class Invoice(Base):
    """Invoice issued by a studio to a customer"""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("studio_id", "invoice_number", name="uq_invoice_number_per_studio"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    studio_id = Column(String(36), ForeignKey("studios.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True)

    invoice_number = Column(String(50), nullable=False)
    total = Column(Float, nullable=False)
    status = Column(
        Enum(InvoiceStatus, name="invoice_status"),
        default=InvoiceStatus.DRAFT,
        nullable=False,
        index=True,
    )
    due_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    customer = relationship("Customer")
    booking = relationship("Booking")
    studio = relationship("Studio")
    payments = relationship(
        "Payment",
        back_populates="invoice",
        order_by="Payment.paid_at",
        cascade="all, delete-orphan",
    )

    @property
    def amount_paid(self) -> float:
        return sum(p.amount for p in self.payments)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    payment_method = Column(String(50), nullable=True)  # cash, card, bank_transfer
    transaction_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=False)

    invoice = relationship("Invoice", back_populates="payments")
