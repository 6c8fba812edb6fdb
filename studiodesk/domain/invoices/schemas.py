"""Invoice domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ...models_invoice import InvoiceStatus


class InvoiceCreate(BaseModel):
    customerId: str
    bookingId: Optional[str] = None
    total: float = Field(..., ge=0)
    dueDate: Optional[datetime] = None
    notes: Optional[str] = None


class PaymentCreate(BaseModel):
    amount: float = Field(..., gt=0)
    paymentMethod: Optional[str] = None
    transactionId: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    amount: float
    paymentMethod: Optional[str] = None
    transactionId: Optional[str] = None
    paidAt: datetime


class InvoiceResponse(BaseModel):
    """Schema for invoice response"""

    id: str
    studioId: str
    customerId: str
    bookingId: Optional[str] = None
    invoiceNumber: str
    total: float
    amountPaid: float
    status: InvoiceStatus
    dueDate: Optional[datetime] = None
    notes: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    payments: list[PaymentResponse] = []
