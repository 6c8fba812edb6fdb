"""Invoice router - FastAPI endpoints for invoices and payments"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_studio
from ...database import get_db
from ...dependencies import get_clock, get_dispatcher, get_scheduler
from ...models import Studio
from ...models_invoice import Invoice, Payment
from .schemas import InvoiceCreate, InvoiceResponse, PaymentCreate, PaymentResponse
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
    dispatcher=Depends(get_dispatcher),
    clock=Depends(get_clock),
) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db, scheduler, dispatcher, clock)


def payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        amount=payment.amount,
        paymentMethod=payment.payment_method,
        transactionId=payment.transaction_id,
        paidAt=payment.paid_at,
    )


def invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        studioId=invoice.studio_id,
        customerId=invoice.customer_id,
        bookingId=invoice.booking_id,
        invoiceNumber=invoice.invoice_number,
        total=invoice.total,
        amountPaid=invoice.amount_paid,
        status=invoice.status,
        dueDate=invoice.due_date,
        notes=invoice.notes,
        createdAt=invoice.created_at,
        updatedAt=invoice.updated_at,
        payments=[payment_response(p) for p in invoice.payments],
    )


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    studio: Studio = Depends(get_current_studio),
    service: InvoiceService = Depends(get_invoice_service),
):
    return invoice_response(service.create_invoice(data, studio))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    studio: Studio = Depends(get_current_studio),
    service: InvoiceService = Depends(get_invoice_service),
):
    return invoice_response(service.get_invoice(invoice_id, studio.id))


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: str,
    studio: Studio = Depends(get_current_studio),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Send a draft invoice to the customer and schedule its payment reminder"""
    invoice = await service.send_invoice(invoice_id, studio.id)
    return invoice_response(invoice)


@router.post("/{invoice_id}/payments", response_model=PaymentResponse, status_code=201)
async def record_payment(
    invoice_id: str,
    data: PaymentCreate,
    studio: Studio = Depends(get_current_studio),
    service: InvoiceService = Depends(get_invoice_service),
):
    payment = service.record_payment(invoice_id, data, studio.id)
    return payment_response(payment)


@router.delete("/{invoice_id}/payments/{payment_id}", response_model=InvoiceResponse)
async def remove_payment(
    invoice_id: str,
    payment_id: str,
    studio: Studio = Depends(get_current_studio),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = service.remove_payment(invoice_id, payment_id, studio.id)
    return invoice_response(invoice)
