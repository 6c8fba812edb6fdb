import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from studiodesk.clock import FrozenClock  # noqa: E402
from studiodesk.database import Base  # noqa: E402
from studiodesk.domain.bookings import state_machine  # noqa: E402
from studiodesk.domain.bookings.service import BookingService  # noqa: E402
from studiodesk.domain.scheduling.queue import InMemoryJobQueue  # noqa: E402
from studiodesk.domain.scheduling.scheduler import JobScheduler  # noqa: E402
from studiodesk.models import Booking, BookingStatus, Customer, Service, Studio  # noqa: E402
from studiodesk.models_invoice import Invoice, InvoiceStatus  # noqa: E402

# Appointment time used across the end-to-end scenarios
T = datetime(2025, 6, 1, 10, 0)


class FakeDispatcher:
    """Records notifications instead of sending them; can be told to fail"""

    def __init__(self):
        self.sent = []
        self.fail_always = False
        self.failures_remaining = 0

    async def _record(self, kind, subject):
        if self.fail_always or self.failures_remaining > 0:
            self.failures_remaining = max(self.failures_remaining - 1, 0)
            raise RuntimeError("email provider unavailable")
        self.sent.append((kind, subject.id))
        return {"id": f"{kind}-{len(self.sent)}"}

    async def send_booking_confirmation(self, booking):
        return await self._record("booking_confirmation", booking)

    async def send_booking_status_update(self, booking, status, notes=None):
        return await self._record(f"status_update:{status.value}", booking)

    async def send_booking_reminder(self, booking):
        return await self._record("booking_reminder", booking)

    async def send_payment_reminder(self, invoice):
        return await self._record("payment_reminder", invoice)

    async def send_follow_up(self, booking):
        return await self._record("follow_up", booking)

    async def send_invoice(self, invoice):
        return await self._record("invoice", invoice)

    def sent_of(self, kind):
        return [subject_id for sent_kind, subject_id in self.sent if sent_kind == kind]


class Factory:
    """Builds persisted studios, services, customers, bookings and invoices"""

    def __init__(self, db, clock):
        self.db = db
        self.clock = clock
        self._counter = 0

    def _next(self):
        self._counter += 1
        return self._counter

    def studio(self, slug=None, **kwargs):
        n = self._next()
        studio = Studio(
            name=kwargs.pop("name", f"Studio {n}"),
            slug=slug or f"studio-{n}",
            email=kwargs.pop("email", f"hello{n}@studio.test"),
            **kwargs,
        )
        self.db.add(studio)
        self.db.commit()
        return studio

    def service(self, studio, duration_minutes=60, **kwargs):
        service = Service(
            studio_id=studio.id,
            name=kwargs.pop("name", "Portrait Session"),
            duration_minutes=duration_minutes,
            price=kwargs.pop("price", 150.0),
            **kwargs,
        )
        self.db.add(service)
        self.db.commit()
        return service

    def customer(self, studio, **kwargs):
        n = self._next()
        customer = Customer(
            studio_id=studio.id,
            name=kwargs.pop("name", f"Customer {n}"),
            email=kwargs.pop("email", f"customer{n}@example.com"),
            phone=kwargs.pop("phone", f"+1555000{n:04d}"),
            **kwargs,
        )
        self.db.add(customer)
        self.db.commit()
        return customer

    def booking(
        self,
        studio,
        service=None,
        customer=None,
        scheduled_at=T,
        status=BookingStatus.INQUIRY,
        duration_minutes=None,
        updated_at=None,
    ):
        service = service or self.service(studio)
        customer = customer or self.customer(studio)
        booking = Booking(
            studio_id=studio.id,
            customer_id=customer.id,
            service_id=service.id,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes or service.duration_minutes,
        )
        state_machine.start(booking, self.clock.now())
        booking.status = status
        if updated_at is not None:
            booking.updated_at = updated_at
        self.db.add(booking)
        self.db.commit()
        return booking

    def invoice(self, studio, customer=None, status=InvoiceStatus.DRAFT, total=200.0, due_date=None):
        customer = customer or self.customer(studio)
        n = self._next()
        now = self.clock.now()
        invoice = Invoice(
            studio_id=studio.id,
            customer_id=customer.id,
            invoice_number=f"INV-{now.year}-{n:05d}",
            total=total,
            status=status,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        self.db.add(invoice)
        self.db.commit()
        return invoice


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    """T - 30h"""
    return FrozenClock(T - timedelta(hours=30))


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def queue():
    return InMemoryJobQueue()


@pytest.fixture
def scheduler(queue, clock):
    return JobScheduler(queue, clock, max_attempts=3)


@pytest.fixture
def booking_service(db, scheduler, dispatcher, clock):
    return BookingService(db, scheduler, dispatcher, clock)


@pytest.fixture
def factory(db, clock):
    return Factory(db, clock)
