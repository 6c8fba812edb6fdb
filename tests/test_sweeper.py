import asyncio
from datetime import timedelta

import pytest

from studiodesk.domain.scheduling.jobs import JobKind
from studiodesk.domain.scheduling.sweeper import (
    COMPLETED_BOOKINGS,
    OVERDUE_INVOICES,
    UPCOMING_BOOKINGS,
    ReconciliationSweeper,
    SweepCadence,
)
from studiodesk.models import BookingStatus
from studiodesk.models_invoice import InvoiceStatus


@pytest.fixture
def sweeper(db, scheduler, clock):
    return ReconciliationSweeper(db, scheduler, clock)


def test_upcoming_sweep_reschedules_confirmed_bookings_within_48h(sweeper, factory, queue, clock):
    studio = factory.studio()
    now = clock.now()
    in_30h = factory.booking(studio, scheduled_at=now + timedelta(hours=30), status=BookingStatus.CONFIRMED)
    # reminder time already passed, so only found
    factory.booking(studio, scheduled_at=now + timedelta(hours=10), status=BookingStatus.CONFIRMED)
    factory.booking(studio, scheduled_at=now + timedelta(hours=20), status=BookingStatus.QUOTED)
    factory.booking(studio, scheduled_at=now + timedelta(hours=60), status=BookingStatus.CONFIRMED)

    summary = asyncio.run(sweeper.sweep_upcoming_bookings())

    assert summary == {"found": 2, "scheduled": 1}
    [job] = queue.pending()
    assert job.subject_id == in_30h.id
    assert job.due_at == now + timedelta(hours=6)


def test_overdue_sweep_leaves_paid_and_draft_invoices_alone(sweeper, factory, queue, clock, db):
    studio = factory.studio()
    past = clock.now() - timedelta(days=2)
    paid = factory.invoice(studio, status=InvoiceStatus.PAID, due_date=past)
    draft = factory.invoice(studio, status=InvoiceStatus.DRAFT, due_date=past)
    factory.invoice(studio, status=InvoiceStatus.SENT, due_date=clock.now() + timedelta(days=1))

    summary = asyncio.run(sweeper.sweep_overdue_invoices())

    assert summary == {"found": 0, "marked_overdue": 0, "scheduled": 0}
    db.refresh(paid)
    db.refresh(draft)
    assert paid.status == InvoiceStatus.PAID
    assert draft.status == InvoiceStatus.DRAFT
    assert len(queue) == 0


def test_overdue_sweep_reminds_already_overdue_invoices_again(sweeper, factory, queue, clock):
    studio = factory.studio()
    invoice = factory.invoice(
        studio, status=InvoiceStatus.OVERDUE, due_date=clock.now() - timedelta(days=3)
    )

    summary = asyncio.run(sweeper.sweep_overdue_invoices())

    assert summary == {"found": 1, "marked_overdue": 0, "scheduled": 1}
    [job] = queue.pending()
    assert job.kind == JobKind.PAYMENT_REMINDER
    assert job.subject_id == invoice.id
    assert job.due_at == clock.now()


def test_completed_sweep_window_is_24_to_48_hours(sweeper, factory, queue, clock):
    studio = factory.studio()
    now = clock.now()
    inside = factory.booking(
        studio, status=BookingStatus.COMPLETED, updated_at=now - timedelta(hours=30)
    )
    factory.booking(studio, status=BookingStatus.COMPLETED, updated_at=now - timedelta(hours=10))
    factory.booking(studio, status=BookingStatus.COMPLETED, updated_at=now - timedelta(hours=50))
    factory.booking(studio, status=BookingStatus.CANCELLED, updated_at=now - timedelta(hours=30))

    summary = asyncio.run(sweeper.sweep_completed_bookings())

    assert summary == {"found": 1, "scheduled": 1}
    [job] = queue.pending()
    assert job.kind == JobKind.FOLLOW_UP
    assert job.subject_id == inside.id


def test_run_dispatches_by_name(sweeper):
    assert asyncio.run(sweeper.run(UPCOMING_BOOKINGS)) == {"found": 0, "scheduled": 0}
    with pytest.raises(ValueError):
        asyncio.run(sweeper.run("nightly_backup"))


def test_cadence_runs_upcoming_hourly_and_the_rest_daily(clock):
    cadence = SweepCadence()
    start = clock.now()

    assert set(cadence.due(start)) == {UPCOMING_BOOKINGS, OVERDUE_INVOICES, COMPLETED_BOOKINGS}
    for name in cadence.due(start):
        cadence.mark_ran(name, start)

    assert cadence.due(start + timedelta(minutes=59)) == []
    assert cadence.due(start + timedelta(hours=1)) == [UPCOMING_BOOKINGS]
    assert set(cadence.due(start + timedelta(days=1))) == {
        UPCOMING_BOOKINGS,
        OVERDUE_INVOICES,
        COMPLETED_BOOKINGS,
    }


def test_overdue_sweep_continues_past_a_failed_commit(sweeper, factory, queue, clock, db, monkeypatch):
    studio = factory.studio()
    past = clock.now() - timedelta(days=2)
    factory.invoice(studio, status=InvoiceStatus.SENT, due_date=past)
    factory.invoice(studio, status=InvoiceStatus.SENT, due_date=past)

    real_commit = db.commit
    calls = []

    def flaky_commit():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("connection reset")
        real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)

    summary = asyncio.run(sweeper.sweep_overdue_invoices())

    assert summary == {"found": 2, "marked_overdue": 1, "scheduled": 1}
    assert len(queue) == 1
