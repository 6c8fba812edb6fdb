import asyncio
from datetime import timedelta

import pytest

from studiodesk.domain.scheduling.jobs import BackoffPolicy, JobKind, ScheduledJob
from studiodesk.domain.scheduling.runner import (
    ABANDONED,
    DISPATCHED,
    RETRYING,
    SKIPPED,
    InProcessWorker,
    JobRunner,
    SessionJobRunner,
)
from studiodesk.errors import DispatchFailure
from studiodesk.models import Booking, BookingStatus
from studiodesk.models_invoice import InvoiceStatus


@pytest.fixture
def runner(db, dispatcher):
    return JobRunner(db, dispatcher)


@pytest.fixture
def worker(queue, runner, clock):
    return InProcessWorker(queue, runner, clock, BackoffPolicy(base_seconds=60, max_seconds=3600))


def test_backoff_doubles_from_sixty_seconds_and_is_capped():
    backoff = BackoffPolicy(base_seconds=60, max_seconds=3600)

    assert backoff.delay(1) == timedelta(seconds=60)
    assert backoff.delay(2) == timedelta(seconds=120)
    assert backoff.delay(3) == timedelta(seconds=240)
    assert backoff.delay(12) == timedelta(seconds=3600)


def test_jobs_pop_in_due_order(queue, clock):
    now = clock.now()
    later = ScheduledJob(due_at=now + timedelta(minutes=5), kind=JobKind.FOLLOW_UP, subject_id="b")
    sooner = ScheduledJob(due_at=now, kind=JobKind.FOLLOW_UP, subject_id="a")
    not_yet = ScheduledJob(due_at=now + timedelta(hours=1), kind=JobKind.FOLLOW_UP, subject_id="c")
    for job in (later, not_yet, sooner):
        queue.push_nowait(job)

    due = queue.pop_due(now + timedelta(minutes=5))

    assert [job.subject_id for job in due] == ["a", "b"]
    assert queue.next_due_at() == not_yet.due_at


def test_booking_reminder_dispatches_for_confirmed_booking(runner, factory, dispatcher):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.CONFIRMED)

    outcome = asyncio.run(runner.execute(JobKind.BOOKING_REMINDER, booking.id))

    assert outcome == DISPATCHED
    assert dispatcher.sent_of("booking_reminder") == [booking.id]


@pytest.mark.parametrize(
    "status", [BookingStatus.CANCELLED, BookingStatus.QUOTED, BookingStatus.COMPLETED]
)
def test_booking_reminder_skipped_unless_confirmed(runner, factory, dispatcher, status):
    studio = factory.studio()
    booking = factory.booking(studio, status=status)

    outcome = asyncio.run(runner.execute(JobKind.BOOKING_REMINDER, booking.id))

    assert outcome == SKIPPED
    assert dispatcher.sent == []


def test_missing_subject_is_skipped(runner, dispatcher):
    assert asyncio.run(runner.execute(JobKind.BOOKING_REMINDER, "gone")) == SKIPPED
    assert asyncio.run(runner.execute(JobKind.PAYMENT_REMINDER, "gone")) == SKIPPED
    assert dispatcher.sent == []


@pytest.mark.parametrize(
    "status,expected",
    [
        (InvoiceStatus.SENT, DISPATCHED),
        (InvoiceStatus.OVERDUE, DISPATCHED),
        (InvoiceStatus.PARTIALLY_PAID, DISPATCHED),
        (InvoiceStatus.PAID, SKIPPED),
        (InvoiceStatus.CANCELLED, SKIPPED),
    ],
)
def test_payment_reminder_rechecks_invoice_status(runner, factory, status, expected):
    studio = factory.studio()
    invoice = factory.invoice(studio, status=status)

    assert asyncio.run(runner.execute(JobKind.PAYMENT_REMINDER, invoice.id)) == expected


def test_follow_up_only_for_completed_bookings(runner, factory, dispatcher):
    studio = factory.studio()
    completed = factory.booking(studio, status=BookingStatus.COMPLETED)
    cancelled = factory.booking(studio, status=BookingStatus.CANCELLED)

    assert asyncio.run(runner.execute(JobKind.FOLLOW_UP, completed.id)) == DISPATCHED
    assert asyncio.run(runner.execute(JobKind.FOLLOW_UP, cancelled.id)) == SKIPPED
    assert dispatcher.sent_of("follow_up") == [completed.id]


def test_runner_sees_status_changed_by_another_session(runner, factory, session_factory, dispatcher):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.CONFIRMED)

    other = session_factory()
    try:
        other.query(Booking).filter(Booking.id == booking.id).update(
            {"status": BookingStatus.CANCELLED}
        )
        other.commit()
    finally:
        other.close()

    assert asyncio.run(runner.execute(JobKind.BOOKING_REMINDER, booking.id)) == SKIPPED
    assert dispatcher.sent == []


def test_dispatch_errors_become_dispatch_failures(runner, factory, dispatcher):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.CONFIRMED)
    dispatcher.fail_always = True

    with pytest.raises(DispatchFailure):
        asyncio.run(runner.execute(JobKind.BOOKING_REMINDER, booking.id))


def test_failed_job_is_retried_with_backoff_then_abandoned(worker, queue, clock, factory, dispatcher):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.CONFIRMED)
    dispatcher.fail_always = True
    queue.push_nowait(
        ScheduledJob(due_at=clock.now(), kind=JobKind.BOOKING_REMINDER, subject_id=booking.id)
    )

    first = asyncio.run(worker.run_due())
    [retry] = queue.pending()
    assert first[RETRYING] == 1
    assert retry.attempt == 2
    assert retry.due_at == clock.now() + timedelta(seconds=60)

    clock.advance(timedelta(seconds=60))
    asyncio.run(worker.run_due())
    [retry] = queue.pending()
    assert retry.attempt == 3
    assert retry.due_at == clock.now() + timedelta(seconds=120)

    clock.advance(timedelta(seconds=120))
    last = asyncio.run(worker.run_due())

    assert last[ABANDONED] == 1
    assert len(queue) == 0
    assert dispatcher.sent == []


def test_transient_failure_succeeds_on_retry(worker, queue, clock, factory, dispatcher):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.CONFIRMED)
    dispatcher.failures_remaining = 1
    queue.push_nowait(
        ScheduledJob(due_at=clock.now(), kind=JobKind.BOOKING_REMINDER, subject_id=booking.id)
    )

    asyncio.run(worker.run_due())
    clock.advance(timedelta(seconds=60))
    summary = asyncio.run(worker.run_due())

    assert summary[DISPATCHED] == 1
    assert dispatcher.sent_of("booking_reminder") == [booking.id]


def test_jobs_not_yet_due_are_left_alone(worker, queue, clock):
    queue.push_nowait(
        ScheduledJob(
            due_at=clock.now() + timedelta(minutes=1),
            kind=JobKind.FOLLOW_UP,
            subject_id="b-1",
        )
    )

    summary = asyncio.run(worker.run_due())

    assert sum(summary.values()) == 0
    assert len(queue) == 1


def test_session_runner_uses_a_fresh_session_per_job(session_factory, factory, dispatcher):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.COMPLETED)

    outcome = asyncio.run(
        SessionJobRunner(session_factory, dispatcher).execute(JobKind.FOLLOW_UP, booking.id)
    )

    assert outcome == DISPATCHED


def test_scheduled_job_requires_kind_and_subject(clock):
    with pytest.raises(TypeError):
        ScheduledJob(due_at=clock.now())
    with pytest.raises(TypeError):
        ScheduledJob(due_at=clock.now(), kind=JobKind.FOLLOW_UP)
