import asyncio
from datetime import timedelta

from conftest import T

from studiodesk.domain.scheduling.jobs import JobKind
from studiodesk.models import BookingStatus


class BrokenScheduler:
    async def schedule_booking_reminder(self, booking_id, scheduled_at):
        raise ConnectionError("redis down")

    async def schedule_follow_up(self, booking_id):
        raise ConnectionError("redis down")


def test_booking_reminder_is_due_a_day_before(scheduler, queue):
    job = asyncio.run(scheduler.schedule_booking_reminder("b-1", T))

    assert job.kind == JobKind.BOOKING_REMINDER
    assert job.due_at == T - timedelta(hours=24)
    assert queue.pending() == [job]


def test_booking_reminder_in_the_past_is_not_scheduled(scheduler, queue, clock):
    clock.set(T - timedelta(hours=2))

    job = asyncio.run(scheduler.schedule_booking_reminder("b-1", T))

    assert job is None
    assert len(queue) == 0


def test_overdue_payment_reminder_is_due_immediately(scheduler, clock):
    due_date = clock.now() - timedelta(days=5)

    job = asyncio.run(scheduler.schedule_payment_reminder("inv-1", due_date))

    assert job.due_at == clock.now()


def test_payment_reminder_waits_a_day_after_due_date(scheduler, clock):
    due_date = clock.now() + timedelta(days=2)

    job = asyncio.run(scheduler.schedule_payment_reminder("inv-1", due_date))

    assert job.due_at == due_date + timedelta(hours=24)


def test_follow_up_is_due_a_day_later(scheduler, clock):
    job = asyncio.run(scheduler.schedule_follow_up("b-1"))

    assert job.due_at == clock.now() + timedelta(hours=24)
    assert job.attempt == 1
    assert job.max_attempts == 3


def test_scheduling_twice_creates_two_jobs(scheduler, queue):
    asyncio.run(scheduler.schedule_booking_reminder("b-1", T))
    asyncio.run(scheduler.schedule_booking_reminder("b-1", T))

    assert len(queue) == 2


def test_confirming_a_booking_schedules_its_reminder(db, factory, booking_service, queue):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.QUOTED)

    asyncio.run(booking_service.update_status(booking.id, BookingStatus.CONFIRMED))

    [job] = queue.pending()
    assert job.kind == JobKind.BOOKING_REMINDER
    assert job.subject_id == booking.id
    assert job.due_at == T - timedelta(hours=24)


def test_completing_a_booking_schedules_a_follow_up(db, factory, booking_service, queue, clock):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.IN_PROGRESS)

    asyncio.run(booking_service.update_status(booking.id, BookingStatus.COMPLETED))

    [job] = queue.pending()
    assert job.kind == JobKind.FOLLOW_UP
    assert job.due_at == clock.now() + timedelta(hours=24)


def test_other_transitions_schedule_nothing(db, factory, booking_service, queue):
    studio = factory.studio()
    booking = factory.booking(studio)

    asyncio.run(booking_service.update_status(booking.id, BookingStatus.QUOTED))
    asyncio.run(booking_service.cancel(booking.id))

    assert len(queue) == 0


def test_scheduling_failure_does_not_undo_the_transition(db, factory, booking_service):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.QUOTED)
    booking_service.scheduler = BrokenScheduler()

    updated = asyncio.run(booking_service.update_status(booking.id, BookingStatus.CONFIRMED))

    assert updated.status == BookingStatus.CONFIRMED
    db.expire_all()
    assert len(updated.status_logs) == 2


def test_notification_failure_does_not_undo_the_transition(factory, booking_service, dispatcher, queue):
    studio = factory.studio()
    booking = factory.booking(studio, status=BookingStatus.QUOTED)
    dispatcher.fail_always = True

    updated = asyncio.run(booking_service.update_status(booking.id, BookingStatus.CONFIRMED))

    assert updated.status == BookingStatus.CONFIRMED
    assert len(queue) == 1
