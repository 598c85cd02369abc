"""Tests for the due task sweep."""
from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.db.models import Event, EventBooking, ScheduledTask
from app.services.due_tasks import DueTaskProcessor
from app.services.task_scheduler import TaskStatus


NOW = datetime(2026, 3, 2, 10, 1, tzinfo=timezone.utc)


@pytest.fixture()
def event(db_session):
    event = Event(title="Respiratory Teaching", date=date(2026, 3, 2), start_time=time(11, 0), target_cohorts=["ARU Year 4"])
    db_session.add(event)
    db_session.commit()
    return event


def _task(db_session, task_type, run_at, key, event_id=None, metadata=None):
    task = ScheduledTask(
        task_type=task_type,
        run_at=run_at,
        idempotency_key=key,
        event_id=event_id,
        task_metadata=metadata,
        status=TaskStatus.PENDING.value,
    )
    db_session.add(task)
    db_session.commit()
    return task


def test_sweep_sends_due_reminders_and_leaves_the_rest(db_session, event, make_user, make_subscription, fake_transport):
    user = make_user("ARU", "4")
    make_subscription(user)
    booking = EventBooking(event_id=event.id, user_id=user.id)
    db_session.add(booking)
    db_session.commit()

    due_event = _task(db_session, "event_reminder_1h", NOW - timedelta(minutes=1), "event_reminder_1h|e|2026-03-02", event.id)
    due_booking = _task(
        db_session, "booking_reminder_1h", NOW - timedelta(minutes=1), "booking_reminder_1h|b|2026-03-02",
        metadata={"booking_id": str(booking.id)},
    )
    future = _task(db_session, "event_reminder_15m", NOW + timedelta(minutes=44), "event_reminder_15m|e|2026-03-02", event.id)
    marker = _task(db_session, "certificates_auto_generate", NOW - timedelta(minutes=5), "certificates_auto_generate|e|2026-03-02", event.id)

    summary = asyncio.run(DueTaskProcessor(db_session, fake_transport, clock=lambda: NOW).run())

    assert summary["processed"] == 2
    assert summary["completed"] == 2
    assert summary["failed"] == 0
    assert summary["sent"] == 2
    db_session.expire_all()
    assert db_session.get(ScheduledTask, due_event.id).status == TaskStatus.COMPLETED.value
    assert db_session.get(ScheduledTask, due_event.id).processed_at is not None
    assert db_session.get(ScheduledTask, due_booking.id).status == TaskStatus.COMPLETED.value
    assert db_session.get(ScheduledTask, future.id).status == TaskStatus.PENDING.value
    assert db_session.get(ScheduledTask, marker.id).status == TaskStatus.PENDING.value


def test_booking_reminder_without_booking_id_fails(db_session, fake_transport):
    broken = _task(db_session, "booking_reminder_24h", NOW - timedelta(hours=1), "booking_reminder_24h|x|2026-03-03")

    summary = asyncio.run(DueTaskProcessor(db_session, fake_transport, clock=lambda: NOW).run())

    assert summary["failed"] == 1
    db_session.expire_all()
    task = db_session.get(ScheduledTask, broken.id)
    assert task.status == TaskStatus.FAILED.value
    assert "booking_id" in task.error_message


def test_claimed_tasks_are_not_processed_twice(db_session, event, fake_transport):
    task = _task(db_session, "event_reminder_1h", NOW - timedelta(minutes=1), "event_reminder_1h|e|2026-03-02", event.id)
    processor = DueTaskProcessor(db_session, fake_transport, clock=lambda: NOW)

    assert processor.claim(task.id) is True
    assert processor.claim(task.id) is False


def test_sweep_respects_limit(db_session, event, fake_transport):
    for minutes in (3, 2, 1):
        _task(db_session, "event_reminder_1h", NOW - timedelta(minutes=minutes), f"event_reminder_1h|{minutes}|2026-03-02", event.id)

    summary = asyncio.run(DueTaskProcessor(db_session, fake_transport, clock=lambda: NOW).run(limit=2))

    assert summary["processed"] == 2
    assert db_session.query(ScheduledTask).filter_by(status=TaskStatus.PENDING.value).count() == 1


def test_sweep_releases_abandoned_claims(db_session, event, fake_transport):
    abandoned = _task(db_session, "event_reminder_1h", NOW - timedelta(minutes=40), "event_reminder_1h|old|2026-03-02", event.id)
    in_flight = _task(db_session, "event_reminder_15m", NOW - timedelta(minutes=2), "event_reminder_15m|new|2026-03-02", event.id)
    abandoned.status, abandoned.claimed_at = TaskStatus.PROCESSING.value, NOW - timedelta(minutes=30)
    in_flight.status, in_flight.claimed_at = TaskStatus.PROCESSING.value, NOW - timedelta(minutes=1)
    db_session.commit()

    summary = asyncio.run(DueTaskProcessor(db_session, fake_transport, clock=lambda: NOW).run())

    assert summary["processed"] == 1
    db_session.expire_all()
    assert db_session.get(ScheduledTask, abandoned.id).status == TaskStatus.COMPLETED.value
    assert db_session.get(ScheduledTask, in_flight.id).status == TaskStatus.PROCESSING.value


def test_claim_records_claim_time(db_session, event, fake_transport):
    task = _task(db_session, "event_reminder_1h", NOW - timedelta(minutes=1), "event_reminder_1h|e|2026-03-02", event.id)

    DueTaskProcessor(db_session, fake_transport, clock=lambda: NOW).claim(task.id)

    db_session.expire_all()
    assert db_session.get(ScheduledTask, task.id).claimed_at is not None
