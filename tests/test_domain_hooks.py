"""Tests for the domain entry points that schedule and send notifications."""
from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime, time, timezone
from unittest.mock import patch

import pytest

from app.db.models import Event, EventBooking, ScheduledTask
from app.schemas.notification import EventScheduleConfig
from app.services import domain_hooks
from app.services.task_scheduler import TaskStatus


NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def clock():
    return NOW


@pytest.fixture()
def event(db_session):
    event = Event(title="Renal Workshop", date=date(2026, 3, 2), start_time=time(11, 0), target_cohorts=["ARU Year 4"])
    db_session.add(event)
    db_session.commit()
    return event


def test_event_created_schedules_reminders_and_markers(db_session, event):
    config = EventScheduleConfig(
        date=event.date,
        start_time=time(11, 0),
        end_time=time(13, 0),
        booking_enabled=True,
        feedback_enabled=True,
        auto_generate_certificate=True,
        certificate_template_id=uuid.uuid4(),
        target_cohorts=["ARU Year 4"],
    )

    results = domain_hooks.on_event_created_or_updated(db_session, event.id, config, clock=clock)

    assert results["reminders"].created == 2
    assert results["end_of_event"].created == 2
    assert db_session.query(ScheduledTask).count() == 4


def test_event_hook_survives_scheduler_failure(db_session, event):
    config = EventScheduleConfig(date=event.date, start_time=time(11, 0), booking_enabled=True, feedback_enabled=True)

    with patch.object(domain_hooks.TaskScheduler, "reschedule_event_reminders", side_effect=RuntimeError("boom")):
        results = domain_hooks.on_event_created_or_updated(db_session, event.id, config, clock=clock)

    assert results["reminders"].created == 0
    assert results["reminders"].message == "boom"
    assert results["end_of_event"].created == 1


def test_booking_created_schedules_reminders(db_session, event, make_user):
    booking = EventBooking(event_id=event.id, user_id=make_user().id)
    db_session.add(booking)
    db_session.commit()

    result = domain_hooks.on_booking_created(db_session, booking.id, event.date, event.start_time, clock=clock)

    assert result.created == 3


def test_certificate_hook_never_raises(db_session, fake_transport):
    result = asyncio.run(domain_hooks.on_certificate_issued(db_session, uuid.uuid4(), fake_transport))

    assert result.as_dict() == {"sent": 0, "failed": 0}


def test_admin_cancellation_cancels_reminders_and_notifies(db_session, event, make_user, make_subscription, fake_transport):
    user = make_user()
    make_subscription(user)
    booking = EventBooking(event_id=event.id, user_id=user.id)
    db_session.add(booking)
    db_session.commit()
    domain_hooks.on_booking_created(db_session, booking.id, event.date, event.start_time, clock=clock)

    result = asyncio.run(
        domain_hooks.on_booking_cancelled_by_admin(db_session, booking.id, fake_transport, clock=clock)
    )

    assert result.sent == 1
    db_session.expire_all()
    assert {t.status for t in db_session.query(ScheduledTask).all()} == {TaskStatus.CANCELLED.value}


def test_admin_cancellation_hook_swallows_send_errors(db_session, fake_transport):
    with patch.object(
        domain_hooks.BookingNotificationBuilder,
        "send_admin_cancellation_notification",
        side_effect=RuntimeError("push outage"),
    ):
        result = asyncio.run(domain_hooks.on_booking_cancelled_by_admin(db_session, uuid.uuid4(), fake_transport))

    assert result.as_dict() == {"sent": 0, "failed": 0}


def test_waitlist_promotion_schedules_reminders(db_session, event, make_user, make_subscription, fake_transport):
    user = make_user()
    make_subscription(user)
    booking = EventBooking(event_id=event.id, user_id=user.id)
    db_session.add(booking)
    db_session.commit()

    result = asyncio.run(domain_hooks.on_waitlist_promoted(db_session, booking.id, fake_transport, clock=clock))

    assert result.sent == 1
    assert fake_transport.payloads[0].title == "Booking Confirmed"
    assert db_session.query(ScheduledTask).count() == 3


def test_event_cancelled_cancels_pending_tasks(db_session, event, make_user, make_subscription, fake_transport):
    make_subscription(make_user("ARU", "4"))
    domain_hooks.on_event_created_or_updated(
        db_session,
        event.id,
        EventScheduleConfig(date=event.date, start_time=time(11, 0), target_cohorts=["ARU Year 4"]),
        clock=clock,
    )

    result = asyncio.run(domain_hooks.on_event_cancelled(db_session, event.id, fake_transport, clock=clock))

    assert result.sent == 1
    db_session.expire_all()
    assert {t.status for t in db_session.query(ScheduledTask).all()} == {TaskStatus.CANCELLED.value}
