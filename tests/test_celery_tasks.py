"""Tests for Celery background tasks."""
from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from app.db.models import Certificate, Event, NotificationLog, ScheduledTask
from app.services.task_scheduler import TaskStatus
from app.tasks.notifications import (
    cleanup_notification_logs,
    process_due_tasks,
    send_certificate_available,
)


@pytest.fixture()
def task_session_factory(db_session):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_session.bind)
    sessions: list = []

    def create_session():
        session = factory()
        sessions.append(session)
        return session

    try:
        yield create_session
    finally:
        for session in sessions:
            session.close()


@pytest.fixture()
def use_fake_transport(fake_transport):
    with patch("app.services.notification_service.get_push_transport", return_value=fake_transport):
        yield fake_transport


@pytest.fixture()
def subscribed_user(make_user, make_subscription):
    user = make_user("ARU", "4")
    make_subscription(user)
    return user


def test_process_due_tasks(db_session, task_session_factory, use_fake_transport, subscribed_user):
    event = Event(title="Neuro Teaching", date=date.today(), start_time=time(23, 59), target_cohorts=["ARU Year 4"])
    db_session.add(event)
    db_session.commit()
    task = ScheduledTask(
        task_type="event_reminder_1h",
        event_id=event.id,
        run_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        idempotency_key=f"event_reminder_1h|{event.id}|{event.date.isoformat()}",
    )
    db_session.add(task)
    db_session.commit()

    with patch("app.tasks.notifications.SessionLocal", side_effect=task_session_factory):
        result = process_due_tasks.run()

    assert result["completed"] == 1
    assert result["sent"] == 1
    db_session.expire_all()
    assert db_session.get(ScheduledTask, task.id).status == TaskStatus.COMPLETED.value


def test_send_certificate_available(db_session, task_session_factory, use_fake_transport, subscribed_user):
    event = Event(title="Neuro Teaching", date=date.today())
    db_session.add(event)
    db_session.commit()
    certificate = Certificate(event_id=event.id, user_id=subscribed_user.id)
    db_session.add(certificate)
    db_session.commit()

    with patch("app.tasks.notifications.SessionLocal", side_effect=task_session_factory):
        result = send_certificate_available.run(str(certificate.id))

    assert result == {"certificate_id": str(certificate.id), "sent": 1, "failed": 0}
    assert use_fake_transport.payloads[0].title == "Certificate Available"


def test_send_certificate_available_rejects_bad_id(task_session_factory):
    with patch("app.tasks.notifications.SessionLocal", side_effect=task_session_factory):
        with pytest.raises(ValueError):
            send_certificate_available.run("not-a-uuid")


def test_cleanup_notification_logs(db_session, task_session_factory, subscribed_user):
    now = datetime.now(timezone.utc)
    db_session.add_all(
        [
            NotificationLog(user_id=subscribed_user.id, notification_type="announcement", sent_at=now - timedelta(days=120)),
            NotificationLog(user_id=subscribed_user.id, notification_type="announcement", sent_at=now - timedelta(days=1)),
        ]
    )
    db_session.commit()

    with patch("app.tasks.notifications.SessionLocal", side_effect=task_session_factory):
        result = cleanup_notification_logs.run(90)

    assert result["deleted"] == 1
    assert db_session.query(NotificationLog).count() == 1


def test_unknown_certificate_sends_nothing(task_session_factory, use_fake_transport):
    with patch("app.tasks.notifications.SessionLocal", side_effect=task_session_factory):
        result = send_certificate_available.run(str(uuid.uuid4()))

    assert result["sent"] == 0
    assert use_fake_transport.sent == []
