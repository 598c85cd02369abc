"""Tests for notification dispatch, logging and subscription management."""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from app.db.models import NotificationLog, NotificationPreference, PushSubscription
from app.services import notification_service
from app.services.notification_service import NotificationService
from app.services.push_transport import PushPayload, PushResult, PushStatus
from app.utils.exceptions import ValidationError


PAYLOAD = PushPayload(title="Reminder", body="Something is happening", url="https://app.example.com/events")


def test_fan_out_aggregates_outcomes_and_logs_every_attempt(db_session, make_user, make_subscription, fake_transport):
    users = [make_user() for _ in range(3)]
    subs = [make_subscription(user) for user in users]
    fake_transport.outcomes[subs[1].endpoint] = PushResult(PushStatus.EXPIRED, "Subscription expired", 410)

    service = NotificationService(db_session, transport=fake_transport)
    result = asyncio.run(
        service.send_to_multiple_users([u.id for u in users], PAYLOAD, "announcement", {"source": "test"})
    )

    assert result.as_dict() == {"sent": 2, "failed": 1}
    logs = db_session.query(NotificationLog).all()
    assert len(logs) == 3
    assert sorted(log.status for log in logs) == ["failed", "sent", "sent"]
    failed_log = next(log for log in logs if log.status == "failed")
    assert failed_log.subscription_id == subs[1].id
    assert failed_log.error_message == "Subscription expired"
    assert all(log.notification_type == "announcement" for log in logs)
    assert all(log.log_metadata == {"source": "test"} for log in logs)


def test_expired_subscription_is_deactivated(db_session, make_user, make_subscription, fake_transport):
    user = make_user()
    gone = make_subscription(user)
    healthy = make_subscription(user)
    other = make_subscription(make_user())
    fake_transport.outcomes[gone.endpoint] = PushResult(PushStatus.EXPIRED, "Subscription expired", 410)

    service = NotificationService(db_session, transport=fake_transport)
    result = asyncio.run(service.send_to_user(user.id, PAYLOAD, "announcement"))

    assert result.as_dict() == {"sent": 1, "failed": 1}
    db_session.expire_all()
    assert db_session.get(PushSubscription, gone.id).is_active is False
    assert db_session.get(PushSubscription, healthy.id).is_active is True
    assert db_session.get(PushSubscription, other.id).is_active is True
    expired_log = db_session.query(NotificationLog).filter_by(subscription_id=gone.id).one()
    assert expired_log.error_message == "Subscription expired"


def test_rate_limited_subscription_stays_active(db_session, make_user, make_subscription, fake_transport):
    user = make_user()
    sub = make_subscription(user)
    fake_transport.outcomes[sub.endpoint] = PushResult(PushStatus.RATE_LIMITED, "Rate limited", 429)

    result = asyncio.run(
        NotificationService(db_session, transport=fake_transport).send_to_user(user.id, PAYLOAD, "announcement")
    )

    assert result.failed == 1
    db_session.expire_all()
    assert db_session.get(PushSubscription, sub.id).is_active is True


def test_transport_exception_counts_as_failure(db_session, make_user, make_subscription):
    user = make_user()
    make_subscription(user)
    transport = MagicMock(is_configured=True)
    transport.send.side_effect = RuntimeError("socket closed")

    result = asyncio.run(NotificationService(db_session, transport=transport).send_to_user(user.id, PAYLOAD, "announcement"))

    assert result.as_dict() == {"sent": 0, "failed": 1}
    assert db_session.query(NotificationLog).one().error_message == "socket closed"


def test_log_write_failure_does_not_block_delivery(db_session, make_user, make_subscription, fake_transport, monkeypatch):
    user = make_user()
    make_subscription(user)

    def _broken_log(**kwargs):
        raise RuntimeError("log table unavailable")

    monkeypatch.setattr(notification_service, "NotificationLog", _broken_log)

    result = asyncio.run(
        NotificationService(db_session, transport=fake_transport).send_to_user(user.id, PAYLOAD, "announcement")
    )

    assert result.as_dict() == {"sent": 1, "failed": 0}
    assert len(fake_transport.sent) == 1


def test_opted_out_users_are_not_contacted(db_session, make_user, make_subscription, fake_transport):
    opted_out = make_user()
    keen = make_user()
    db_session.add(NotificationPreference(user_id=opted_out.id, certificates=False))
    db_session.commit()
    make_subscription(opted_out)
    keen_sub = make_subscription(keen)

    result = asyncio.run(
        NotificationService(db_session, transport=fake_transport).send_to_multiple_users(
            [opted_out.id, keen.id], PAYLOAD, "certificate_available"
        )
    )

    assert result.as_dict() == {"sent": 1, "failed": 0}
    assert [endpoint for endpoint, _ in fake_transport.sent] == [keen_sub.endpoint]


def test_empty_inputs_touch_nothing():
    db = MagicMock()
    transport = MagicMock()
    service = NotificationService(db, transport=transport)

    assert asyncio.run(service.send_to_multiple_users([], PAYLOAD, "announcement")).as_dict() == {"sent": 0, "failed": 0}
    assert asyncio.run(service.send_to_cohort([], PAYLOAD, "announcement")).as_dict() == {"sent": 0, "failed": 0}
    assert asyncio.run(service.send_to_cohort(None, PAYLOAD, "announcement")).as_dict() == {"sent": 0, "failed": 0}
    assert db.method_calls == []
    transport.send.assert_not_called()


def test_unconfigured_transport_skips_sending(db_session, make_user, make_subscription):
    user = make_user()
    make_subscription(user)
    transport = MagicMock(is_configured=False)

    result = asyncio.run(NotificationService(db_session, transport=transport).send_to_user(user.id, PAYLOAD, "announcement"))

    assert result.as_dict() == {"sent": 0, "failed": 0}
    transport.send.assert_not_called()
    assert db_session.query(NotificationLog).count() == 0


def test_fan_out_concurrency_is_bounded_by_batch_size(db_session, make_user, make_subscription, transport_factory):
    transport = transport_factory(delay=0.02)
    users = [make_user() for _ in range(25)]
    for user in users:
        make_subscription(user)

    service = NotificationService(db_session, transport=transport, batch_size=10)
    result = asyncio.run(service.send_to_multiple_users([u.id for u in users], PAYLOAD, "announcement"))

    assert result.sent == 25
    assert 1 <= transport.max_in_flight <= 10


def test_send_to_cohort_reaches_members_only(db_session, make_user, make_subscription, fake_transport):
    member = make_user("ARU", "4")
    outsider = make_user("UCL", "6")
    member_sub = make_subscription(member)
    make_subscription(outsider)

    result = asyncio.run(
        NotificationService(db_session, transport=fake_transport).send_to_cohort(["ARU Year 4"], PAYLOAD, "announcement")
    )

    assert result.sent == 1
    assert [endpoint for endpoint, _ in fake_transport.sent] == [member_sub.endpoint]


def test_subscribe_registers_and_reactivates(db_session, make_user, fake_transport):
    user = make_user()
    service = NotificationService(db_session, transport=fake_transport)
    info = {"endpoint": "https://push.example.com/send/device", "keys": {"p256dh": "k1", "auth": "a1"}}

    first = service.subscribe(user.id, info, user_agent="Firefox")
    assert first.is_active is True

    assert service.unsubscribe(user.id, info["endpoint"]) is True
    db_session.expire_all()
    assert db_session.get(PushSubscription, first.id).is_active is False

    again = service.subscribe(user.id, {**info, "keys": {"p256dh": "k2", "auth": "a2"}})
    assert again.id == first.id
    assert again.is_active is True
    assert again.p256dh == "k2"
    assert db_session.query(PushSubscription).count() == 1


def test_subscribe_rejects_incomplete_subscription(db_session, make_user, fake_transport):
    user = make_user()
    service = NotificationService(db_session, transport=fake_transport)

    with pytest.raises(ValidationError):
        service.subscribe(user.id, {"endpoint": "https://push.example.com/x", "keys": {"p256dh": "k"}})


def test_unsubscribe_unknown_endpoint(db_session, make_user, fake_transport):
    user = make_user()

    assert NotificationService(db_session, transport=fake_transport).unsubscribe(user.id, "https://nope") is False
