"""Entry points called by the surrounding application after domain actions.

None of these raise: a failure to schedule or send must never fail the
request that triggered it, so errors are logged and reported as zero counts.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Callable
from uuid import UUID

from loguru import logger
from sqlalchemy.orm import Session

from app.db.models.event import EventBooking
from app.schemas.notification import EventScheduleConfig
from app.services.booking_notifications import BookingNotificationBuilder
from app.services.certificate_notifications import CertificateNotificationBuilder
from app.services.event_notifications import EventNotificationBuilder
from app.services.notification_service import DispatchResult
from app.services.push_transport import PushTransport
from app.services.task_scheduler import ScheduleResult, TaskScheduler


def on_event_created_or_updated(
    db: Session,
    event_id: UUID,
    config: EventScheduleConfig,
    clock: Callable[[], datetime] | None = None,
) -> dict[str, ScheduleResult]:
    """Regenerate the event's reminders and ensure its end-of-event markers exist."""

    scheduler = TaskScheduler(db, clock=clock)
    results: dict[str, ScheduleResult] = {}

    try:
        results["reminders"] = scheduler.reschedule_event_reminders(
            event_id, config.date, config.start_time, config.target_cohorts
        )
    except Exception as exc:
        db.rollback()
        logger.exception("Event reminder scheduling failed", event_id=str(event_id))
        results["reminders"] = ScheduleResult(created=0, message=str(exc))

    # End-of-event markers are only ever added here, never regenerated
    try:
        results["end_of_event"] = scheduler.schedule_event_end_tasks(
            event_id,
            config.date,
            config.end_time,
            auto_generate_certificate=config.auto_generate_certificate,
            certificate_template_id=config.certificate_template_id,
            booking_enabled=config.booking_enabled,
            feedback_enabled=config.feedback_enabled,
        )
    except Exception as exc:
        db.rollback()
        logger.exception("End-of-event task scheduling failed", event_id=str(event_id))
        results["end_of_event"] = ScheduleResult(created=0, message=str(exc))

    return results


def on_booking_created(
    db: Session,
    booking_id: UUID,
    event_date: date,
    event_start_time: time | None,
    clock: Callable[[], datetime] | None = None,
) -> ScheduleResult:
    try:
        return TaskScheduler(db, clock=clock).schedule_booking_reminders(
            booking_id, event_date, event_start_time
        )
    except Exception as exc:
        db.rollback()
        logger.exception("Booking reminder scheduling failed", booking_id=str(booking_id))
        return ScheduleResult(created=0, message=str(exc))


async def on_certificate_issued(
    db: Session, certificate_id: UUID, transport: PushTransport | None = None
) -> DispatchResult:
    try:
        return await CertificateNotificationBuilder(db, transport).send_certificate_available(certificate_id)
    except Exception:
        db.rollback()
        logger.exception("Certificate notification failed", certificate_id=str(certificate_id))
        return DispatchResult()


async def on_booking_cancelled_by_admin(
    db: Session,
    booking_id: UUID,
    transport: PushTransport | None = None,
    clock: Callable[[], datetime] | None = None,
) -> DispatchResult:
    try:
        cancelled = TaskScheduler(db, clock=clock).cancel_booking_reminders(booking_id)
        if cancelled:
            logger.info("Cancelled booking reminders", booking_id=str(booking_id), cancelled=cancelled)
        return await BookingNotificationBuilder(db, transport).send_admin_cancellation_notification(booking_id)
    except Exception:
        db.rollback()
        logger.exception("Admin cancellation notification failed", booking_id=str(booking_id))
        return DispatchResult()


async def on_waitlist_promoted(
    db: Session,
    booking_id: UUID,
    transport: PushTransport | None = None,
    clock: Callable[[], datetime] | None = None,
) -> DispatchResult:
    """Confirm the promotion to the user and schedule the booking's reminders."""

    try:
        booking = db.get(EventBooking, booking_id)
        if booking is not None and booking.event is not None:
            TaskScheduler(db, clock=clock).schedule_booking_reminders(
                booking.id, booking.event.date, booking.event.start_time
            )
        return await BookingNotificationBuilder(db, transport).send_waitlist_promoted_notification(booking_id)
    except Exception:
        db.rollback()
        logger.exception("Waitlist promotion notification failed", booking_id=str(booking_id))
        return DispatchResult()


async def on_event_cancelled(
    db: Session,
    event_id: UUID,
    transport: PushTransport | None = None,
    clock: Callable[[], datetime] | None = None,
) -> DispatchResult:
    """Tell the event's cohorts and stop its pending tasks from firing."""

    try:
        cancelled = TaskScheduler(db, clock=clock).cancel_event_tasks(event_id)
        if cancelled:
            logger.info("Cancelled pending event tasks", event_id=str(event_id), cancelled=cancelled)
        return await EventNotificationBuilder(db, transport).send_event_cancellation(event_id)
    except Exception:
        db.rollback()
        logger.exception("Event cancellation notification failed", event_id=str(event_id))
        return DispatchResult()
