"""Event notifications: cohort reminders, updates and cancellations."""
from __future__ import annotations

from typing import Literal
from uuid import UUID

from loguru import logger
from sqlalchemy.orm import Session

from app.db.models.event import Event
from app.services.formatting import build_app_url, format_event_date_time
from app.services.notification_service import DispatchResult, NotificationService
from app.services.push_transport import PushPayload, PushTransport

EventReminderKind = Literal["1h", "15m"]

_REMINDER_TEXT: dict[str, str] = {
    "1h": "starts in 1 hour",
    "15m": "starts in 15 minutes",
}


class EventNotificationBuilder:
    """Build and send notifications addressed to an event's target cohorts."""

    def __init__(self, db: Session, transport: PushTransport | None = None):
        self.db = db
        self.notifications = NotificationService(db, transport=transport)

    def _load_event(self, event_id: UUID) -> Event | None:
        event = self.db.get(Event, event_id)
        if event is None:
            logger.warning("Event not found for notification", event_id=str(event_id))
            return None
        if not event.target_cohorts:
            logger.debug("Event has no target cohorts", event_id=str(event_id))
            return None
        return event

    async def send_event_reminder(self, event_id: UUID, reminder: EventReminderKind) -> DispatchResult:
        event = self._load_event(event_id)
        if event is None:
            return DispatchResult()

        when = format_event_date_time(event.date, event.start_time)
        payload = PushPayload(
            title=f"Reminder: {event.title}",
            body=f"{event.title} {_REMINDER_TEXT[reminder]} on {when}",
            url=build_app_url(f"/events/{event.id}"),
            data={"type": "event", "id": str(event.id)},
        )
        return await self.notifications.send_to_cohort(
            event.target_cohorts,
            payload,
            f"event_reminder_{reminder}",
            {"event_id": str(event.id), "reminder_type": reminder},
        )

    async def send_event_update(self, event_id: UUID) -> DispatchResult:
        event = self._load_event(event_id)
        if event is None:
            return DispatchResult()

        when = format_event_date_time(event.date, event.start_time)
        status_text = event.event_status or "updated"
        payload = PushPayload(
            title=f"Event Updated: {event.title}",
            body=f'The event "{event.title}" scheduled for {when} has been {status_text}.',
            url=build_app_url(f"/events/{event.id}"),
            data={"type": "event", "id": str(event.id)},
        )
        return await self.notifications.send_to_cohort(
            event.target_cohorts,
            payload,
            "event_update",
            {"event_id": str(event.id), "status": status_text},
        )

    async def send_event_cancellation(self, event_id: UUID) -> DispatchResult:
        event = self._load_event(event_id)
        if event is None:
            return DispatchResult()

        when = format_event_date_time(event.date, event.start_time)
        payload = PushPayload(
            title=f"Event Cancelled: {event.title}",
            body=f'The event "{event.title}" scheduled for {when} has been cancelled.',
            url=build_app_url("/events"),
            data={"type": "event", "id": str(event.id)},
        )
        return await self.notifications.send_to_cohort(
            event.target_cohorts,
            payload,
            "event_cancellation",
            {"event_id": str(event.id)},
        )
