"""Feedback request notifications for event attendees."""
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy.orm import Session

from app.db.models.event import Event
from app.services.formatting import build_app_url
from app.services.notification_service import DispatchResult, NotificationService
from app.services.push_transport import PushPayload, PushTransport


class FeedbackNotificationBuilder:
    def __init__(self, db: Session, transport: PushTransport | None = None):
        self.db = db
        self.notifications = NotificationService(db, transport=transport)

    async def send_feedback_request(
        self,
        event_id: UUID,
        user_ids: Iterable[UUID],
        form_id: UUID | None = None,
    ) -> DispatchResult:
        """Invite attendees to leave feedback on an event they attended."""

        event = self.db.get(Event, event_id)
        if event is None:
            logger.warning("Event not found for feedback request", event_id=str(event_id))
            return DispatchResult()

        data = {"type": "feedback", "id": str(event.id)}
        if form_id is not None:
            data["formId"] = str(form_id)

        payload = PushPayload(
            title="How was it?",
            body=f'Please share your feedback on "{event.title}".',
            url=build_app_url(f"/events/{event.id}/feedback"),
            data=data,
        )
        return await self.notifications.send_to_multiple_users(
            user_ids,
            payload,
            "feedback_request",
            {"event_id": str(event.id), "form_id": str(form_id) if form_id else None},
        )
