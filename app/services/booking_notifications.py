"""Booking notifications: reminders, waitlist promotion and admin cancellation."""
from __future__ import annotations

from typing import Literal
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.db.models.event import Event, EventBooking
from app.services.formatting import build_app_url, format_event_date_time, location_clause
from app.services.notification_service import DispatchResult, NotificationService
from app.services.push_transport import PushPayload, PushTransport

BookingReminderKind = Literal["24h", "1h", "start"]

CANCELLED_STATUS = "cancelled"


class BookingNotificationBuilder:
    """Build and send notifications to the user who holds a booking."""

    def __init__(self, db: Session, transport: PushTransport | None = None):
        self.db = db
        self.notifications = NotificationService(db, transport=transport)

    def _load_booking(self, booking_id: UUID) -> EventBooking | None:
        booking = self.db.scalars(
            select(EventBooking)
            .options(joinedload(EventBooking.event).joinedload(Event.location))
            .where(EventBooking.id == booking_id)
        ).first()
        if booking is None or booking.event is None:
            logger.warning("Booking not found for notification", booking_id=str(booking_id))
            return None
        return booking

    @staticmethod
    def _payload(booking: EventBooking, title: str, body: str, url_path: str) -> PushPayload:
        return PushPayload(
            title=title,
            body=body,
            url=build_app_url(url_path),
            data={"type": "booking", "id": str(booking.id), "eventId": str(booking.event_id)},
        )

    async def send_booking_reminder(self, booking_id: UUID, reminder: BookingReminderKind) -> DispatchResult:
        booking = self._load_booking(booking_id)
        if booking is None:
            return DispatchResult()
        event = booking.event
        if booking.status == CANCELLED_STATUS or event.event_status == CANCELLED_STATUS:
            logger.info("Skipping reminder for cancelled booking", booking_id=str(booking_id))
            return DispatchResult()

        when = format_event_date_time(event.date, event.start_time)
        where = location_clause(event.location.display_name if event.location else None)

        if reminder == "24h":
            title = "Reminder: Your Booking Tomorrow"
            body = f'You have a booking for "{event.title}" tomorrow at {when}{where}.'
        elif reminder == "1h":
            title = "Reminder: Your Booking in 1 Hour"
            body = f'Your booking for "{event.title}" starts in 1 hour at {when}{where}.'
        else:
            title = "Your Event Starts Now"
            body = f'"{event.title}" is starting now at {when}{where}.'

        return await self.notifications.send_to_user(
            booking.user_id,
            self._payload(booking, title, body, f"/events/{event.id}"),
            f"booking_reminder_{reminder}",
            {"booking_id": str(booking.id), "event_id": str(event.id), "reminder_type": reminder},
        )

    async def send_waitlist_promoted_notification(self, booking_id: UUID) -> DispatchResult:
        booking = self._load_booking(booking_id)
        if booking is None:
            return DispatchResult()
        event = booking.event

        when = format_event_date_time(event.date, event.start_time)
        where = location_clause(event.location.display_name if event.location else None)
        body = f'Your booking for "{event.title}" on {when}{where} has been confirmed.'

        return await self.notifications.send_to_user(
            booking.user_id,
            self._payload(booking, "Booking Confirmed", body, f"/events/{event.id}"),
            "booking_waitlist_promoted",
            {"booking_id": str(booking.id), "event_id": str(event.id)},
        )

    async def send_admin_cancellation_notification(self, booking_id: UUID) -> DispatchResult:
        booking = self._load_booking(booking_id)
        if booking is None:
            return DispatchResult()
        event = booking.event

        when = format_event_date_time(event.date, event.start_time)
        body = f'Your booking for "{event.title}" on {when} has been cancelled by the administrator.'

        return await self.notifications.send_to_user(
            booking.user_id,
            self._payload(booking, "Booking Cancelled", body, "/events"),
            "booking_admin_cancelled",
            {"booking_id": str(booking.id), "event_id": str(event.id)},
        )
