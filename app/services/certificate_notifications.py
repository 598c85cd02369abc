"""Certificate availability notifications."""
from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.db.models.certificate import Certificate
from app.services.formatting import build_app_url, format_event_date_time
from app.services.notification_service import DispatchResult, NotificationService
from app.services.push_transport import PushPayload, PushTransport


class CertificateNotificationBuilder:
    def __init__(self, db: Session, transport: PushTransport | None = None):
        self.db = db
        self.notifications = NotificationService(db, transport=transport)

    async def send_certificate_available(self, certificate_id: UUID) -> DispatchResult:
        """Tell the certificate holder it is ready to download."""

        certificate = self.db.scalars(
            select(Certificate)
            .options(joinedload(Certificate.event))
            .where(Certificate.id == certificate_id)
        ).first()
        if certificate is None:
            logger.warning("Certificate not found for notification", certificate_id=str(certificate_id))
            return DispatchResult()

        event = certificate.event
        if event is not None:
            when = format_event_date_time(event.date)
            body = f'Your certificate for "{event.title}" on {when} is now available to download.'
        else:
            body = "Your certificate is now available to download."

        payload = PushPayload(
            title="Certificate Available",
            body=body,
            url=build_app_url("/certificates"),
            data={"type": "certificate", "id": str(certificate.id), "eventId": str(certificate.event_id)},
        )
        return await self.notifications.send_to_user(
            certificate.user_id,
            payload,
            "certificate_available",
            {"certificate_id": str(certificate.id), "event_id": str(certificate.event_id)},
        )
