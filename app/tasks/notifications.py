"""Celery tasks for scheduled push notifications."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID

from loguru import logger

from app.celery_app import celery_app
from app.config import settings
from app.db.models.notification import NotificationLog
from app.db.session import SessionLocal
from app.services.certificate_notifications import CertificateNotificationBuilder
from app.services.due_tasks import DueTaskProcessor


@celery_app.task(name="app.tasks.notifications.process_due_tasks")
def process_due_tasks(limit: int | None = None) -> dict[str, int]:
    """Send every push reminder whose ``run_at`` has passed."""

    db = SessionLocal()
    try:
        processor = DueTaskProcessor(db)
        return asyncio.run(processor.run(limit))
    except Exception as exc:  # pragma: no cover - defensive logging
        db.rollback()
        logger.error("Due task sweep failed", error=str(exc))
        raise
    finally:
        db.close()


@celery_app.task(name="app.tasks.notifications.send_certificate_available")
def send_certificate_available(certificate_id: str) -> dict[str, int | str]:
    """Notify a user that a freshly issued certificate is ready."""

    db = SessionLocal()
    try:
        try:
            certificate_uuid = UUID(certificate_id)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid certificate ID: {certificate_id}") from exc

        builder = CertificateNotificationBuilder(db)
        result = asyncio.run(builder.send_certificate_available(certificate_uuid))
        return {"certificate_id": certificate_id, **result.as_dict()}
    finally:
        db.close()


@celery_app.task(name="app.tasks.notifications.cleanup_notification_logs")
def cleanup_notification_logs(retention_days: int | None = None) -> dict[str, int | str]:
    """Remove notification log rows older than the retention period."""

    db = SessionLocal()
    days = retention_days or settings.NOTIFICATION_LOG_RETENTION_DAYS
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    try:
        deleted = (
            db.query(NotificationLog)
            .filter(NotificationLog.sent_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()

        logger.info(
            "Old notification logs cleaned up",
            deleted_count=deleted,
            cutoff=cutoff.isoformat(),
        )

        return {"deleted": deleted, "cutoff": cutoff.isoformat()}

    except Exception as exc:  # pragma: no cover - defensive logging
        db.rollback()
        logger.error("Failed to cleanup notification logs", error=str(exc))
        raise
    finally:
        db.close()
