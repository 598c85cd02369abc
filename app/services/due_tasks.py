"""Process scheduled tasks whose fire time has arrived."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.db.models.notification import ScheduledTask
from app.services.booking_notifications import BookingNotificationBuilder
from app.services.event_notifications import EventNotificationBuilder
from app.services.notification_service import DispatchResult
from app.services.push_transport import PushTransport
from app.services.task_scheduler import TaskStatus, TaskType
from app.utils.exceptions import SchedulingError


# Task types this processor sends push notifications for. Marker types
# (certificate generation, feedback invites) are consumed by their own jobs.
PUSH_TASK_TYPES: tuple[TaskType, ...] = (
    TaskType.EVENT_REMINDER_1H,
    TaskType.EVENT_REMINDER_15M,
    TaskType.BOOKING_REMINDER_24H,
    TaskType.BOOKING_REMINDER_1H,
    TaskType.BOOKING_REMINDER_START,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _booking_id(task: ScheduledTask) -> UUID:
    raw = (task.task_metadata or {}).get("booking_id")
    if not raw:
        raise SchedulingError("Booking reminder task has no booking_id", {"task_id": str(task.id)})
    return UUID(str(raw))


class DueTaskProcessor:
    """Claim due push tasks, run the matching builder and record the outcome."""

    def __init__(
        self,
        db: Session,
        transport: PushTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.clock = clock or _utcnow
        self.events = EventNotificationBuilder(db, transport)
        self.bookings = BookingNotificationBuilder(db, transport)

    def due_tasks(self, limit: int | None = None) -> list[ScheduledTask]:
        stmt = (
            select(ScheduledTask)
            .where(ScheduledTask.status == TaskStatus.PENDING.value)
            .where(ScheduledTask.run_at <= self.clock())
            .where(ScheduledTask.task_type.in_([t.value for t in PUSH_TASK_TYPES]))
            .order_by(ScheduledTask.run_at.asc())
            .limit(limit or settings.DUE_TASK_BATCH_SIZE)
        )
        return list(self.db.scalars(stmt).all())

    def release_stale_claims(self) -> int:
        """Return tasks stuck in processing past the claim timeout to pending."""

        cutoff = self.clock() - timedelta(minutes=settings.TASK_CLAIM_TIMEOUT_MINUTES)
        result = self.db.execute(
            update(ScheduledTask)
            .where(ScheduledTask.status == TaskStatus.PROCESSING.value)
            .where(or_(ScheduledTask.claimed_at.is_(None), ScheduledTask.claimed_at < cutoff))
            .where(ScheduledTask.task_type.in_([t.value for t in PUSH_TASK_TYPES]))
            .values(status=TaskStatus.PENDING.value, claimed_at=None)
        )
        self.db.commit()
        if result.rowcount:
            logger.warning("Released stale task claims", count=result.rowcount)
        return result.rowcount

    def claim(self, task_id: UUID) -> bool:
        """Move a task from pending to processing; False if another worker got it first."""

        result = self.db.execute(
            update(ScheduledTask)
            .where(ScheduledTask.id == task_id)
            .where(ScheduledTask.status == TaskStatus.PENDING.value)
            .values(status=TaskStatus.PROCESSING.value, claimed_at=self.clock())
        )
        self.db.commit()
        return result.rowcount == 1

    def _finish(self, task_id: UUID, status: TaskStatus, error: str | None = None) -> None:
        self.db.execute(
            update(ScheduledTask)
            .where(ScheduledTask.id == task_id)
            .values(status=status.value, processed_at=self.clock(), error_message=error)
        )
        self.db.commit()

    async def handle(self, task: ScheduledTask) -> DispatchResult:
        task_type = TaskType(task.task_type)

        if task_type is TaskType.EVENT_REMINDER_1H:
            return await self.events.send_event_reminder(task.event_id, "1h")
        if task_type is TaskType.EVENT_REMINDER_15M:
            return await self.events.send_event_reminder(task.event_id, "15m")
        if task_type is TaskType.BOOKING_REMINDER_24H:
            return await self.bookings.send_booking_reminder(_booking_id(task), "24h")
        if task_type is TaskType.BOOKING_REMINDER_1H:
            return await self.bookings.send_booking_reminder(_booking_id(task), "1h")
        if task_type is TaskType.BOOKING_REMINDER_START:
            return await self.bookings.send_booking_reminder(_booking_id(task), "start")

        raise SchedulingError(f"No push handler for task type {task.task_type}")

    async def run(self, limit: int | None = None) -> dict[str, Any]:
        self.release_stale_claims()
        tasks = self.due_tasks(limit)
        summary = {"processed": 0, "completed": 0, "failed": 0, "skipped": 0, "sent": 0, "send_failed": 0}

        for task in tasks:
            task_id, task_type = task.id, task.task_type
            if not self.claim(task_id):
                summary["skipped"] += 1
                continue

            summary["processed"] += 1
            try:
                outcome = await self.handle(task)
            except Exception as exc:
                self.db.rollback()
                logger.error(
                    "Scheduled task failed",
                    task_id=str(task_id),
                    task_type=task_type,
                    error=str(exc),
                )
                self._finish(task_id, TaskStatus.FAILED, str(exc))
                summary["failed"] += 1
                continue

            self._finish(task_id, TaskStatus.COMPLETED)
            summary["completed"] += 1
            summary["sent"] += outcome.sent
            summary["send_failed"] += outcome.failed

        if tasks:
            logger.info("Due task sweep completed", **summary)
        return summary
