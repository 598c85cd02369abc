"""Idempotent scheduling of future-dated notification and marker tasks."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Sequence, Union

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.notification import ScheduledTask


class TaskType(str, Enum):
    EVENT_REMINDER_1H = "event_reminder_1h"
    EVENT_REMINDER_15M = "event_reminder_15m"
    BOOKING_REMINDER_24H = "booking_reminder_24h"
    BOOKING_REMINDER_1H = "booking_reminder_1h"
    BOOKING_REMINDER_START = "booking_reminder_start"
    CERTIFICATES_AUTO_GENERATE = "certificates_auto_generate"
    FEEDBACK_INVITES = "feedback_invites"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Time-of-day used when an event has no start/end time recorded.
DEFAULT_START_TIME = time(0, 0, 0)
# TODO: confirm with product whether end-of-day is right for time-less events;
# certificate and feedback markers for them currently fire just before midnight.
DEFAULT_END_TIME = time(23, 59, 59)

# Safe to delete and regenerate when an event's date or time changes. Marker
# types are excluded: their per-user expansion may already have happened.
REGENERABLE_EVENT_TASK_TYPES: tuple[TaskType, ...] = (
    TaskType.EVENT_REMINDER_1H,
    TaskType.EVENT_REMINDER_15M,
)

BOOKING_REMINDER_TASK_TYPES: tuple[TaskType, ...] = (
    TaskType.BOOKING_REMINDER_24H,
    TaskType.BOOKING_REMINDER_1H,
    TaskType.BOOKING_REMINDER_START,
)


@dataclass(frozen=True)
class BatchMarker:
    """Event-level work with no single owner; fanned out later."""

    event_id: uuid.UUID


@dataclass(frozen=True)
class UserTask:
    event_id: uuid.UUID
    user_id: uuid.UUID


@dataclass(frozen=True)
class AdHoc:
    """Work whose owner only fits in metadata (e.g. ``{"booking_id": ...}``)."""

    metadata: dict[str, Any] = field(default_factory=dict)


TaskTarget = Union[BatchMarker, UserTask, AdHoc]


def target_columns(target: TaskTarget) -> dict[str, Any]:
    """Map a tagged target onto the nullable ``scheduled_tasks`` columns."""

    if isinstance(target, BatchMarker):
        return {"event_id": target.event_id, "user_id": None, "metadata": None}
    if isinstance(target, UserTask):
        return {"event_id": target.event_id, "user_id": target.user_id, "metadata": None}
    if isinstance(target, AdHoc):
        return {"event_id": None, "user_id": None, "metadata": dict(target.metadata)}
    raise TypeError(f"Unsupported task target: {target!r}")


@dataclass(frozen=True)
class ReminderOffset:
    task_type: TaskType
    before: timedelta


EVENT_REMINDER_OFFSETS: tuple[ReminderOffset, ...] = (
    ReminderOffset(TaskType.EVENT_REMINDER_1H, timedelta(hours=1)),
    ReminderOffset(TaskType.EVENT_REMINDER_15M, timedelta(minutes=15)),
)

BOOKING_REMINDER_OFFSETS: tuple[ReminderOffset, ...] = (
    ReminderOffset(TaskType.BOOKING_REMINDER_24H, timedelta(hours=24)),
    ReminderOffset(TaskType.BOOKING_REMINDER_1H, timedelta(hours=1)),
    ReminderOffset(TaskType.BOOKING_REMINDER_START, timedelta(0)),
)

CERTIFICATE_MARKER_OFFSET = ReminderOffset(TaskType.CERTIFICATES_AUTO_GENERATE, timedelta(0))
FEEDBACK_INVITES_OFFSET = ReminderOffset(TaskType.FEEDBACK_INVITES, timedelta(0))


@dataclass
class ScheduleResult:
    created: int
    message: str
    already_scheduled: int = 0


def anchor_instant(day: date, time_of_day: time | None, default_time: time) -> datetime:
    """Combine a date and optional wall-clock time into a UTC instant."""

    return datetime.combine(day, time_of_day or default_time, tzinfo=timezone.utc)


def build_idempotency_key(task_type: TaskType | str, domain_id: Any, day: date) -> str:
    """``{task_type}|{domain_id}|{YYYY-MM-DD}``.

    The date, not the full timestamp, so a same-day time edit maps to the same key.
    """

    task_type_value = task_type.value if isinstance(task_type, TaskType) else task_type
    return f"{task_type_value}|{domain_id}|{day.isoformat()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskScheduler:
    """Materialize future fire instants as ``ScheduledTask`` rows.

    Creation is check-and-insert in one statement against the unique
    ``idempotency_key``; an existing key means "already scheduled" and is left
    untouched.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] | None = None):
        self.db = db
        self.clock = clock or _utcnow

    def now(self) -> datetime:
        return self.clock()

    # ------------------------------------------------------------------
    # Core algorithm
    # ------------------------------------------------------------------

    def schedule(
        self,
        *,
        domain_id: Any,
        anchor: datetime,
        day: date,
        offsets: Sequence[ReminderOffset],
        target: TaskTarget,
        family: str,
        past_message: str = "Anchor time has already passed",
    ) -> ScheduleResult:
        now = self.now()
        if anchor <= now:
            logger.debug("Nothing to schedule, anchor in the past", family=family, domain_id=str(domain_id))
            return ScheduleResult(created=0, message=past_message)

        created = 0
        existing = 0
        try:
            for offset in offsets:
                run_at = anchor - offset.before
                if run_at <= now:
                    continue
                key = build_idempotency_key(offset.task_type, domain_id, day)
                if self.insert_if_absent(offset.task_type, run_at, key, target):
                    created += 1
                else:
                    existing += 1
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "Failed to schedule tasks",
                family=family,
                domain_id=str(domain_id),
                error=str(exc),
            )
            return ScheduleResult(created=0, message=f"Failed to schedule {family} tasks: {exc}")

        result = ScheduleResult(
            created=created,
            message=f"Created {created} {family} task(s)",
            already_scheduled=existing,
        )
        logger.info(
            "Scheduled tasks",
            family=family,
            domain_id=str(domain_id),
            created=created,
            already_scheduled=existing,
        )
        return result

    def insert_if_absent(
        self, task_type: TaskType | str, run_at: datetime, idempotency_key: str, target: TaskTarget
    ) -> bool:
        """Insert a pending task unless its key exists. Returns True if a row was created."""

        values = {
            "id": uuid.uuid4(),
            "task_type": task_type.value if isinstance(task_type, TaskType) else task_type,
            "status": TaskStatus.PENDING.value,
            "run_at": run_at,
            "idempotency_key": idempotency_key,
            **target_columns(target),
        }
        table = ScheduledTask.__table__
        dialect = self.db.get_bind().dialect.name

        if dialect == "postgresql":
            stmt = pg_insert(table).values(values).on_conflict_do_nothing(index_elements=["idempotency_key"])
        elif dialect == "sqlite":
            stmt = sqlite_insert(table).values(values).on_conflict_do_nothing(index_elements=["idempotency_key"])
        else:
            try:
                with self.db.begin_nested():
                    self.db.execute(table.insert().values(values))
            except IntegrityError:
                return False
            return True

        return self.db.execute(stmt).rowcount == 1

    # ------------------------------------------------------------------
    # Reminder families
    # ------------------------------------------------------------------

    def schedule_event_reminders(
        self,
        event_id: uuid.UUID,
        event_date: date,
        start_time: time | None,
        target_cohorts: Sequence[str] | None,
    ) -> ScheduleResult:
        """Event-level reminders 1 hour and 15 minutes before start."""

        if not target_cohorts:
            return ScheduleResult(created=0, message="No target cohorts specified")

        return self.schedule(
            domain_id=event_id,
            anchor=anchor_instant(event_date, start_time, DEFAULT_START_TIME),
            day=event_date,
            offsets=EVENT_REMINDER_OFFSETS,
            target=BatchMarker(event_id=event_id),
            family="event reminder",
            past_message="Event has already started",
        )

    def schedule_booking_reminders(
        self,
        booking_id: uuid.UUID,
        event_date: date,
        event_start_time: time | None,
    ) -> ScheduleResult:
        """Per-booking reminders 24 hours and 1 hour before start, and at start."""

        return self.schedule(
            domain_id=booking_id,
            anchor=anchor_instant(event_date, event_start_time, DEFAULT_START_TIME),
            day=event_date,
            offsets=BOOKING_REMINDER_OFFSETS,
            target=AdHoc(metadata={"booking_id": str(booking_id)}),
            family="booking reminder",
            past_message="Event has already started",
        )

    def schedule_event_end_tasks(
        self,
        event_id: uuid.UUID,
        event_date: date,
        end_time: time | None,
        *,
        auto_generate_certificate: bool = False,
        certificate_template_id: Any = None,
        booking_enabled: bool = False,
        feedback_enabled: bool = False,
    ) -> ScheduleResult:
        """Marker tasks at event end for certificate generation and feedback invites."""

        offsets: list[ReminderOffset] = []
        if auto_generate_certificate and certificate_template_id:
            offsets.append(CERTIFICATE_MARKER_OFFSET)
        if booking_enabled and feedback_enabled:
            offsets.append(FEEDBACK_INVITES_OFFSET)
        if not offsets:
            return ScheduleResult(created=0, message="No end-of-event tasks configured")

        return self.schedule(
            domain_id=event_id,
            anchor=anchor_instant(event_date, end_time, DEFAULT_END_TIME),
            day=event_date,
            offsets=offsets,
            target=BatchMarker(event_id=event_id),
            family="end-of-event",
            past_message="Event has already ended",
        )

    def reschedule_event_reminders(
        self,
        event_id: uuid.UUID,
        event_date: date,
        start_time: time | None,
        target_cohorts: Sequence[str] | None,
    ) -> ScheduleResult:
        """Drop this event's pending reminders, then schedule them afresh."""

        try:
            removed = self.delete_pending_tasks(event_id, REGENERABLE_EVENT_TASK_TYPES)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to clear stale reminders", event_id=str(event_id), error=str(exc))
            return ScheduleResult(created=0, message=f"Failed to clear stale reminders: {exc}")

        if removed:
            logger.info("Removed stale event reminders", event_id=str(event_id), removed=removed)
        return self.schedule_event_reminders(event_id, event_date, start_time, target_cohorts)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def delete_pending_tasks(self, event_id: uuid.UUID, task_types: Iterable[TaskType | str]) -> int:
        """Delete still-pending tasks of the given types for one event."""

        type_values = [t.value if isinstance(t, TaskType) else t for t in task_types]
        result = self.db.execute(
            delete(ScheduledTask)
            .where(ScheduledTask.event_id == event_id)
            .where(ScheduledTask.status == TaskStatus.PENDING.value)
            .where(ScheduledTask.task_type.in_(type_values))
        )
        self.db.commit()
        return result.rowcount or 0

    def cancel_event_tasks(self, event_id: uuid.UUID) -> int:
        """Mark every pending task of a cancelled event as ``cancelled``."""

        result = self.db.execute(
            update(ScheduledTask)
            .where(ScheduledTask.event_id == event_id)
            .where(ScheduledTask.status == TaskStatus.PENDING.value)
            .values(status=TaskStatus.CANCELLED.value, processed_at=self.now())
        )
        self.db.commit()
        return result.rowcount or 0

    def cancel_booking_reminders(self, booking_id: uuid.UUID) -> int:
        """Mark a booking's pending reminders as ``cancelled``.

        Booking reminders keep their owner in metadata, so they are matched by
        the ``{task_type}|{booking_id}|`` key prefix.
        """

        total = 0
        for task_type in BOOKING_REMINDER_TASK_TYPES:
            result = self.db.execute(
                update(ScheduledTask)
                .where(ScheduledTask.task_type == task_type.value)
                .where(ScheduledTask.status == TaskStatus.PENDING.value)
                .where(ScheduledTask.idempotency_key.like(f"{task_type.value}|{booking_id}|%"))
                .values(status=TaskStatus.CANCELLED.value, processed_at=self.now())
            )
            total += result.rowcount or 0
        self.db.commit()
        return total
