"""Notification preference, scheduling and audit models."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import JSONType


class NotificationPreference(Base):
    """Per-user opt-outs by notification category.

    A missing row, or a NULL column, means the category is enabled.
    """

    __tablename__ = "notification_preferences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    teaching_events = Column(Boolean, default=True)
    bookings = Column(Boolean, default=True)
    certificates = Column(Boolean, default=True)
    feedback = Column(Boolean, default=True)
    announcements = Column(Boolean, default=True)
    leaderboard_updates = Column(Boolean, default=False)
    quiz_reminders = Column(Boolean, default=False)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ScheduledTask(Base):
    """Durable deferred work, deduplicated by ``idempotency_key``."""

    __tablename__ = "scheduled_tasks"
    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_scheduled_tasks_idempotency_key"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_type = Column(String(64), nullable=False, index=True)

    # Both nullable: marker tasks have no single owner, ad-hoc tasks keep their owner in metadata
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)

    status = Column(String(20), nullable=False, default="pending", index=True)
    run_at = Column(DateTime(timezone=True), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    task_metadata = Column("metadata", JSONType)

    claimed_at = Column(DateTime(timezone=True))
    processed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class NotificationLog(Base):
    """Append-only record of one delivery attempt."""

    __tablename__ = "notification_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    subscription_id = Column(
        UUID(as_uuid=True), ForeignKey("push_subscriptions.id", ondelete="SET NULL")
    )

    notification_type = Column(String(64), nullable=False, index=True)
    title = Column(Text)
    body = Column(Text)
    url = Column(Text)
    status = Column(String(20), nullable=False, default="sent")
    error_message = Column(Text)
    log_metadata = Column("metadata", JSONType)

    sent_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
