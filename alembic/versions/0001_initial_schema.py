"""Create notification dispatch tables"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("university", sa.String(length=100), nullable=True),
        sa.Column("study_year", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_university", "users", ["university"], unique=False)
    op.create_index("ix_users_study_year", "users", ["study_year"], unique=False)

    op.create_table(
        "locations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
    )

    op.create_table(
        "events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(timezone=False), nullable=True),
        sa.Column("end_time", sa.Time(timezone=False), nullable=True),
        sa.Column("event_status", sa.String(length=50), nullable=True),
        sa.Column("location_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("target_cohorts", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("booking_enabled", sa.Boolean(), server_default=sa.text("false"), nullable=True),
        sa.Column("feedback_enabled", sa.Boolean(), server_default=sa.text("false"), nullable=True),
        sa.Column("auto_generate_certificate", sa.Boolean(), server_default=sa.text("false"), nullable=True),
        sa.Column("certificate_template_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_index("ix_events_date", "events", ["date"], unique=False)

    op.create_table(
        "event_bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=30), server_default=sa.text("'confirmed'"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_index("ix_event_bookings_event_id", "event_bookings", ["event_id"], unique=False)
    op.create_index("ix_event_bookings_user_id", "event_bookings", ["user_id"], unique=False)

    op.create_table(
        "certificates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_index("ix_certificates_event_id", "certificates", ["event_id"], unique=False)
    op.create_index("ix_certificates_user_id", "certificates", ["user_id"], unique=False)

    op.create_table(
        "push_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("p256dh", sa.String(length=255), nullable=False),
        sa.Column("auth", sa.String(length=255), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("device_info", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("subscribed_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_unique_constraint("uq_push_subscriptions_endpoint", "push_subscriptions", ["endpoint"])
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"], unique=False)
    op.create_index("ix_push_subscriptions_is_active", "push_subscriptions", ["is_active"], unique=False)

    op.create_table(
        "notification_preferences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("teaching_events", sa.Boolean(), server_default=sa.text("true"), nullable=True),
        sa.Column("bookings", sa.Boolean(), server_default=sa.text("true"), nullable=True),
        sa.Column("certificates", sa.Boolean(), server_default=sa.text("true"), nullable=True),
        sa.Column("feedback", sa.Boolean(), server_default=sa.text("true"), nullable=True),
        sa.Column("announcements", sa.Boolean(), server_default=sa.text("true"), nullable=True),
        sa.Column("leaderboard_updates", sa.Boolean(), server_default=sa.text("false"), nullable=True),
        sa.Column("quiz_reminders", sa.Boolean(), server_default=sa.text("false"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_unique_constraint("uq_notification_preferences_user_id", "notification_preferences", ["user_id"])

    op.create_table(
        "scheduled_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("task_type", sa.String(length=64), nullable=False),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_unique_constraint("uq_scheduled_tasks_idempotency_key", "scheduled_tasks", ["idempotency_key"])
    op.create_index("ix_scheduled_tasks_task_type", "scheduled_tasks", ["task_type"], unique=False)
    op.create_index("ix_scheduled_tasks_event_id", "scheduled_tasks", ["event_id"], unique=False)
    op.create_index("ix_scheduled_tasks_user_id", "scheduled_tasks", ["user_id"], unique=False)
    op.create_index("ix_scheduled_tasks_status", "scheduled_tasks", ["status"], unique=False)
    op.create_index("ix_scheduled_tasks_run_at", "scheduled_tasks", ["run_at"], unique=False)

    op.create_table(
        "notification_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("subscription_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("push_subscriptions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("notification_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'sent'"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_index("ix_notification_logs_user_id", "notification_logs", ["user_id"], unique=False)
    op.create_index("ix_notification_logs_notification_type", "notification_logs", ["notification_type"], unique=False)
    op.create_index("ix_notification_logs_sent_at", "notification_logs", ["sent_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notification_logs_sent_at", table_name="notification_logs")
    op.drop_index("ix_notification_logs_notification_type", table_name="notification_logs")
    op.drop_index("ix_notification_logs_user_id", table_name="notification_logs")
    op.drop_table("notification_logs")

    op.drop_index("ix_scheduled_tasks_run_at", table_name="scheduled_tasks")
    op.drop_index("ix_scheduled_tasks_status", table_name="scheduled_tasks")
    op.drop_index("ix_scheduled_tasks_user_id", table_name="scheduled_tasks")
    op.drop_index("ix_scheduled_tasks_event_id", table_name="scheduled_tasks")
    op.drop_index("ix_scheduled_tasks_task_type", table_name="scheduled_tasks")
    op.drop_constraint("uq_scheduled_tasks_idempotency_key", "scheduled_tasks", type_="unique")
    op.drop_table("scheduled_tasks")

    op.drop_constraint("uq_notification_preferences_user_id", "notification_preferences", type_="unique")
    op.drop_table("notification_preferences")

    op.drop_index("ix_push_subscriptions_is_active", table_name="push_subscriptions")
    op.drop_index("ix_push_subscriptions_user_id", table_name="push_subscriptions")
    op.drop_constraint("uq_push_subscriptions_endpoint", "push_subscriptions", type_="unique")
    op.drop_table("push_subscriptions")

    op.drop_index("ix_certificates_user_id", table_name="certificates")
    op.drop_index("ix_certificates_event_id", table_name="certificates")
    op.drop_table("certificates")

    op.drop_index("ix_event_bookings_user_id", table_name="event_bookings")
    op.drop_index("ix_event_bookings_event_id", table_name="event_bookings")
    op.drop_table("event_bookings")

    op.drop_index("ix_events_date", table_name="events")
    op.drop_table("events")

    op.drop_table("locations")

    op.drop_index("ix_users_study_year", table_name="users")
    op.drop_index("ix_users_university", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
