"""Cohort resolution: audience identifiers to users, subscriptions and opted-in devices."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.notification import NotificationPreference
from app.db.models.push_subscription import PushSubscription
from app.db.models.user import User


# Notification type -> NotificationPreference column. Types not listed here are
# never filtered.
PREFERENCE_CATEGORY_BY_TYPE: dict[str, str] = {
    "event_reminder_1h": "teaching_events",
    "event_reminder_15m": "teaching_events",
    "event_update": "teaching_events",
    "event_cancellation": "teaching_events",
    "booking_reminder_24h": "bookings",
    "booking_reminder_1h": "bookings",
    "booking_reminder_start": "bookings",
    "booking_waitlist_promoted": "bookings",
    "booking_admin_cancelled": "bookings",
    "certificate_available": "certificates",
    "feedback_request": "feedback",
    "announcement": "announcements",
}

FOUNDATION_ORG = "Foundation"
YEAR_TOKEN = "Year"


@dataclass(frozen=True)
class CohortIdentifier:
    university: str
    year: str


def parse_cohort_identifier(identifier: str | None) -> CohortIdentifier | None:
    """Parse ``"ARU Year 4"``, ``"Foundation Year 1"`` or ``"UCL-6"``.

    Returns ``None`` for anything else; never raises.
    """

    if not identifier or not isinstance(identifier, str):
        return None

    parts = identifier.strip().split()

    if len(parts) < 3:
        dash_parts = identifier.split("-")
        if len(dash_parts) == 2:
            university, year = dash_parts[0].strip(), dash_parts[1].strip()
            if university and year:
                return CohortIdentifier(university=university, year=year)
        return None

    if parts[0] == FOUNDATION_ORG and parts[1] == YEAR_TOKEN:
        return CohortIdentifier(university=FOUNDATION_ORG, year=parts[2])

    if parts[1] == YEAR_TOKEN:
        return CohortIdentifier(university=parts[0], year=parts[2])

    return None


class CohortResolver:
    """Resolve audiences to recipients.

    Two availability-over-precision rules apply: unparseable identifiers
    resolve to nobody (with a warning) and missing preference data counts as
    opted in.
    """

    def __init__(self, db: Session):
        self.db = db

    def users_in_cohort(self, identifier: str) -> set[UUID]:
        parsed = parse_cohort_identifier(identifier)
        if parsed is None:
            logger.warning("Invalid cohort identifier format", cohort=identifier)
            return set()

        stmt = (
            select(User.id)
            .where(User.university == parsed.university)
            .where(User.study_year == parsed.year)
            .where(User.university.is_not(None))
            .where(User.study_year.is_not(None))
        )
        return set(self.db.scalars(stmt).all())

    def users_in_cohorts(self, identifiers: Iterable[str] | None) -> set[UUID]:
        user_ids: set[UUID] = set()
        for identifier in identifiers or []:
            user_ids |= self.users_in_cohort(identifier)
        return user_ids

    def active_subscriptions_for(self, user_ids: Iterable[UUID] | None) -> list[PushSubscription]:
        ids = list(dict.fromkeys(user_ids or []))
        if not ids:
            return []

        stmt = (
            select(PushSubscription)
            .where(PushSubscription.user_id.in_(ids))
            .where(PushSubscription.is_active.is_(True))
        )
        return list(self.db.scalars(stmt).all())

    def filter_by_preference(
        self, subscriptions: Sequence[PushSubscription], notification_type: str
    ) -> list[PushSubscription]:
        """Drop subscriptions whose owner explicitly opted out of this category."""

        if not subscriptions:
            return []

        category = PREFERENCE_CATEGORY_BY_TYPE.get(notification_type)
        if category is None:
            return list(subscriptions)

        user_ids = list({sub.user_id for sub in subscriptions})
        column = getattr(NotificationPreference, category)
        try:
            rows = self.db.execute(
                select(NotificationPreference.user_id, column).where(
                    NotificationPreference.user_id.in_(user_ids)
                )
            ).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Preference lookup failed, sending to all subscriptions",
                notification_type=notification_type,
                error=str(exc),
            )
            return list(subscriptions)

        opted_out = {user_id for user_id, enabled in rows if enabled is False}
        kept = [sub for sub in subscriptions if sub.user_id not in opted_out]

        if opted_out:
            logger.debug(
                "Subscriptions filtered by preference",
                notification_type=notification_type,
                category=category,
                opted_out_users=len(opted_out),
                kept=len(kept),
            )
        return kept
