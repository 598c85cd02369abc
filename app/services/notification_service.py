"""Notification dispatch: fan a payload out to users, cohorts and their devices."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.db.models.notification import NotificationLog
from app.db.models.push_subscription import PushSubscription
from app.services.cohorts import CohortResolver
from app.services.push_transport import (
    PushPayload,
    PushResult,
    PushStatus,
    PushTransport,
    SubscriptionTarget,
    get_push_transport,
)
from app.utils.exceptions import ValidationError


@dataclass
class DispatchResult:
    """Aggregate outcome of a send: one count per delivery attempt."""

    sent: int = 0
    failed: int = 0

    def record(self, outcome: PushResult) -> None:
        if outcome.success:
            self.sent += 1
        else:
            self.failed += 1

    def as_dict(self) -> dict[str, int]:
        return {"sent": self.sent, "failed": self.failed}


@dataclass(frozen=True)
class _Delivery:
    subscription_id: UUID
    user_id: UUID
    target: SubscriptionTarget


def _jsonable(metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    return json.loads(json.dumps(metadata, default=str))


class NotificationService:
    """Send push notifications and keep the audit trail.

    Every delivery attempt writes exactly one ``NotificationLog`` row. A
    transport result of ``expired`` deactivates that subscription; nothing
    else here mutates subscription state.
    """

    def __init__(
        self,
        db: Session,
        transport: PushTransport | None = None,
        resolver: CohortResolver | None = None,
        batch_size: int | None = None,
    ):
        self.db = db
        self.transport = transport or get_push_transport()
        self.resolver = resolver or CohortResolver(db)
        self.batch_size = max(1, batch_size or settings.PUSH_BATCH_SIZE)

    # ------------------------------------------------------------------
    # Subscription registration
    # ------------------------------------------------------------------

    def subscribe(
        self,
        user_id: UUID,
        subscription_info: dict,
        user_agent: str | None = None,
        device_info: dict | None = None,
    ) -> PushSubscription:
        """Register a push subscription, re-activating it if the endpoint is known."""

        endpoint = subscription_info.get("endpoint")
        keys = subscription_info.get("keys") or {}
        p256dh = keys.get("p256dh")
        auth = keys.get("auth")

        if not endpoint or not p256dh or not auth:
            raise ValidationError(
                "Invalid subscription info",
                {"required": ["endpoint", "keys.p256dh", "keys.auth"]},
            )

        existing = self.db.scalars(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        ).first()

        if existing:
            existing.user_id = user_id
            existing.p256dh = p256dh
            existing.auth = auth
            existing.user_agent = user_agent
            existing.device_info = device_info
            existing.is_active = True
            existing.last_active_at = datetime.now(timezone.utc)
            subscription = existing
        else:
            subscription = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                user_agent=user_agent,
                device_info=device_info,
                is_active=True,
            )
            self.db.add(subscription)

        self.db.commit()
        logger.info("Push subscription registered", user_id=str(user_id), reactivated=existing is not None)
        return subscription

    def unsubscribe(self, user_id: UUID, endpoint: str) -> bool:
        """Deactivate the caller's subscription for ``endpoint``."""

        result = self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .where(PushSubscription.endpoint == endpoint)
            .values(is_active=False)
        )
        self.db.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def send_to_user(
        self,
        user_id: UUID,
        payload: PushPayload,
        notification_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> DispatchResult:
        """Send to every active, opted-in device of one user, one at a time."""

        result = DispatchResult()
        if not self._transport_ready(notification_type):
            return result

        subscriptions = self.resolver.active_subscriptions_for([user_id])
        subscriptions = self.resolver.filter_by_preference(subscriptions, notification_type)
        if not subscriptions:
            return result

        log_metadata = _jsonable(metadata)
        for delivery in self._deliveries(subscriptions):
            outcome = await asyncio.to_thread(self._deliver, delivery.target, payload)
            self._record_attempt(delivery, outcome, payload, notification_type, log_metadata)
            result.record(outcome)

        self._log_summary("user", notification_type, result, recipients=1)
        return result

    async def send_to_multiple_users(
        self,
        user_ids: Iterable[UUID] | None,
        payload: PushPayload,
        notification_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> DispatchResult:
        """Send to many users in bounded concurrent batches.

        Deliveries inside a batch run concurrently; batches run one after the
        other, so at most ``batch_size`` push requests are in flight.
        """

        result = DispatchResult()
        ids = list(dict.fromkeys(user_ids or []))
        if not ids:
            return result
        if not self._transport_ready(notification_type):
            return result

        subscriptions = self.resolver.active_subscriptions_for(ids)
        if not subscriptions:
            return result
        subscriptions = self.resolver.filter_by_preference(subscriptions, notification_type)
        if not subscriptions:
            return result

        log_metadata = _jsonable(metadata)
        deliveries = self._deliveries(subscriptions)
        for start in range(0, len(deliveries), self.batch_size):
            batch = deliveries[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(asyncio.to_thread(self._deliver, delivery.target, payload) for delivery in batch)
            )
            # Persistence stays on this thread; the session is not shared with workers
            for delivery, outcome in zip(batch, outcomes):
                self._record_attempt(delivery, outcome, payload, notification_type, log_metadata)
                result.record(outcome)

        self._log_summary("users", notification_type, result, recipients=len(ids))
        return result

    async def send_to_cohort(
        self,
        cohort_identifiers: Sequence[str] | None,
        payload: PushPayload,
        notification_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> DispatchResult:
        """Resolve cohorts to users and delegate to ``send_to_multiple_users``."""

        if not cohort_identifiers:
            return DispatchResult()

        user_ids = self.resolver.users_in_cohorts(cohort_identifiers)
        if not user_ids:
            logger.info(
                "No users matched cohorts",
                cohorts=list(cohort_identifiers),
                notification_type=notification_type,
            )
            return DispatchResult()

        return await self.send_to_multiple_users(user_ids, payload, notification_type, metadata)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transport_ready(self, notification_type: str) -> bool:
        if self.transport.is_configured:
            return True
        logger.warning(
            "VAPID keys not configured, skipping push notification",
            notification_type=notification_type,
        )
        return False

    @staticmethod
    def _deliveries(subscriptions: Sequence[PushSubscription]) -> list[_Delivery]:
        # Plain values only: ORM instances must not cross into worker threads
        return [
            _Delivery(
                subscription_id=sub.id,
                user_id=sub.user_id,
                target=SubscriptionTarget(endpoint=sub.endpoint, p256dh=sub.p256dh, auth=sub.auth),
            )
            for sub in subscriptions
        ]

    def _deliver(self, target: SubscriptionTarget, payload: PushPayload) -> PushResult:
        try:
            return self.transport.send(target, payload)
        except Exception as exc:
            logger.error("Push transport raised", endpoint=target.endpoint[:60], error=str(exc))
            return PushResult(PushStatus.FAILED, str(exc) or exc.__class__.__name__)

    def _record_attempt(
        self,
        delivery: _Delivery,
        outcome: PushResult,
        payload: PushPayload,
        notification_type: str,
        metadata: dict[str, Any] | None,
    ) -> None:
        if outcome.expired:
            self._deactivate_subscription(delivery.subscription_id)

        self._write_log(
            user_id=delivery.user_id,
            subscription_id=delivery.subscription_id,
            notification_type=notification_type,
            title=payload.title,
            body=payload.body,
            url=payload.url,
            status="sent" if outcome.success else "failed",
            error_message=None if outcome.success else outcome.error,
            log_metadata=metadata,
        )

    def _deactivate_subscription(self, subscription_id: UUID) -> None:
        try:
            self.db.execute(
                update(PushSubscription)
                .where(PushSubscription.id == subscription_id)
                .values(is_active=False)
            )
            self.db.commit()
            logger.info("Subscription expired, deactivated", subscription_id=str(subscription_id))
        except Exception as exc:
            self.db.rollback()
            logger.error(
                "Failed to deactivate expired subscription",
                subscription_id=str(subscription_id),
                error=str(exc),
            )

    def _write_log(self, **fields: Any) -> None:
        # Audit failures must never block delivery
        try:
            self.db.add(NotificationLog(**fields))
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.warning(
                "Failed to write notification log",
                notification_type=fields.get("notification_type"),
                error=str(exc),
            )

    @staticmethod
    def _log_summary(scope: str, notification_type: str, result: DispatchResult, recipients: int) -> None:
        logger.info(
            "Notification dispatch completed",
            scope=scope,
            notification_type=notification_type,
            recipients=recipients,
            sent=result.sent,
            failed=result.failed,
        )
