"""Pydantic schemas package."""

from app.schemas.auth import TokenPayload
from app.schemas.notification import (
    DispatchSummary,
    EventScheduleConfig,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PushSubscriptionCreate,
    PushSubscriptionKeys,
    PushSubscriptionRead,
    PushUnsubscribe,
)

__all__ = [
    "TokenPayload",
    "DispatchSummary",
    "EventScheduleConfig",
    "NotificationPreferences",
    "NotificationPreferencesUpdate",
    "PushSubscriptionCreate",
    "PushSubscriptionKeys",
    "PushSubscriptionRead",
    "PushUnsubscribe",
]
