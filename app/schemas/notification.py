"""Schemas for push subscriptions, preferences and domain scheduling input."""
from __future__ import annotations

import uuid
import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventScheduleConfig(BaseModel):
    """Event fields that decide which tasks are scheduled for it."""

    date: dt.date
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    booking_enabled: bool = False
    feedback_enabled: bool = False
    auto_generate_certificate: bool = False
    certificate_template_id: Optional[uuid.UUID] = None
    target_cohorts: List[str] = Field(default_factory=list)


class PushSubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionCreate(BaseModel):
    """Browser ``PushSubscription.toJSON()`` plus optional device details."""

    endpoint: str
    keys: PushSubscriptionKeys
    device_info: Optional[dict[str, Any]] = None


class PushUnsubscribe(BaseModel):
    endpoint: str


class PushSubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    endpoint: str
    is_active: bool
    subscribed_at: Optional[dt.datetime] = None


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    teaching_events: bool = True
    bookings: bool = True
    certificates: bool = True
    feedback: bool = True
    announcements: bool = True
    leaderboard_updates: bool = False
    quiz_reminders: bool = False


class NotificationPreferencesUpdate(BaseModel):
    teaching_events: Optional[bool] = None
    bookings: Optional[bool] = None
    certificates: Optional[bool] = None
    feedback: Optional[bool] = None
    announcements: Optional[bool] = None
    leaderboard_updates: Optional[bool] = None
    quiz_reminders: Optional[bool] = None


class DispatchSummary(BaseModel):
    sent: int
    failed: int
