"""Utility helpers package."""

from app.utils.exceptions import (
    AuthenticationError,
    NotificationEngineException,
    PushTransportError,
    SchedulingError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "NotificationEngineException",
    "PushTransportError",
    "SchedulingError",
    "ValidationError",
]
