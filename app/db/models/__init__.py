"""Database models package."""
from app.db.models.user import User
from app.db.models.event import Event, EventBooking, Location
from app.db.models.certificate import Certificate
from app.db.models.push_subscription import PushSubscription
from app.db.models.notification import NotificationLog, NotificationPreference, ScheduledTask

__all__ = [
    "User",
    "Event",
    "EventBooking",
    "Location",
    "Certificate",
    "PushSubscription",
    "NotificationLog",
    "NotificationPreference",
    "ScheduledTask",
]
