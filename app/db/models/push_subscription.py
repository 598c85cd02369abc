"""Push Notification Subscription model."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import JSONType


class PushSubscription(Base):
    """Stores Web Push API subscription details for one device of a user."""

    __tablename__ = "push_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    endpoint = Column(Text, nullable=False, unique=True)
    p256dh = Column(String(255), nullable=False)
    auth = Column(String(255), nullable=False)

    # Informational only
    user_agent = Column(Text)
    device_info = Column(JSONType)

    # Flipped to False when the push service reports the endpoint gone; rows are never deleted here
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    subscribed_at = Column(DateTime(timezone=True), server_default=func.now())
    last_active_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
