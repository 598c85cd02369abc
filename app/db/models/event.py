"""Teaching event, venue and booking models."""
import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Text, Time
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import StringList


class Location(Base):
    """A venue an event takes place at."""

    __tablename__ = "locations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255))
    address = Column(Text)

    @property
    def display_name(self) -> str:
        return self.name or self.address or ""


class Event(Base):
    """A scheduled teaching event.

    Dates and times are stored as UTC wall-clock values.
    """

    __tablename__ = "events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time)
    end_time = Column(Time)
    event_status = Column(String(50))

    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"))
    target_cohorts = Column(StringList, default=list)

    booking_enabled = Column(Boolean, default=False)
    feedback_enabled = Column(Boolean, default=False)
    auto_generate_certificate = Column(Boolean, default=False)
    certificate_template_id = Column(UUID(as_uuid=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    location = relationship("Location")


class EventBooking(Base):
    """A user's place on an event."""

    __tablename__ = "event_bookings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(
        UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(30), default="confirmed")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event")
