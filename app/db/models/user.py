"""User database model."""
import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db.base import Base


class User(Base):
    """Represents an application user.

    Only the profile fields needed for cohort matching and for addressing the
    recipient by name are mapped here; the account itself is owned by the web
    application.
    """

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))

    # Cohort membership: both must be set for the user to match any cohort
    university = Column(String(100), index=True)
    study_year = Column(String(20), index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
