"""Database models for the record store."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
)

from northstar.models.base import Base, TimestampMixin


class SessionProgress(Base, TimestampMixin):
    """Progress checkpoint for one session of one user."""

    __tablename__ = "session_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "session_id", name="uq_session_progress_user_session"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    session_id = Column(String, nullable=False)
    progress_percentage = Column(Float, nullable=False, default=0.0)  # 0-100
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    category = Column(String, nullable=True)  # session type, e.g. "meditation"


class UserPreferences(Base, TimestampMixin):
    """Stored preferences of one user."""

    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, unique=True, nullable=False)
    preferred_duration = Column(Integer, nullable=True)  # in minutes
    preferred_categories = Column(JSON, nullable=True)
    notification_settings = Column(JSON, nullable=True)
    personality_type = Column(String, nullable=True)
    goals = Column(JSON, nullable=True)
