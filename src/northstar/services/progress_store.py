"""Record store for session progress and user preferences."""
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from northstar import monitoring
from northstar.exceptions import PersistenceError
from northstar.models.base import SessionLocal
from northstar.models.models import SessionProgress, UserPreferences
from northstar.models.tracking_models import ProgressRecord

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = (
    "preferred_duration",
    "preferred_categories",
    "notification_settings",
    "personality_type",
    "goals",
)


class ProgressStore(Protocol):
    """Persistence collaborator used by the tracking services.

    Every write is a keyed upsert, so repeating one is harmless.
    Implementations raise ``PersistenceError`` on failure.
    """

    async def upsert_progress(
        self,
        user_id: str,
        session_id: str,
        percentage: float,
        completed: bool,
        *,
        category: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        ...

    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def upsert_preferences(self, user_id: str, preferences: Dict[str, Any]) -> None:
        ...

    async def list_completed_sessions(self, user_id: str) -> List[ProgressRecord]:
        ...


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlProgressStore:
    """ProgressStore backed by SQLAlchemy tables."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """Initialize the store with a session factory."""
        self.session_factory = session_factory or SessionLocal

    async def upsert_progress(
        self,
        user_id: str,
        session_id: str,
        percentage: float,
        completed: bool,
        *,
        category: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        db = self.session_factory()
        try:
            row = (
                db.query(SessionProgress)
                .filter(
                    and_(
                        SessionProgress.user_id == user_id,
                        SessionProgress.session_id == session_id,
                    )
                )
                .first()
            )
            if row is None:
                row = SessionProgress(user_id=user_id, session_id=session_id)
                db.add(row)

            # A completed checkpoint stays complete
            if not row.completed:
                row.progress_percentage = percentage
                row.completed = completed
            if completed and completed_at is not None:
                row.completed_at = completed_at
            if category is not None:
                row.category = category

            db.commit()
            logger.debug(f"Progress saved for user {user_id}, session {session_id}: {percentage}%")
        except SQLAlchemyError as e:
            db.rollback()
            monitoring.persistence_errors.labels(operation="upsert_progress").inc()
            raise PersistenceError("upsert_progress", str(e)) from e
        finally:
            db.close()

    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        db = self.session_factory()
        try:
            row = db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()
            if row is None:
                return None
            return {name: getattr(row, name) for name in PREFERENCE_FIELDS}
        except SQLAlchemyError as e:
            monitoring.persistence_errors.labels(operation="get_preferences").inc()
            raise PersistenceError("get_preferences", str(e)) from e
        finally:
            db.close()

    async def upsert_preferences(self, user_id: str, preferences: Dict[str, Any]) -> None:
        db = self.session_factory()
        try:
            row = db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()
            if row is None:
                row = UserPreferences(user_id=user_id)
                db.add(row)
            for name in PREFERENCE_FIELDS:
                if name in preferences:
                    setattr(row, name, preferences[name])
            db.commit()
            logger.debug(f"Preferences saved for user {user_id}")
        except SQLAlchemyError as e:
            db.rollback()
            monitoring.persistence_errors.labels(operation="upsert_preferences").inc()
            raise PersistenceError("upsert_preferences", str(e)) from e
        finally:
            db.close()

    async def list_completed_sessions(self, user_id: str) -> List[ProgressRecord]:
        db = self.session_factory()
        try:
            rows = (
                db.query(SessionProgress)
                .filter(
                    and_(
                        SessionProgress.user_id == user_id,
                        SessionProgress.completed == True,
                    )
                )
                .order_by(SessionProgress.id)
                .all()
            )
            return [
                ProgressRecord(
                    user_id=row.user_id,
                    session_id=row.session_id,
                    percentage=row.progress_percentage,
                    completed=row.completed,
                    completed_at=_as_utc(row.completed_at),
                    category=row.category,
                )
                for row in rows
            ]
        except SQLAlchemyError as e:
            monitoring.persistence_errors.labels(operation="list_completed_sessions").inc()
            raise PersistenceError("list_completed_sessions", str(e)) from e
        finally:
            db.close()
