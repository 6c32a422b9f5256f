"""Lifecycle of the single active session of a user."""
import logging
import threading
import uuid
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, Optional, Union

from northstar import monitoring
from northstar.exceptions import PersistenceError
from northstar.models.tracking_models import Session, SessionType
from northstar.services.api_client import APIClient
from northstar.services.background import BackgroundTasks
from northstar.services.metrics_aggregator import MetricsAggregator
from northstar.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)


class SessionTracker:
    """Owns the active-session slot: Idle -> Active -> Idle.

    State changes happen in memory first and are never rolled back. The
    progress write and the tracking event that follow are best effort.
    """

    def __init__(
        self,
        user_id: Optional[str],
        api_client: APIClient,
        store: ProgressStore,
        tasks: Optional[BackgroundTasks] = None,
        metrics: Optional[MetricsAggregator] = None,
        inactivity_timeout: Optional[timedelta] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.user_id = user_id
        self.api_client = api_client
        self.store = store
        self.tasks = tasks or BackgroundTasks()
        self.metrics = metrics
        self.inactivity_timeout = inactivity_timeout
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._active: Optional[Session] = None

    @property
    def current_session(self) -> Optional[Session]:
        return self._active

    def _claim(self, session: Session) -> bool:
        """Put ``session`` in the slot only if the slot is empty."""
        with self._lock:
            if self._active is not None:
                return False
            self._active = session
            return True

    def _release(self, session: Session) -> bool:
        """Empty the slot only if it still holds ``session``."""
        with self._lock:
            if self._active is not session:
                return False
            self._active = None
            return True

    @staticmethod
    def _elapsed_ms(session: Session, now: datetime) -> int:
        return max(0, int((now - session.started_at).total_seconds() * 1000))

    async def start(
        self,
        session_type: Union[SessionType, str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Start a session and return its id, or None if one is already active."""
        if not self.user_id:
            logger.warning("Cannot start a session without an authenticated user")
            return None

        session_type = SessionType(session_type)
        self._abandon_if_inactive()

        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()),
            session_type=session_type,
            started_at=now,
            metadata=dict(metadata or {}),
            last_activity_at=now,
        )
        if not self._claim(session):
            logger.info(f"Session {self._active.id if self._active else '?'} already active for user {self.user_id}")
            return None

        monitoring.sessions_started.labels(session_type=session_type.value).inc()
        logger.info(f"Started {session_type.value} session {session.id} for user {self.user_id}")

        self.tasks.spawn(
            self.api_client.track_session({
                "userId": self.user_id,
                "sessionId": session.id,
                "action": "start",
                "type": session_type.value,
                "timestamp": now.isoformat(),
                "metadata": metadata,
            }),
            label="session_start",
        )
        return session.id

    async def update_progress(
        self,
        percentage: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Checkpoint the active session. Reaching 100 does not complete it."""
        session = self._active
        if session is None or not self.user_id:
            return None

        percentage = max(0, min(100, percentage))
        now = self._clock()
        session.duration = self._elapsed_ms(session, now)
        session.last_activity_at = now
        if metadata:
            session.metadata.update(metadata)

        completed = percentage >= 100
        try:
            await self.store.upsert_progress(
                self.user_id,
                session.id,
                percentage,
                completed,
                category=session.session_type.value,
                completed_at=now if completed else None,
            )
        except PersistenceError as e:
            logger.error(f"Error updating session progress for {session.id}: {e}")

        self.tasks.spawn(
            self.api_client.track_session({
                "userId": self.user_id,
                "sessionId": session.id,
                "action": "progress",
                "progress": percentage,
                "timestamp": now.isoformat(),
                "metadata": metadata,
            }),
            label="session_progress",
        )
        return None

    async def complete(self, rating: Optional[int] = None) -> Optional[Session]:
        """Finish the active session and return it, or None if idle."""
        session = self._active
        if session is None or not self.user_id:
            return None
        if not self._release(session):
            return None

        now = self._clock()
        session.completed = True
        session.completed_at = now
        session.duration = self._elapsed_ms(session, now)
        session.last_activity_at = now

        session_type = session.session_type.value
        monitoring.sessions_completed.labels(session_type=session_type).inc()
        monitoring.session_duration.labels(session_type=session_type).observe(session.duration / 1000)
        logger.info(f"Completed session {session.id} for user {self.user_id} in {session.duration} ms")

        try:
            await self.store.upsert_progress(
                self.user_id,
                session.id,
                100,
                True,
                category=session_type,
                completed_at=now,
            )
        except PersistenceError as e:
            logger.error(f"Error saving completed session {session.id}: {e}")

        self.tasks.spawn(
            self.api_client.track_session({
                "userId": self.user_id,
                "sessionId": session.id,
                "action": "complete",
                "duration": session.duration,
                "rating": rating,
                "timestamp": now.isoformat(),
                "metadata": session.metadata,
            }),
            label="session_complete",
        )

        if self.metrics is not None:
            await self.metrics.refresh()
        return session

    def _abandon_if_inactive(self) -> None:
        session = self._active
        if session is None or self.inactivity_timeout is None:
            return
        now = self._clock()
        last_activity = session.last_activity_at or session.started_at
        if now - last_activity <= self.inactivity_timeout:
            return
        if not self._release(session):
            return

        session.duration = self._elapsed_ms(session, last_activity)
        logger.info(f"Abandoned inactive session {session.id} for user {self.user_id}")
        self.tasks.spawn(
            self.api_client.track_session({
                "userId": self.user_id,
                "sessionId": session.id,
                "action": "abandon",
                "duration": session.duration,
                "timestamp": now.isoformat(),
                "metadata": session.metadata,
            }),
            label="session_abandon",
        )
