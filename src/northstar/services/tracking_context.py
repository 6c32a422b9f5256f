"""Per-user wiring of the tracking services."""
import logging
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Union

from northstar.config import settings
from northstar.models.tracking_models import (
    InteractionEvent,
    Preferences,
    ProgressSnapshot,
    Session,
    SessionType,
    SyncStatus,
)
from northstar.services.api_client import APIClient
from northstar.services.background import BackgroundTasks
from northstar.services.interaction_recorder import InteractionRecorder
from northstar.services.metrics_aggregator import MetricsAggregator
from northstar.services.notification_service import NotificationService
from northstar.services.preference_service import PreferenceSynchronizer
from northstar.services.progress_store import ProgressStore
from northstar.services.session_tracker import SessionTracker

logger = logging.getLogger(__name__)


class UserTrackingContext:
    """Everything the UI needs to track one signed-in user.

    Built once per user; ``user_id=None`` gives an inert context whose
    operations are no-ops.
    """

    def __init__(
        self,
        user_id: Optional[str],
        api_client: APIClient,
        store: ProgressStore,
        notifications: Optional[NotificationService] = None,
        inactivity_timeout: Optional[timedelta] = None,
    ):
        self.user_id = user_id
        self.api_client = api_client
        self.store = store
        self.notifications = notifications or NotificationService()
        self.tasks = BackgroundTasks()
        self.loading = False

        if inactivity_timeout is None and settings.tracking.inactivity_timeout_minutes > 0:
            inactivity_timeout = timedelta(minutes=settings.tracking.inactivity_timeout_minutes)

        self.metrics = MetricsAggregator(user_id, store)
        self.sessions = SessionTracker(
            user_id,
            api_client,
            store,
            tasks=self.tasks,
            metrics=self.metrics,
            inactivity_timeout=inactivity_timeout,
        )
        self.preference_sync = PreferenceSynchronizer(
            user_id,
            store,
            api_client=api_client,
            tasks=self.tasks,
            notifier=self.notifications,
        )
        self.interactions = InteractionRecorder(user_id, api_client, tasks=self.tasks)

    @property
    def current_session(self) -> Optional[Session]:
        return self.sessions.current_session

    @property
    def preferences(self) -> Preferences:
        return self.preference_sync.preferences

    @property
    def preferences_status(self) -> SyncStatus:
        return self.preference_sync.status

    @property
    def progress(self) -> Optional[ProgressSnapshot]:
        return self.metrics.snapshot

    async def load_user_data(self) -> None:
        """Load preferences and recompute progress."""
        if not self.user_id:
            return

        self.loading = True
        try:
            await self.preference_sync.load()
            await self.metrics.refresh()
        finally:
            self.loading = False

    async def refresh(self) -> None:
        await self.load_user_data()

    async def start_session(
        self,
        session_type: Union[SessionType, str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        return await self.sessions.start(session_type, metadata)

    async def update_session_progress(
        self,
        percentage: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.sessions.update_progress(percentage, metadata)

    async def complete_session(self, rating: Optional[int] = None) -> Optional[Session]:
        """Complete the active session and announce any new achievement."""
        previous = self.metrics.snapshot
        session = await self.sessions.complete(rating)
        if session is None:
            return None

        snapshot = self.metrics.snapshot
        if (
            previous is None
            or snapshot is None
            or not self.preferences.notification_settings.get("achievement_alerts", True)
        ):
            return session

        if snapshot.achievements_unlocked > previous.achievements_unlocked:
            message = self.notifications.get_achievement_message(snapshot.achievements_unlocked)
            if message:
                self.notifications.notify("Achievement Unlocked", message)
        if snapshot.current_streak > previous.current_streak:
            message = self.notifications.get_streak_message(snapshot.current_streak)
            if message:
                self.notifications.notify("Streak", message)
        return session

    async def update_preferences(self, patch: Mapping[str, Any]) -> None:
        await self.preference_sync.update(patch)

    def track_interaction(
        self,
        action: str,
        target: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[InteractionEvent]:
        return self.interactions.record(action, target, metadata)

    async def aclose(self) -> None:
        """Wait for outstanding background calls."""
        await self.tasks.drain()
