"""Service for loading and saving user preferences."""
import logging
from typing import Any, Mapping, Optional

from northstar.exceptions import PersistenceError
from northstar.models.tracking_models import Preferences, SyncStatus
from northstar.services.api_client import APIClient
from northstar.services.background import BackgroundTasks
from northstar.services.notification_service import Notifier
from northstar.services.progress_store import PREFERENCE_FIELDS, ProgressStore

logger = logging.getLogger(__name__)


def merge_preferences(current: Preferences, patch: Mapping[str, Any]) -> Preferences:
    """Merge a partial update into a copy of ``current``.

    Scalars and lists are replaced; ``notification_settings`` is merged key
    by key so unspecified switches keep their values.
    """
    unknown = set(patch) - set(PREFERENCE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

    merged = current.copy()
    if patch.get("preferred_duration") is not None:
        merged.preferred_duration = int(patch["preferred_duration"])
    if patch.get("preferred_categories") is not None:
        merged.preferred_categories = list(patch["preferred_categories"])
    if patch.get("notification_settings") is not None:
        for key, value in patch["notification_settings"].items():
            merged.notification_settings[key] = bool(value)
    if "personality_type" in patch:
        merged.personality_type = patch["personality_type"]
    if patch.get("goals") is not None:
        merged.goals = list(patch["goals"])
    return merged


class PreferenceSynchronizer:
    """Keeps one user's preferences in memory and in the store.

    Updates are visible at once. The store write that follows moves
    ``status`` from PENDING to SYNCED, or to FAILED while keeping the local
    value.
    """

    def __init__(
        self,
        user_id: Optional[str],
        store: ProgressStore,
        api_client: Optional[APIClient] = None,
        tasks: Optional[BackgroundTasks] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.user_id = user_id
        self.store = store
        self.api_client = api_client
        self.tasks = tasks or BackgroundTasks()
        self.notifier = notifier
        self._preferences = Preferences.defaults()
        self._status = SyncStatus.SYNCED

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    @property
    def status(self) -> SyncStatus:
        return self._status

    async def load(self) -> Preferences:
        """Load stored preferences, filling every missing key from defaults."""
        if not self.user_id:
            return self._preferences

        try:
            data = await self.store.get_preferences(self.user_id)
        except PersistenceError as e:
            logger.error(f"Error loading preferences for user {self.user_id}: {e}")
            self._status = SyncStatus.FAILED
            return self._preferences

        # An update still in flight is newer than what was just read
        if self._status is SyncStatus.PENDING:
            logger.info(f"Skipped stored preferences for user {self.user_id}: update pending")
            return self._preferences

        self._preferences = Preferences.from_mapping(data)
        self._status = SyncStatus.SYNCED
        return self._preferences

    async def update(self, patch: Mapping[str, Any]) -> None:
        """Apply a partial update locally, then persist it."""
        if not self.user_id:
            return

        merged = merge_preferences(self._preferences, patch)
        self._preferences = merged
        self._status = SyncStatus.PENDING

        try:
            await self.store.upsert_preferences(self.user_id, merged.to_dict())
        except PersistenceError as e:
            logger.error(f"Error updating preferences for user {self.user_id}: {e}")
            # A newer update owns the status
            if self._preferences is merged:
                self._status = SyncStatus.FAILED
            if self.notifier is not None:
                self.notifier.notify(
                    "Preferences not saved",
                    "Failed to save settings. Please try again.",
                    variant="destructive",
                )
            return

        if self._preferences is merged:
            self._status = SyncStatus.SYNCED
        logger.info(f"Preferences updated for user {self.user_id}: {sorted(patch)}")

        if self.api_client is not None:
            self.tasks.spawn(
                self.api_client.update_user_preferences(self.user_id, merged.to_dict()),
                label="preferences_push",
            )

    async def reset(self) -> None:
        """Restore every preference to its default."""
        await self.update(Preferences.defaults().to_dict())
