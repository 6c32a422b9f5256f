"""Fire-and-forget recording of user interactions."""
import asyncio
import logging
from datetime import datetime, UTC
from typing import Any, Dict, Optional

from northstar import monitoring
from northstar.models.tracking_models import InteractionEvent
from northstar.services.api_client import APIClient
from northstar.services.background import BackgroundTasks

logger = logging.getLogger(__name__)

# Actions reported to metrics by name; anything else is counted as "other"
KNOWN_ACTIONS = frozenset({
    "view",
    "like",
    "unlike",
    "save",
    "unsave",
    "share",
    "session_start",
    "session_preview",
    "quick_start",
    "filter_applied",
    "content_generated",
    "dream_analysis_start",
})


class InteractionRecorder:
    """Sends likes, saves, shares and views without blocking the caller."""

    def __init__(
        self,
        user_id: Optional[str],
        api_client: APIClient,
        tasks: Optional[BackgroundTasks] = None,
    ):
        self.user_id = user_id
        self.api_client = api_client
        self.tasks = tasks or BackgroundTasks()

    def record(
        self,
        action: str,
        target: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[InteractionEvent]:
        """Queue an interaction event and return it without waiting.

        Without a running event loop nothing is sent and None is returned.
        Delivery is at least once: client retries may duplicate the event
        remotely.
        """
        if not self.user_id:
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Dropped {action} on {target}: no running event loop")
            return None

        event = InteractionEvent(
            user_id=self.user_id,
            action=action,
            target=target,
            timestamp=datetime.now(UTC),
            metadata=metadata,
        )
        monitoring.interactions.labels(action=action if action in KNOWN_ACTIONS else "other").inc()
        logger.debug(f"Recording {action} on {target} for user {self.user_id}")
        self.tasks.spawn(
            self.api_client.track_interaction(event.to_payload()),
            label="interaction",
        )
        return event
