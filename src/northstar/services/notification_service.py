"""Service for user-facing notifications."""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Callable, Deque, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A message meant to be shown to the user."""
    title: str
    description: str
    variant: str = "default"  # "default" or "destructive"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class Notifier(Protocol):
    """Anything that can surface a notification to the user."""

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        ...


class NotificationService:
    """Collects notifications and forwards them to an optional renderer."""

    def __init__(
        self,
        handler: Optional[Callable[[Notification], None]] = None,
        max_history: int = 100,
    ):
        """Initialize the service with an optional renderer callback."""
        self.handler = handler
        self.history: Deque[Notification] = deque(maxlen=max_history)

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        """Record a notification and pass it to the renderer."""
        notification = Notification(title=title, description=description, variant=variant)
        self.history.append(notification)
        level = logging.WARNING if variant == "destructive" else logging.INFO
        logger.log(level, f"Notification [{title}]: {description}")
        if self.handler is not None:
            try:
                self.handler(notification)
            except Exception as e:
                logger.error(f"Notification handler failed for [{title}]: {e}")

    def get_notifications(self, variant: Optional[str] = None) -> List[Notification]:
        """Get recorded notifications, optionally filtered by variant."""
        if variant is None:
            return list(self.history)
        return [n for n in self.history if n.variant == variant]

    def clear(self) -> None:
        self.history.clear()

    @staticmethod
    def get_achievement_message(tier: int) -> Optional[str]:
        """Generate an achievement message for a newly unlocked tier."""
        if tier <= 0:
            return None
        sessions = tier * 5
        if tier == 1:
            return (
                "🎉 Achievement Unlocked!\n\n"
                "You've completed your first 5 sessions!\n"
                "Keep up the great work! 🌟"
            )
        elif tier == 10:
            return (
                "🏆 Achievement Unlocked!\n\n"
                "You've completed 50 sessions!\n"
                "You're making amazing progress! 🌟"
            )
        elif tier == 20:
            return (
                "👑 Achievement Unlocked!\n\n"
                "You've completed 100 sessions!\n"
                "You're absolutely incredible! 🌟"
            )
        return (
            "🌟 Achievement Unlocked!\n\n"
            f"You've completed {sessions} sessions!"
        )

    @staticmethod
    def get_streak_message(streak: int) -> Optional[str]:
        """Generate a streak message for milestone streaks."""
        if streak == 7:
            return (
                "🔥 Amazing Streak!\n\n"
                "You've practised 7 days in a row!\n"
                "You're on fire! Keep it up! 🌟"
            )
        elif streak == 30:
            return (
                "🌟 Legendary Streak!\n\n"
                "You've practised 30 days in a row!\n"
                "You're absolutely incredible! 🌟"
            )
        return None
