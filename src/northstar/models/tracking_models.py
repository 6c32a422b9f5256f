"""Models for in-memory tracking data structures."""
import copy
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from northstar.config import settings

T = TypeVar("T")


class SessionType(Enum):
    """Kinds of guided sessions."""
    MEDITATION = "meditation"
    EXERCISE = "exercise"
    BREATHING = "breathing"
    READING = "reading"


@dataclass
class Session:
    """An in-flight or finished session."""
    id: str
    session_type: SessionType
    started_at: datetime
    duration: int = 0  # milliseconds
    completed: bool = False
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_activity_at: Optional[datetime] = None


@dataclass
class ProgressRecord:
    """Persisted progress checkpoint, keyed by (user_id, session_id)."""
    user_id: str
    session_id: str
    percentage: float
    completed: bool = False
    completed_at: Optional[datetime] = None
    category: Optional[str] = None


DEFAULT_NOTIFICATION_SETTINGS: Dict[str, bool] = {
    "daily_reminders": True,
    "weekly_progress": True,
    "achievement_alerts": True,
}


@dataclass
class Preferences:
    """User preferences. Always carries every default key."""
    preferred_duration: int
    preferred_categories: List[str] = field(default_factory=list)
    notification_settings: Dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_NOTIFICATION_SETTINGS)
    )
    personality_type: Optional[str] = None
    goals: List[str] = field(default_factory=list)

    @classmethod
    def defaults(cls) -> "Preferences":
        return cls(preferred_duration=settings.tracking.default_duration)

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "Preferences":
        """Build preferences from stored data, backfilling missing keys."""
        prefs = cls.defaults()
        if not data:
            return prefs
        if data.get("preferred_duration") is not None:
            prefs.preferred_duration = int(data["preferred_duration"])
        if data.get("preferred_categories") is not None:
            prefs.preferred_categories = list(data["preferred_categories"])
        for key, value in (data.get("notification_settings") or {}).items():
            prefs.notification_settings[key] = bool(value)
        if data.get("personality_type") is not None:
            prefs.personality_type = data["personality_type"]
        if data.get("goals") is not None:
            prefs.goals = list(data["goals"])
        return prefs

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def copy(self) -> "Preferences":
        return copy.deepcopy(self)


@dataclass
class ProgressSnapshot:
    """Aggregate progress derived from the persisted records.

    ``total_minutes`` accumulates percentage points of completed sessions,
    not elapsed minutes.
    """
    total_sessions: int = 0
    total_minutes: float = 0
    current_streak: int = 0
    longest_streak: int = 0
    achievements_unlocked: int = 0
    favorite_category: Optional[str] = None
    average_session_length: float = 0


@dataclass
class InteractionEvent:
    """A discrete user interaction such as a like or a share."""
    user_id: str
    action: str
    target: str
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "action": self.action,
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class AttemptOutcome(Enum):
    """Result of one request attempt."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    HTTP_ERROR = "http_error"
    INVALID_BODY = "invalid_body"


@dataclass
class RequestAttempt:
    """Observability record for one attempt of one logical request."""
    endpoint: str
    method: str
    attempt_number: int  # 1-based
    outcome: AttemptOutcome
    error: Optional[str] = None
    elapsed: float = 0.0  # seconds
    route: Optional[str] = None  # path template, e.g. "/users/{id}/preferences"


@dataclass
class RequestConfig:
    """Per-request overrides. Unset values fall back to the client defaults."""
    timeout: Optional[int] = None  # milliseconds
    retries: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass
class APIResponse(Generic[T]):
    """Outcome of a logical request."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


class SyncStatus(Enum):
    """Whether local preferences match what the store acknowledged."""
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"
