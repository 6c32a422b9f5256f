"""Progress statistics derived from persisted session records."""
import logging
from datetime import date, datetime, timedelta, UTC
from typing import Dict, List, Optional, Sequence, Tuple

from northstar.exceptions import PersistenceError
from northstar.models.tracking_models import ProgressRecord, ProgressSnapshot
from northstar.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)

ACHIEVEMENT_TIER_SIZE = 5  # completed sessions per achievement


def compute(records: Sequence[ProgressRecord], today: Optional[date] = None) -> ProgressSnapshot:
    """Compute a progress snapshot from the full record set.

    The result depends only on ``records`` and ``today``; nothing is carried
    over from earlier snapshots.

    Args:
        records: Completed progress records, in store order.
        today: Reference day for the current streak. Defaults to today in UTC.

    Returns:
        A fresh ProgressSnapshot.
    """
    if today is None:
        today = datetime.now(UTC).date()

    total_sessions = len(records)
    completed = [record for record in records if record.completed]
    # Percentage points, not elapsed minutes
    total_minutes = sum(record.percentage for record in completed)

    dates = completion_dates(completed)
    return ProgressSnapshot(
        total_sessions=total_sessions,
        total_minutes=total_minutes,
        current_streak=calculate_current_streak(dates, today),
        longest_streak=calculate_longest_streak(dates),
        achievements_unlocked=total_sessions // ACHIEVEMENT_TIER_SIZE,
        favorite_category=find_favorite_category(records),
        average_session_length=total_minutes / total_sessions if total_sessions > 0 else 0,
    )


def find_favorite_category(records: Sequence[ProgressRecord]) -> Optional[str]:
    """Most frequent category; ties go to the one seen first."""
    counts: Dict[str, int] = {}
    for record in records:
        if record.category:
            counts[record.category] = counts.get(record.category, 0) + 1
    if not counts:
        return None
    # max() keeps the first of equal keys, and dicts keep insertion order
    return max(counts, key=counts.get)


def completion_dates(records: Sequence[ProgressRecord]) -> List[date]:
    """Sorted distinct UTC calendar days with at least one completion."""
    days = set()
    for record in records:
        if record.completed_at is None:
            continue
        completed_at = record.completed_at
        if completed_at.tzinfo is not None:
            completed_at = completed_at.astimezone(UTC)
        days.add(completed_at.date())
    return sorted(days)


def _runs(dates: Sequence[date]) -> List[Tuple[date, int]]:
    """(last day, length) of every run of consecutive days."""
    runs: List[Tuple[date, int]] = []
    for day in dates:
        if runs and day - runs[-1][0] == timedelta(days=1):
            runs[-1] = (day, runs[-1][1] + 1)
        else:
            runs.append((day, 1))
    return runs


def calculate_current_streak(dates: Sequence[date], today: date) -> int:
    """Length of the run ending today or yesterday, else 0."""
    runs = _runs(dates)
    if not runs:
        return 0
    last_day, length = runs[-1]
    if (today - last_day).days > 1:
        return 0
    return length


def calculate_longest_streak(dates: Sequence[date]) -> int:
    """Length of the longest run of consecutive days."""
    return max((length for _, length in _runs(dates)), default=0)


class MetricsAggregator:
    """Keeps the latest snapshot for one user."""

    def __init__(self, user_id: Optional[str], store: ProgressStore):
        self.user_id = user_id
        self.store = store
        self.snapshot: Optional[ProgressSnapshot] = None

    async def refresh(self, today: Optional[date] = None) -> Optional[ProgressSnapshot]:
        """Reload the records and recompute the snapshot wholesale."""
        if not self.user_id:
            return self.snapshot

        try:
            records = await self.store.list_completed_sessions(self.user_id)
        except PersistenceError as e:
            logger.error(f"Error loading sessions for user {self.user_id}: {e}")
            return self.snapshot

        self.snapshot = compute(records, today)
        logger.info(
            f"Progress refreshed for user {self.user_id}: {self.snapshot.total_sessions} sessions, "
            f"streak {self.snapshot.current_streak}"
        )
        return self.snapshot
