"""Database adapters for workout and summary storage.

The adapter pattern lets the analytics services run unchanged against the
local SQLite store (development, tests) or Supabase/PostgreSQL (production).

Usage:
    # SQLite (development)
    from flexr.db.adapters import SQLiteAdapter
    store = SQLiteAdapter(db_path="flexr.db")

    # Supabase/PostgreSQL (production)
    from flexr.db.adapters import SupabaseAdapter
    store = SupabaseAdapter(url=SUPABASE_URL, key=SUPABASE_SERVICE_KEY)

    workouts = store.get_workouts_range("user-123", start, end)
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ...exceptions import SegmentOrderError
from ...models.workouts import CompletionStatus, WorkoutStatus
from ...utils.dates import parse_date, parse_timestamp, start_of_day


@dataclass
class WorkoutRecord:
    """A planned or performed workout owned by one user."""
    id: str
    user_id: str
    type: str
    status: str = WorkoutStatus.SCHEDULED.value
    scheduled_date: Optional[datetime] = None
    title: str = ""
    total_duration_minutes: Optional[float] = None
    readiness_score: Optional[float] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[str] = None


@dataclass
class SegmentRecord:
    """One ordered sub-unit of a workout with planned vs. actual performance.

    actual_distance_km is typed loosely because PostgreSQL NUMERIC columns
    come back from the REST API as strings.
    """
    id: str
    workout_id: str
    order_index: int
    name: str = ""
    segment_type: Optional[str] = None
    duration_minutes: Optional[float] = None
    distance_km: Optional[float] = None
    target_pace: Optional[str] = None
    actual_distance_km: Any = None
    actual_pace: Optional[str] = None
    actual_duration_minutes: Optional[float] = None
    actual_heart_rate_avg: Optional[int] = None
    completion_status: str = CompletionStatus.NOT_STARTED.value


@dataclass
class WeeklySummaryRecord:
    """Persisted weekly roll-up, unique per (user_id, week_starting)."""
    user_id: str
    week_starting: date
    week_ending: date
    workouts_planned: int = 0
    workouts_completed: int = 0
    total_duration_minutes: float = 0.0
    total_distance_km: float = 0.0
    avg_readiness_score: Optional[float] = None
    workout_breakdown: Dict[str, int] = field(default_factory=dict)
    id: Optional[Any] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "week_starting": self.week_starting.isoformat(),
            "week_ending": self.week_ending.isoformat(),
            "workouts_planned": self.workouts_planned,
            "workouts_completed": self.workouts_completed,
            "total_duration_minutes": self.total_duration_minutes,
            "total_distance_km": self.total_distance_km,
            "avg_readiness_score": self.avg_readiness_score,
            "workout_breakdown": dict(self.workout_breakdown),
            "updated_at": self.updated_at,
        }


def validate_segment_order(workout_id: str, segments: Sequence[SegmentRecord]) -> None:
    """Ensure order indices are unique within the workout and contiguous from 0."""
    indices = [s.order_index for s in segments]
    if sorted(indices) != list(range(len(indices))):
        raise SegmentOrderError(workout_id, indices)


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def workout_from_row(row: Mapping[str, Any]) -> WorkoutRecord:
    """Build a WorkoutRecord from a database row (sqlite3.Row or dict)."""
    return WorkoutRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        type=row["type"],
        status=row["status"],
        scheduled_date=parse_timestamp(row["scheduled_date"]),
        title=row["title"] or "",
        total_duration_minutes=_optional_float(row["total_duration_minutes"]),
        readiness_score=_optional_float(row["readiness_score"]),
        started_at=parse_timestamp(row["started_at"]),
        completed_at=parse_timestamp(row["completed_at"]),
        updated_at=row["updated_at"],
    )


def segment_from_row(row: Mapping[str, Any]) -> SegmentRecord:
    """Build a SegmentRecord from a database row."""
    return SegmentRecord(
        id=str(row["id"]),
        workout_id=str(row["workout_id"]),
        order_index=row["order_index"],
        name=row["name"] or "",
        segment_type=row["segment_type"],
        duration_minutes=row["duration_minutes"],
        distance_km=row["distance_km"],
        target_pace=row["target_pace"],
        actual_distance_km=row["actual_distance_km"],
        actual_pace=row["actual_pace"],
        actual_duration_minutes=row["actual_duration_minutes"],
        actual_heart_rate_avg=row["actual_heart_rate_avg"],
        completion_status=row["completion_status"],
    )


def summary_from_row(row: Mapping[str, Any]) -> WeeklySummaryRecord:
    """Build a WeeklySummaryRecord from a database row."""
    breakdown = row["workout_breakdown"] or {}
    if isinstance(breakdown, str):
        breakdown = json.loads(breakdown)

    return WeeklySummaryRecord(
        id=row["id"],
        user_id=str(row["user_id"]),
        week_starting=parse_date(row["week_starting"]),
        week_ending=parse_date(row["week_ending"]),
        workouts_planned=int(row["workouts_planned"] or 0),
        workouts_completed=int(row["workouts_completed"] or 0),
        # NUMERIC columns arrive as strings over PostgREST
        total_duration_minutes=float(row["total_duration_minutes"] or 0),
        total_distance_km=float(row["total_distance_km"] or 0),
        avg_readiness_score=(
            float(row["avg_readiness_score"])
            if row["avg_readiness_score"] is not None else None
        ),
        workout_breakdown={k: int(v) for k, v in breakdown.items()},
        updated_at=row["updated_at"],
    )


class WorkoutStore(ABC):
    """Abstract base class for workout stores.

    Read operations back the progress aggregation; the weekly summary
    upsert is the only write on the analytics path and must be an atomic
    insert-or-merge keyed on (user_id, week_starting) so that concurrent
    calls for the same week never produce two rows.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Create the schema (SQLite) or verify connectivity (Supabase)."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release connections and cleanup resources."""
        pass

    # =========================================================================
    # Workouts
    # =========================================================================

    @abstractmethod
    def save_workout(
        self,
        workout: WorkoutRecord,
        segments: Sequence[SegmentRecord] = (),
    ) -> WorkoutRecord:
        """Insert or replace a workout together with its segments.

        Raises:
            SegmentOrderError: If segment order indices are not unique and
                contiguous from 0.
        """
        pass

    @abstractmethod
    def update_workout_status(
        self,
        workout_id: str,
        status: str,
        at: Optional[datetime] = None,
    ) -> bool:
        """Move a workout through its lifecycle (start/complete/skip).

        Returns:
            True if a workout was updated, False if it does not exist.
        """
        pass

    @abstractmethod
    def get_workouts_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        end_inclusive: bool = True,
    ) -> List[WorkoutRecord]:
        """Get a user's workouts whose scheduled date falls in the window."""
        pass

    @abstractmethod
    def get_segments(
        self,
        workout_ids: Sequence[str],
        completion_status: Optional[str] = None,
    ) -> List[SegmentRecord]:
        """Get segments belonging to the given workouts."""
        pass

    def get_workouts_for_day(self, user_id: str, day: date) -> List[WorkoutRecord]:
        """Get workouts scheduled on a UTC calendar day."""
        start = start_of_day(day)
        return self.get_workouts_range(
            user_id, start, start + timedelta(days=1), end_inclusive=False
        )

    def get_upcoming_workouts(
        self,
        user_id: str,
        day: date,
        days: int = 7,
    ) -> List[WorkoutRecord]:
        """Get workouts scheduled after `day` and within the following `days`."""
        start = start_of_day(day) + timedelta(days=1)
        end = start_of_day(day) + timedelta(days=days)
        return self.get_workouts_range(user_id, start, end, end_inclusive=False)

    # =========================================================================
    # Weekly Summaries
    # =========================================================================

    @abstractmethod
    def upsert_weekly_summary(self, summary: WeeklySummaryRecord) -> WeeklySummaryRecord:
        """Insert or merge the summary keyed on (user_id, week_starting)."""
        pass

    @abstractmethod
    def get_weekly_summary(
        self,
        user_id: str,
        week_starting: Optional[date] = None,
    ) -> Optional[WeeklySummaryRecord]:
        """Get the summary for a week, or the most recent one if no week given."""
        pass

    # =========================================================================
    # Health Check
    # =========================================================================

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """Check store health and connectivity.

        Returns:
            Dict with:
                - healthy: bool
                - backend: str (sqlite, postgresql)
                - latency_ms: float
                - error: str (only when unhealthy)
        """
        pass


# Export the adapter classes
from .sqlite_adapter import SQLiteAdapter  # noqa: E402
from .supabase_adapter import SupabaseAdapter  # noqa: E402


def get_store(settings=None) -> WorkoutStore:
    """Create the configured store backend.

    Args:
        settings: Optional Settings instance; defaults to get_settings().
    """
    from ...config import get_settings

    settings = settings or get_settings()
    if settings.database_backend == "supabase":
        return SupabaseAdapter(
            url=settings.supabase_url or None,
            key=settings.supabase_service_key or None,
        )
    store = SQLiteAdapter(db_path=str(settings.database_path))
    store.initialize()
    return store


__all__ = [
    "WorkoutRecord",
    "SegmentRecord",
    "WeeklySummaryRecord",
    "WorkoutStore",
    "SQLiteAdapter",
    "SupabaseAdapter",
    "get_store",
    "validate_segment_order",
    "workout_from_row",
    "segment_from_row",
    "summary_from_row",
]
