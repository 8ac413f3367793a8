"""Supabase/PostgreSQL workout store implementation.

Tables mirror the SQLite schema (workouts, workout_segments,
weekly_summaries). The weekly summary upsert relies on the unique
constraint on (user_id, week_starting):

    INSERT INTO weekly_summaries (...) VALUES (...)
    ON CONFLICT (user_id, week_starting) DO UPDATE SET ...

which PostgREST exposes as upsert(..., on_conflict="user_id,week_starting").

Environment Variables Required:
    SUPABASE_URL          - Project URL (https://xxx.supabase.co)
    SUPABASE_SERVICE_KEY  - Service role key for backend (bypasses RLS)
"""

import os
import time
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client, create_client

from . import (
    SegmentRecord,
    WeeklySummaryRecord,
    WorkoutRecord,
    WorkoutStore,
    segment_from_row,
    summary_from_row,
    validate_segment_order,
    workout_from_row,
)
from ...exceptions import ValidationError
from ...models.workouts import WorkoutStatus
from ...utils.dates import to_utc, utc_now


def _iso(value: Optional[datetime]) -> Optional[str]:
    return to_utc(value).isoformat() if value else None


class SupabaseAdapter(WorkoutStore):
    """Supabase/PostgreSQL implementation of the WorkoutStore interface.

    Usage:
        # Initialize with environment variables
        store = SupabaseAdapter()

        # Or with explicit credentials
        store = SupabaseAdapter(
            url="https://xxx.supabase.co",
            key="your-service-key"
        )

    The service key bypasses RLS, so every query filters on user_id
    explicitly.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        """Initialize Supabase adapter.

        Args:
            url: Supabase project URL. Defaults to SUPABASE_URL.
            key: Supabase service key. Defaults to SUPABASE_SERVICE_KEY.
            client: Pre-built client (skips url/key resolution).

        Raises:
            ValueError: If required configuration is missing.
        """
        self._client: Optional[Client] = client
        if client is not None:
            self.url = url
            self.key = key
            return

        self.url = url or os.environ.get("SUPABASE_URL")
        if not self.url:
            raise ValueError(
                "Supabase URL not provided. Set SUPABASE_URL environment variable "
                "or pass url parameter."
            )

        self.key = key or os.environ.get("SUPABASE_SERVICE_KEY")
        if not self.key:
            raise ValueError(
                "Supabase API key not provided. Set SUPABASE_SERVICE_KEY "
                "environment variable, or pass key parameter."
            )

    @property
    def client(self) -> Client:
        """Lazy-initialize Supabase client."""
        if self._client is None:
            self._client = create_client(self.url, self.key)
        return self._client

    def initialize(self) -> None:
        """Verify the connection; schema is managed by Supabase migrations."""
        try:
            self.client.table("workouts").select("id").limit(1).execute()
        except Exception as e:
            raise ConnectionError(f"Failed to connect to Supabase: {e}") from e

    def close(self) -> None:
        """Drop the client; Supabase pools connections server-side."""
        self._client = None

    # =========================================================================
    # Workouts
    # =========================================================================

    def save_workout(
        self,
        workout: WorkoutRecord,
        segments: Sequence[SegmentRecord] = (),
    ) -> WorkoutRecord:
        """Upsert a workout and replace its segments.

        Note: PostgREST has no multi-statement transactions; the segment
        replacement is delete-then-insert.
        """
        validate_segment_order(workout.id, segments)

        self.client.table("workouts").upsert(
            {
                "id": workout.id,
                "user_id": workout.user_id,
                "title": workout.title,
                "type": workout.type,
                "status": workout.status,
                "scheduled_date": _iso(workout.scheduled_date),
                "total_duration_minutes": workout.total_duration_minutes,
                "readiness_score": workout.readiness_score,
                "started_at": _iso(workout.started_at),
                "completed_at": _iso(workout.completed_at),
            },
            on_conflict="id",
        ).execute()

        self.client.table("workout_segments").delete().eq(
            "workout_id", workout.id
        ).execute()

        if segments:
            self.client.table("workout_segments").insert([
                {
                    "id": s.id,
                    "workout_id": workout.id,
                    "order_index": s.order_index,
                    "segment_type": s.segment_type,
                    "name": s.name,
                    "duration_minutes": s.duration_minutes,
                    "distance_km": s.distance_km,
                    "target_pace": s.target_pace,
                    "actual_distance_km": s.actual_distance_km,
                    "actual_pace": s.actual_pace,
                    "actual_duration_minutes": s.actual_duration_minutes,
                    "actual_heart_rate_avg": s.actual_heart_rate_avg,
                    "completion_status": s.completion_status,
                }
                for s in segments
            ]).execute()

        workout.updated_at = utc_now().isoformat()
        return workout

    def update_workout_status(
        self,
        workout_id: str,
        status: str,
        at: Optional[datetime] = None,
    ) -> bool:
        try:
            new_status = WorkoutStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown workout status '{status}'", field="status")

        stamp = _iso(at or utc_now())
        data: Dict[str, Any] = {"status": new_status.value, "updated_at": stamp}
        if new_status == WorkoutStatus.IN_PROGRESS:
            data["started_at"] = stamp
        elif new_status == WorkoutStatus.COMPLETED:
            data["completed_at"] = stamp

        result = self.client.table("workouts").update(data).eq("id", workout_id).execute()
        return bool(result.data)

    def get_workouts_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        end_inclusive: bool = True,
    ) -> List[WorkoutRecord]:
        """Get workouts in a window.

        PostgreSQL:
            WHERE user_id = $1 AND scheduled_date >= $2 AND scheduled_date <= $3
        """
        query = self.client.table("workouts").select("*").eq(
            "user_id", user_id
        ).gte("scheduled_date", _iso(start))

        if end_inclusive:
            query = query.lte("scheduled_date", _iso(end))
        else:
            query = query.lt("scheduled_date", _iso(end))

        result = query.order("scheduled_date").order("id").execute()
        return [workout_from_row(row) for row in result.data]

    def get_segments(
        self,
        workout_ids: Sequence[str],
        completion_status: Optional[str] = None,
    ) -> List[SegmentRecord]:
        if not workout_ids:
            return []

        query = self.client.table("workout_segments").select("*").in_(
            "workout_id", list(workout_ids)
        )
        if completion_status:
            query = query.eq("completion_status", completion_status)

        result = query.order("workout_id").order("order_index").execute()
        return [segment_from_row(row) for row in result.data]

    # =========================================================================
    # Weekly Summaries
    # =========================================================================

    def upsert_weekly_summary(self, summary: WeeklySummaryRecord) -> WeeklySummaryRecord:
        """Insert or merge on the (user_id, week_starting) unique key."""
        data = {
            "user_id": summary.user_id,
            "week_starting": summary.week_starting.isoformat(),
            "week_ending": summary.week_ending.isoformat(),
            "workouts_planned": summary.workouts_planned,
            "workouts_completed": summary.workouts_completed,
            "total_duration_minutes": summary.total_duration_minutes,
            "total_distance_km": summary.total_distance_km,
            "avg_readiness_score": summary.avg_readiness_score,
            "workout_breakdown": summary.workout_breakdown,
            "updated_at": utc_now().isoformat(),
        }

        result = self.client.table("weekly_summaries").upsert(
            data,
            on_conflict="user_id,week_starting",
        ).execute()

        if result.data:
            return summary_from_row(result.data[0])
        summary.updated_at = data["updated_at"]
        return summary

    def get_weekly_summary(
        self,
        user_id: str,
        week_starting: Optional[date] = None,
    ) -> Optional[WeeklySummaryRecord]:
        query = self.client.table("weekly_summaries").select("*").eq("user_id", user_id)

        if week_starting is not None:
            query = query.eq("week_starting", week_starting.isoformat())
        else:
            query = query.order("week_starting", desc=True)

        result = query.limit(1).execute()
        if result.data:
            return summary_from_row(result.data[0])
        return None

    # =========================================================================
    # Health Check
    # =========================================================================

    def health_check(self) -> Dict[str, Any]:
        """Check Supabase connectivity with a cheap query."""
        start_time = time.time()
        try:
            self.client.table("workouts").select("id").limit(1).execute()
            return {
                "healthy": True,
                "backend": "supabase",
                "latency_ms": round((time.time() - start_time) * 1000, 2),
                "details": {"url": self.url},
            }
        except Exception as e:
            return {
                "healthy": False,
                "backend": "supabase",
                "latency_ms": round((time.time() - start_time) * 1000, 2),
                "error": str(e),
                "details": {"url": self.url},
            }
