"""SQLite workout store implementation.

SQLite-Specific Considerations:
    - Timestamps are stored as fixed-width UTC TEXT so range filters can
      compare strings directly
    - Weekly summary upsert uses INSERT ... ON CONFLICT DO UPDATE on the
      UNIQUE(user_id, week_starting) constraint; the statement is atomic,
      so concurrent writers serialize on the database write lock
    - A new connection is opened per operation (file-backed databases
      only; ':memory:' would give every operation an empty database)
"""

import json
import os
import sqlite3
import time
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

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
from ...utils.dates import format_timestamp, utc_now


def get_default_db_path() -> Path:
    """Get the default database path."""
    env_path = os.environ.get("FLEXR_DB_PATH")
    if env_path:
        return Path(env_path)
    # Default: <project root>/flexr.db
    return Path(__file__).parent.parent.parent.parent.parent / "flexr.db"


class SQLiteAdapter(WorkoutStore):
    """SQLite implementation of the WorkoutStore interface.

    Usage:
        store = SQLiteAdapter()  # Uses default path
        store = SQLiteAdapter(db_path="custom.db")
        store.initialize()

        workouts = store.get_workouts_range("user-123", start, end)
    """

    def __init__(self, db_path: Optional[str] = None, busy_timeout_ms: int = 5000):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite database file.
                    If not provided, uses FLEXR_DB_PATH env var or default.
            busy_timeout_ms: How long a writer waits for the write lock.
        """
        if db_path:
            self.db_path = Path(db_path)
        else:
            self.db_path = get_default_db_path()
        self.busy_timeout_ms = busy_timeout_ms

    def initialize(self) -> None:
        """Create tables and indexes if they don't exist."""
        from ..schema import SCHEMA

        with self._get_connection() as conn:
            conn.executescript(SCHEMA)

    def close(self) -> None:
        """Nothing to release; connections are per operation."""
        pass

    @contextmanager
    def _get_connection(self):
        """Get a database connection; commits on success, rolls back on error."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # Workouts
    # =========================================================================

    def save_workout(
        self,
        workout: WorkoutRecord,
        segments: Sequence[SegmentRecord] = (),
    ) -> WorkoutRecord:
        """Insert or replace a workout and its segments in one transaction."""
        validate_segment_order(workout.id, segments)

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO workouts
                (id, user_id, title, type, status, scheduled_date,
                 total_duration_minutes, readiness_score, started_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    title = excluded.title,
                    type = excluded.type,
                    status = excluded.status,
                    scheduled_date = excluded.scheduled_date,
                    total_duration_minutes = excluded.total_duration_minutes,
                    readiness_score = excluded.readiness_score,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    workout.id,
                    workout.user_id,
                    workout.title,
                    workout.type,
                    workout.status,
                    format_timestamp(workout.scheduled_date),
                    workout.total_duration_minutes,
                    workout.readiness_score,
                    format_timestamp(workout.started_at),
                    format_timestamp(workout.completed_at),
                ),
            )

            conn.execute(
                "DELETE FROM workout_segments WHERE workout_id = ?",
                (workout.id,),
            )
            conn.executemany(
                """
                INSERT INTO workout_segments
                (id, workout_id, order_index, segment_type, name,
                 duration_minutes, distance_km, target_pace,
                 actual_distance_km, actual_pace, actual_duration_minutes,
                 actual_heart_rate_avg, completion_status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        s.id,
                        workout.id,
                        s.order_index,
                        s.segment_type,
                        s.name,
                        s.duration_minutes,
                        s.distance_km,
                        s.target_pace,
                        s.actual_distance_km,
                        s.actual_pace,
                        s.actual_duration_minutes,
                        s.actual_heart_rate_avg,
                        s.completion_status,
                    )
                    for s in segments
                ],
            )

        workout.updated_at = utc_now().isoformat()
        return workout

    def update_workout_status(
        self,
        workout_id: str,
        status: str,
        at: Optional[datetime] = None,
    ) -> bool:
        """Set workout status, stamping started_at/completed_at as needed."""
        try:
            new_status = WorkoutStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown workout status '{status}'", field="status")

        stamp = format_timestamp(at or utc_now())
        assignments = "status = ?, updated_at = CURRENT_TIMESTAMP"
        params: List[Any] = [new_status.value]

        if new_status == WorkoutStatus.IN_PROGRESS:
            assignments += ", started_at = ?"
            params.append(stamp)
        elif new_status == WorkoutStatus.COMPLETED:
            assignments += ", completed_at = ?"
            params.append(stamp)

        params.append(workout_id)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE workouts SET {assignments} WHERE id = ?",
                params,
            )
            return cursor.rowcount > 0

    def get_workouts_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        end_inclusive: bool = True,
    ) -> List[WorkoutRecord]:
        """Get a user's workouts scheduled within [start, end] or [start, end)."""
        upper = "<=" if end_inclusive else "<"

        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM workouts
                WHERE user_id = ?
                  AND scheduled_date >= ?
                  AND scheduled_date {upper} ?
                ORDER BY scheduled_date, id
                """,
                (user_id, format_timestamp(start), format_timestamp(end)),
            ).fetchall()
            return [workout_from_row(row) for row in rows]

    def get_segments(
        self,
        workout_ids: Sequence[str],
        completion_status: Optional[str] = None,
    ) -> List[SegmentRecord]:
        """Get segments of the given workouts, optionally filtered by status."""
        if not workout_ids:
            return []

        placeholders = ", ".join("?" for _ in workout_ids)
        query = f"SELECT * FROM workout_segments WHERE workout_id IN ({placeholders})"
        params: List[Any] = list(workout_ids)

        if completion_status:
            query += " AND completion_status = ?"
            params.append(completion_status)

        query += " ORDER BY workout_id, order_index"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [segment_from_row(row) for row in rows]

    # =========================================================================
    # Weekly Summaries
    # =========================================================================

    def upsert_weekly_summary(self, summary: WeeklySummaryRecord) -> WeeklySummaryRecord:
        """Insert or merge a weekly summary.

        SQLite syntax:
            INSERT INTO weekly_summaries (...) VALUES (...)
            ON CONFLICT(user_id, week_starting) DO UPDATE SET ...
        """
        week_starting = summary.week_starting.isoformat()

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO weekly_summaries
                (user_id, week_starting, week_ending, workouts_planned,
                 workouts_completed, total_duration_minutes, total_distance_km,
                 avg_readiness_score, workout_breakdown)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, week_starting) DO UPDATE SET
                    week_ending = excluded.week_ending,
                    workouts_planned = excluded.workouts_planned,
                    workouts_completed = excluded.workouts_completed,
                    total_duration_minutes = excluded.total_duration_minutes,
                    total_distance_km = excluded.total_distance_km,
                    avg_readiness_score = excluded.avg_readiness_score,
                    workout_breakdown = excluded.workout_breakdown,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    summary.user_id,
                    week_starting,
                    summary.week_ending.isoformat(),
                    summary.workouts_planned,
                    summary.workouts_completed,
                    summary.total_duration_minutes,
                    summary.total_distance_km,
                    summary.avg_readiness_score,
                    json.dumps(summary.workout_breakdown, sort_keys=True),
                ),
            )
            row = conn.execute(
                "SELECT * FROM weekly_summaries WHERE user_id = ? AND week_starting = ?",
                (summary.user_id, week_starting),
            ).fetchone()

        return summary_from_row(row)

    def get_weekly_summary(
        self,
        user_id: str,
        week_starting: Optional[date] = None,
    ) -> Optional[WeeklySummaryRecord]:
        """Get the summary for a week, or the latest one."""
        with self._get_connection() as conn:
            if week_starting is not None:
                row = conn.execute(
                    "SELECT * FROM weekly_summaries WHERE user_id = ? AND week_starting = ?",
                    (user_id, week_starting.isoformat()),
                ).fetchone()
            else:
                row = conn.execute(
                    """
                    SELECT * FROM weekly_summaries
                    WHERE user_id = ?
                    ORDER BY week_starting DESC
                    LIMIT 1
                    """,
                    (user_id,),
                ).fetchone()

        return summary_from_row(row) if row else None

    def count_weekly_summaries(self, user_id: str, week_starting: date) -> int:
        """Count stored rows for a (user, week) key."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM weekly_summaries WHERE user_id = ? AND week_starting = ?",
                (user_id, week_starting.isoformat()),
            ).fetchone()
            return row["n"]

    # =========================================================================
    # Health Check
    # =========================================================================

    def health_check(self) -> Dict[str, Any]:
        """Check database health."""
        start = time.time()
        try:
            with self._get_connection() as conn:
                version = conn.execute("SELECT sqlite_version()").fetchone()[0]
            return {
                "healthy": True,
                "backend": "sqlite",
                "version": version,
                "latency_ms": round((time.time() - start) * 1000, 2),
                "db_path": str(self.db_path),
            }
        except sqlite3.Error as e:
            return {
                "healthy": False,
                "backend": "sqlite",
                "latency_ms": round((time.time() - start) * 1000, 2),
                "error": str(e),
            }
