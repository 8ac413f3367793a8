"""Shared fixtures: temporary SQLite stores and record factories."""

from datetime import datetime, timezone
from itertools import count

import pytest

from flexr.db.adapters import SegmentRecord, SQLiteAdapter, WorkoutRecord

_ids = count(1)


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_workout(
    user_id="user-1",
    scheduled=None,
    status="completed",
    type="running",
    duration=None,
    readiness=None,
    completed_at=None,
    workout_id=None,
):
    """Build a WorkoutRecord; completed workouts default completed_at to the schedule."""
    scheduled = scheduled or utc(2024, 3, 4, 8)
    if status == "completed" and completed_at is None:
        completed_at = scheduled
    return WorkoutRecord(
        id=workout_id or f"w-{next(_ids)}",
        user_id=user_id,
        type=type,
        status=status,
        scheduled_date=scheduled,
        title=f"{type} session",
        total_duration_minutes=duration,
        readiness_score=readiness,
        completed_at=completed_at,
    )


def make_segment(workout_id, order_index=0, distance=None, status="completed"):
    return SegmentRecord(
        id=f"{workout_id}-s{order_index}",
        workout_id=workout_id,
        order_index=order_index,
        name=f"Segment {order_index + 1}",
        segment_type="cardio",
        actual_distance_km=distance,
        completion_status=status,
    )


@pytest.fixture
def store(tmp_path):
    """Initialized SQLite store in a temporary directory."""
    adapter = SQLiteAdapter(db_path=str(tmp_path / "flexr-test.db"))
    adapter.initialize()
    yield adapter
    adapter.close()
