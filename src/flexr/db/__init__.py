"""Workout storage."""

from .adapters import (
    SegmentRecord,
    SQLiteAdapter,
    SupabaseAdapter,
    WeeklySummaryRecord,
    WorkoutRecord,
    WorkoutStore,
    get_store,
)

__all__ = [
    "SegmentRecord",
    "SQLiteAdapter",
    "SupabaseAdapter",
    "WeeklySummaryRecord",
    "WorkoutRecord",
    "WorkoutStore",
    "get_store",
]
