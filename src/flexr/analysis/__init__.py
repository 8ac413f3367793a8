"""Progress analytics over stored workouts."""

from .progress import (
    ProgressReport,
    ProgressSummary,
    ProgressTrends,
    TimelineBucket,
    TypeBreakdown,
    build_timeline,
    classify_trends,
    period_key,
    summarize_progress,
)
from .weekly import summarize_week, week_ending_for

__all__ = [
    "ProgressReport",
    "ProgressSummary",
    "ProgressTrends",
    "TimelineBucket",
    "TypeBreakdown",
    "build_timeline",
    "classify_trends",
    "period_key",
    "summarize_progress",
    "summarize_week",
    "week_ending_for",
]
