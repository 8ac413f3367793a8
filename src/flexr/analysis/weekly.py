"""Weekly roll-up of a user's workouts."""

from collections import Counter
from datetime import date, timedelta
from typing import Sequence

from ..db.adapters import SegmentRecord, WeeklySummaryRecord, WorkoutRecord
from .progress import average_readiness, is_completed, parse_distance

WEEK_LENGTH = timedelta(days=7)


def week_ending_for(week_starting: date) -> date:
    """First day after the week; membership is [week_starting, week_ending)."""
    return week_starting + WEEK_LENGTH


def summarize_week(
    user_id: str,
    week_starting: date,
    workouts: Sequence[WorkoutRecord],
    segments: Sequence[SegmentRecord],
) -> WeeklySummaryRecord:
    """
    Roll one week of workouts up into a summary record.

    Args:
        user_id: Owner of the workouts
        week_starting: First day of the week
        workouts: Workouts scheduled within the week
        segments: Completed segments of the completed workouts

    Returns:
        Unsaved WeeklySummaryRecord
    """
    completed = [w for w in workouts if is_completed(w)]
    breakdown = Counter(w.type for w in completed)

    return WeeklySummaryRecord(
        user_id=user_id,
        week_starting=week_starting,
        week_ending=week_ending_for(week_starting),
        workouts_planned=len(workouts),
        workouts_completed=len(completed),
        total_duration_minutes=sum(w.total_duration_minutes or 0 for w in completed),
        total_distance_km=sum(parse_distance(s.actual_distance_km) for s in segments),
        avg_readiness_score=average_readiness(completed),
        workout_breakdown=dict(breakdown),
    )
