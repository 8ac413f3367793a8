"""
Progress Aggregation

Completion rates, distance/duration totals, per-type breakdowns, period
timelines and trend classification over a user's workouts.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..db.adapters import SegmentRecord, WorkoutRecord
from ..exceptions import ValidationError
from ..models.workouts import Granularity, WorkoutStatus, WorkoutType
from ..utils.dates import to_utc


# Trend windows and thresholds
TREND_WINDOW = 4
FREQUENCY_THRESHOLD = 0.5   # workouts per period
DISTANCE_THRESHOLD = 1.0    # km per period

TYPE_ORDER = [t.value for t in WorkoutType]


@dataclass
class TimelineBucket:
    """Accumulated totals for one period key."""

    period: str
    workouts: int = 0
    distance: float = 0.0
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "workouts": self.workouts,
            "distance": self.distance,
            "duration": self.duration,
        }


@dataclass
class TypeBreakdown:
    """Planned vs. completed counts for one workout type."""

    planned: int = 0
    completed: int = 0
    completion_rate: float = 0.0
    total_duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planned": self.planned,
            "completed": self.completed,
            "completionRate": self.completion_rate,
            "totalDuration": self.total_duration,
        }


@dataclass
class ProgressTrends:
    """Direction of travel: 'increasing', 'decreasing' or 'stable'."""

    workout_frequency: str = "stable"
    distance_trend: str = "stable"
    readiness_trend: str = "stable"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workoutFrequency": self.workout_frequency,
            "distanceTrend": self.distance_trend,
            "readinessTrend": self.readiness_trend,
        }


@dataclass
class ProgressSummary:
    """Headline numbers for the window."""

    total_workouts: int = 0
    completed_workouts: int = 0
    completion_rate: float = 0.0
    total_distance_km: float = 0.0
    total_duration_minutes: float = 0.0
    avg_readiness_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalWorkouts": self.total_workouts,
            "completedWorkouts": self.completed_workouts,
            "completionRate": self.completion_rate,
            "totalDistanceKm": self.total_distance_km,
            "totalDurationMinutes": self.total_duration_minutes,
            "avgReadinessScore": self.avg_readiness_score,
        }


@dataclass
class ProgressReport:
    """Complete progress report for one user and window."""

    summary: ProgressSummary
    by_type: Dict[str, TypeBreakdown]
    timeline: List[TimelineBucket]
    trends: ProgressTrends
    granularity: str = Granularity.WEEK.value
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase response shape."""
        return {
            "summary": self.summary.to_dict(),
            "byType": {k: v.to_dict() for k, v in self.by_type.items()},
            "timeline": [b.to_dict() for b in self.timeline],
            "trends": self.trends.to_dict(),
        }


def round_half_up(value: float, digits: int = 1) -> float:
    """Round with halves away from zero for positive values (8.25 -> 8.3).

    The builtin round() uses banker's rounding, which would give 8.2.
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def parse_distance(value: Any) -> float:
    """Coerce a stored distance to float; missing or non-numeric -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_granularity(granularity: Any) -> Granularity:
    try:
        return Granularity(granularity)
    except ValueError:
        raise ValidationError(
            f"Unsupported granularity '{granularity}'",
            field="granularity",
            details={"allowed": [g.value for g in Granularity]},
        )


def period_key(timestamp: datetime, granularity: Any) -> str:
    """Derive the period key for a timestamp.

    day   -> YYYY-MM-DD
    week  -> YYYY-Www (ISO-8601 week; the year is the ISO week-year, so the
             week holding Dec 30 can be "<next year>-W01")
    month -> YYYY-MM
    """
    gran = coerce_granularity(granularity)
    moment = to_utc(timestamp)

    if gran == Granularity.DAY:
        return moment.strftime("%Y-%m-%d")
    if gran == Granularity.MONTH:
        return moment.strftime("%Y-%m")

    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def completion_timestamp(workout: WorkoutRecord) -> Optional[datetime]:
    """When a completed workout counts for the timeline.

    Falls back to the scheduled date for rows completed without a stamp.
    """
    return workout.completed_at or workout.scheduled_date


def is_completed(workout: WorkoutRecord) -> bool:
    return workout.status == WorkoutStatus.COMPLETED.value


def _duration(workout: WorkoutRecord) -> float:
    return workout.total_duration_minutes or 0


def build_timeline(
    completed_workouts: Sequence[WorkoutRecord],
    segments: Iterable[SegmentRecord],
    granularity: Any,
) -> List[TimelineBucket]:
    """Group completed workouts into period buckets.

    Each segment's actual distance goes to the period of its parent
    workout. Only periods that received a workout appear; empty periods
    are not back-filled. Buckets are sorted by key, which is chronological
    for every granularity.
    """
    gran = coerce_granularity(granularity)
    buckets: Dict[str, TimelineBucket] = {}
    workout_periods: Dict[str, str] = {}

    for workout in completed_workouts:
        moment = completion_timestamp(workout)
        if moment is None:
            continue
        period = period_key(moment, gran)
        workout_periods[workout.id] = period

        bucket = buckets.setdefault(period, TimelineBucket(period=period))
        bucket.workouts += 1
        bucket.duration += _duration(workout)

    for segment in segments:
        period = workout_periods.get(segment.workout_id)
        if period is not None:
            buckets[period].distance += parse_distance(segment.actual_distance_km)

    return [buckets[key] for key in sorted(buckets)]


def _classify(delta: float, threshold: float) -> str:
    if delta > threshold:
        return "increasing"
    elif delta < -threshold:
        return "decreasing"
    return "stable"


def _window_means(values: List[float]) -> tuple:
    """Mean of the last TREND_WINDOW values and of the TREND_WINDOW before.

    With no prior periods the recent mean stands in for the prior one.
    """
    recent = values[-TREND_WINDOW:]
    older = values[-2 * TREND_WINDOW:-TREND_WINDOW]
    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older) if older else recent_avg
    return recent_avg, older_avg


def classify_trends(timeline: Sequence[TimelineBucket]) -> ProgressTrends:
    """Compare the last 4 periods against the 4 before them."""
    if len(timeline) < 2:
        return ProgressTrends()

    recent_workouts, older_workouts = _window_means([b.workouts for b in timeline])
    recent_distance, older_distance = _window_means([b.distance for b in timeline])

    return ProgressTrends(
        workout_frequency=_classify(recent_workouts - older_workouts, FREQUENCY_THRESHOLD),
        distance_trend=_classify(recent_distance - older_distance, DISTANCE_THRESHOLD),
        # TODO: add per-period readiness to TimelineBucket so this can be
        # derived from the timeline instead of always reporting "stable".
        readiness_trend="stable",
    )


def breakdown_by_type(workouts: Sequence[WorkoutRecord]) -> Dict[str, TypeBreakdown]:
    """Planned/completed counts and completed duration for every workout type."""
    result: Dict[str, TypeBreakdown] = {}

    for workout_type in TYPE_ORDER:
        typed = [w for w in workouts if w.type == workout_type]
        completed = [w for w in typed if is_completed(w)]
        result[workout_type] = TypeBreakdown(
            planned=len(typed),
            completed=len(completed),
            completion_rate=(len(completed) / len(typed)) * 100 if typed else 0.0,
            total_duration=sum(_duration(w) for w in completed),
        )

    return result


def average_readiness(workouts: Iterable[WorkoutRecord]) -> Optional[float]:
    """Mean readiness over workouts that carry a score, None if none do."""
    scores = [w.readiness_score for w in workouts if w.readiness_score is not None]
    if not scores:
        return None
    return sum(scores) / len(scores)


def summarize_progress(
    workouts: Sequence[WorkoutRecord],
    segments: Sequence[SegmentRecord],
    granularity: Any = Granularity.WEEK,
) -> ProgressReport:
    """
    Build a progress report from already-fetched records.

    Args:
        workouts: All of the user's workouts in the window
        segments: Completed segments belonging to the completed workouts
        granularity: 'day', 'week' or 'month'

    Returns:
        ProgressReport with summary, per-type breakdown, timeline and trends
    """
    gran = coerce_granularity(granularity)
    completed = [w for w in workouts if is_completed(w)]

    total_distance = sum(parse_distance(s.actual_distance_km) for s in segments)
    total_duration = sum(_duration(w) for w in completed)
    avg_readiness = average_readiness(completed)

    summary = ProgressSummary(
        total_workouts=len(workouts),
        completed_workouts=len(completed),
        completion_rate=(len(completed) / len(workouts)) * 100 if workouts else 0.0,
        total_distance_km=round_half_up(total_distance),
        total_duration_minutes=total_duration,
        avg_readiness_score=round_half_up(avg_readiness) if avg_readiness is not None else 0.0,
    )

    timeline = build_timeline(completed, segments, gran)

    return ProgressReport(
        summary=summary,
        by_type=breakdown_by_type(workouts),
        timeline=timeline,
        trends=classify_trends(timeline),
        granularity=gran.value,
    )
