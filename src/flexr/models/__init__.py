"""Domain enums and device sync payload models."""

from .workouts import (
    CompletionStatus,
    Granularity,
    SegmentType,
    WorkoutStatus,
    WorkoutType,
)
from .sync import (
    HeartRateAlert,
    LiveWorkoutMetrics,
    ReceivedSegment,
    ReceivedWorkout,
    SegmentCompletion,
    SegmentResult,
    WorkoutSummary,
    to_camel,
)

__all__ = [
    "CompletionStatus",
    "Granularity",
    "SegmentType",
    "WorkoutStatus",
    "WorkoutType",
    "HeartRateAlert",
    "LiveWorkoutMetrics",
    "ReceivedSegment",
    "ReceivedWorkout",
    "SegmentCompletion",
    "SegmentResult",
    "WorkoutSummary",
    "to_camel",
]
