"""Workout domain enums."""

from enum import Enum


class WorkoutType(str, Enum):
    """HYROX workout categories."""
    STRENGTH = "strength"
    RUNNING = "running"
    HYBRID = "hybrid"
    RECOVERY = "recovery"
    RACE_SIM = "race_sim"


TYPE_LABELS = {
    WorkoutType.STRENGTH.value: "Strength",
    WorkoutType.RUNNING.value: "Running",
    WorkoutType.HYBRID.value: "Hybrid",
    WorkoutType.RECOVERY.value: "Recovery",
    WorkoutType.RACE_SIM.value: "Race Sim",
}


class WorkoutStatus(str, Enum):
    """Lifecycle status of a workout."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class CompletionStatus(str, Enum):
    """Completion status of a single workout segment."""
    NOT_STARTED = "not_started"
    COMPLETED = "completed"
    PARTIAL = "partial"
    SKIPPED = "skipped"


class SegmentType(str, Enum):
    """Kind of work a segment prescribes."""
    WARMUP = "warmup"
    STRENGTH = "strength"
    CARDIO = "cardio"
    HYBRID = "hybrid"
    COOLDOWN = "cooldown"


class Granularity(str, Enum):
    """Bucket size for time-series progress data."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
