"""
Device sync payload models.

Transient records exchanged between the watch and the phone. Field names
are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..utils.dates import utc_now


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


class SyncModel(BaseModel):
    """Base for wire payloads: camelCase aliases, either name accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Watch -> Phone
# =============================================================================


class LiveWorkoutMetrics(SyncModel):
    """Snapshot of an in-progress workout, streamed every few seconds."""

    timestamp: datetime = Field(default_factory=utc_now)
    current_segment_index: int = Field(..., ge=0)
    segment_elapsed: float = Field(..., ge=0, description="Seconds in the current segment")
    total_elapsed: float = Field(..., ge=0, description="Seconds since workout start")
    heart_rate: int = Field(..., ge=0)
    pace: Optional[float] = Field(default=None, description="Seconds per km")
    distance: Optional[float] = Field(default=None, description="Meters")
    reps: Optional[int] = None


class SegmentCompletion(SyncModel):
    """Result of one finished segment."""

    segment_index: int = Field(..., ge=0)
    segment_name: str
    completion_time: float = Field(..., ge=0, description="Seconds")
    average_heart_rate: int
    max_heart_rate: int
    timestamp: datetime = Field(default_factory=utc_now)


class SegmentResult(SyncModel):
    """Per-segment line of a workout summary."""

    index: int
    name: str
    type: str
    duration: float
    distance: Optional[float] = None
    average_heart_rate: Optional[int] = None
    calories_burned: Optional[int] = None
    completed_at: datetime


class WorkoutSummary(SyncModel):
    """Final summary of a finished workout; delivered at least once."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    workout_name: str
    date: datetime = Field(default_factory=utc_now)
    total_time: float
    segments_completed: int
    total_segments: int
    average_heart_rate: int
    max_heart_rate: int
    active_calories: int
    total_distance: float
    segment_results: List[SegmentResult] = Field(default_factory=list)


# =============================================================================
# Phone -> Watch
# =============================================================================


class ReceivedSegment(SyncModel):
    """One segment of a workout sent to the watch."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: str
    target_duration: Optional[float] = None
    target_distance: Optional[float] = None
    target_reps: Optional[int] = None
    instructions: Optional[str] = None


class ReceivedWorkout(SyncModel):
    """Workout payload pushed from the phone to the watch."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: str
    estimated_duration: float = Field(..., ge=0, description="Seconds")
    segments: List[ReceivedSegment] = Field(default_factory=list)


class HeartRateAlert(SyncModel):
    """Heart rate crossed the user's threshold."""

    current_hr: int = Field(..., alias="currentHR")
    threshold: int
    timestamp: datetime = Field(default_factory=utc_now)
