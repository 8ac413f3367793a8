"""
Progress service.

Handles:
- Progress reports over a date window (read-only)
- Weekly summary generation and persistence
- Weekly summary lookup
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Union
import logging

from .base import BaseService
from ..analysis.progress import ProgressReport, is_completed, summarize_progress
from ..analysis.weekly import summarize_week, week_ending_for
from ..db.adapters import SegmentRecord, WeeklySummaryRecord, WorkoutRecord, WorkoutStore
from ..exceptions import ValidationError, WeeklySummaryNotFoundError
from ..models.workouts import CompletionStatus, Granularity
from ..utils.dates import end_of_day, parse_timestamp, start_of_day, utc_now


DateLike = Union[date, datetime, str]

DEFAULT_WINDOW_DAYS = 90


def _window_bound(value: Optional[DateLike], name: str, upper: bool) -> Optional[datetime]:
    """Resolve a window bound; a date-only upper bound covers the whole day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return parse_timestamp(value)
    if isinstance(value, date):
        return end_of_day(value) if upper else start_of_day(value)

    text = str(value).strip()
    parsed = parse_timestamp(text)
    if parsed is None:
        raise ValidationError(f"Invalid {name} '{value}'", field=name)
    if len(text) == 10 and upper:
        return end_of_day(parsed.date())
    return parsed


class ProgressService(BaseService):
    """
    Service for progress analytics.

    Reads workouts and completed segments from the store, aggregates them
    with the pure functions in flexr.analysis, and persists weekly
    summaries through the store's atomic upsert.
    """

    def __init__(
        self,
        store: WorkoutStore,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(store=store, logger=logger)
        self.default_window_days = default_window_days

    def _completed_segments(self, workouts: List[WorkoutRecord]) -> List[SegmentRecord]:
        completed_ids = [w.id for w in workouts if is_completed(w)]
        if not completed_ids:
            return []
        return self._store.get_segments(
            completed_ids, completion_status=CompletionStatus.COMPLETED.value
        )

    def compute_progress(
        self,
        user_id: str,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        granularity: Union[str, Granularity] = Granularity.WEEK,
    ) -> ProgressReport:
        """
        Compute a progress report for a user.

        Args:
            user_id: Owner of the workouts
            start_date: Window start (default: end - 90 days)
            end_date: Window end, inclusive (default: now)
            granularity: 'day', 'week' or 'month'

        Returns:
            ProgressReport

        Raises:
            ValidationError: On malformed dates, an inverted window or an
                unknown granularity
            DatabaseError: If reading from the store fails
        """
        end = _window_bound(end_date, "end_date", upper=True) or utc_now()
        start = _window_bound(start_date, "start_date", upper=False) or (
            end - timedelta(days=self.default_window_days)
        )
        if start > end:
            raise ValidationError(
                "start_date must not be after end_date",
                field="start_date",
            )

        with self._data_access("load_progress_data"):
            workouts = self._store.get_workouts_range(user_id, start, end)
            segments = self._completed_segments(workouts)

        report = summarize_progress(workouts, segments, granularity)
        report.start = start
        report.end = end

        self.logger.debug(
            f"Computed progress for user {user_id}: {len(workouts)} workouts, "
            f"{len(report.timeline)} periods ({report.granularity})"
        )
        return report

    def generate_weekly_summary(
        self,
        user_id: str,
        week_starting: DateLike,
    ) -> WeeklySummaryRecord:
        """
        Build and upsert the summary for one week.

        Workouts scheduled in [week_starting, week_starting + 7 days) count
        towards the week. Calling this again for the same week overwrites
        the stored row.

        Raises:
            ValidationError: If week_starting is not a date
            DatabaseError: If the store read or upsert fails
        """
        week_start = self._coerce_week(week_starting)
        window_start = start_of_day(week_start)
        window_end = start_of_day(week_ending_for(week_start))

        with self._data_access("generate_weekly_summary"):
            workouts = self._store.get_workouts_range(
                user_id, window_start, window_end, end_inclusive=False
            )
            segments = self._completed_segments(workouts)
            summary = summarize_week(user_id, week_start, workouts, segments)
            stored = self._store.upsert_weekly_summary(summary)

        self.logger.info(
            f"Generated weekly summary for user {user_id}, week {week_start.isoformat()}"
        )
        return stored

    def get_weekly_summary(
        self,
        user_id: str,
        week_starting: Optional[DateLike] = None,
    ) -> WeeklySummaryRecord:
        """
        Get the stored summary for a week, or the latest one.

        Raises:
            WeeklySummaryNotFoundError: If no summary exists
            DatabaseError: If the store read fails
        """
        week_start = self._coerce_week(week_starting) if week_starting is not None else None

        with self._data_access("get_weekly_summary"):
            summary = self._store.get_weekly_summary(user_id, week_start)

        if summary is None:
            raise WeeklySummaryNotFoundError(
                user_id, week_start.isoformat() if week_start else None
            )
        return summary

    @staticmethod
    def _coerce_week(value: DateLike) -> date:
        if isinstance(value, datetime):
            return parse_timestamp(value).date()
        if isinstance(value, date):
            return value
        parsed = parse_timestamp(str(value).strip())
        if parsed is None:
            raise ValidationError(f"Invalid week_starting '{value}'", field="week_starting")
        return parsed.date()
