"""Tests for the weekly roll-up."""

from datetime import date

from flexr.analysis.weekly import summarize_week, week_ending_for

from conftest import make_segment, make_workout, utc


class TestSummarizeWeek:
    """Tests for summarize_week."""

    def test_week_ending_is_seven_days_later(self):
        assert week_ending_for(date(2024, 3, 4)) == date(2024, 3, 11)

    def test_counts_and_totals(self):
        run = make_workout(type="running", duration=40, readiness=80)
        run2 = make_workout(type="running", duration=35, readiness=None)
        hybrid = make_workout(type="hybrid", duration=60, readiness=70)
        skipped = make_workout(type="strength", status="skipped", duration=45)
        segments = [make_segment(run.id, 0, 5.0), make_segment(hybrid.id, 0, "1.5")]

        summary = summarize_week("user-1", date(2024, 3, 4), [run, run2, hybrid, skipped], segments)

        assert summary.user_id == "user-1"
        assert summary.week_ending == date(2024, 3, 11)
        assert summary.workouts_planned == 4
        assert summary.workouts_completed == 3
        assert summary.total_duration_minutes == 135
        assert summary.total_distance_km == 6.5
        assert summary.avg_readiness_score == 75.0
        assert summary.workout_breakdown == {"running": 2, "hybrid": 1}

    def test_no_completed_workouts(self):
        planned = make_workout(status="scheduled", scheduled=utc(2024, 3, 5), readiness=90)

        summary = summarize_week("user-1", date(2024, 3, 4), [planned], [])

        assert summary.workouts_planned == 1
        assert summary.workouts_completed == 0
        assert summary.avg_readiness_score is None
        assert summary.workout_breakdown == {}
