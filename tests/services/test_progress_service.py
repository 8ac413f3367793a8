"""Tests for the progress service."""

import threading
from datetime import date
from unittest.mock import MagicMock

import pytest

from flexr.db.adapters import WorkoutStore
from flexr.exceptions import (
    DatabaseError,
    NotFoundError,
    ValidationError,
    WeeklySummaryNotFoundError,
)
from flexr.services.progress_service import ProgressService

from conftest import make_segment, make_workout, utc


@pytest.fixture
def service(store):
    return ProgressService(store)


def seed_reference_week(store):
    """3 workouts, 2 completed, completed segment distances 5.0 and 3.25."""
    run = make_workout(scheduled=utc(2024, 3, 4, 7), type="running", duration=40, readiness=70)
    hybrid = make_workout(scheduled=utc(2024, 3, 6, 7), type="hybrid", duration=50, readiness=81)
    planned = make_workout(scheduled=utc(2024, 3, 8, 7), status="scheduled", type="strength")

    store.save_workout(run, [make_segment(run.id, 0, 5.0), make_segment(run.id, 1, 9.9, status="skipped")])
    store.save_workout(hybrid, [make_segment(hybrid.id, 0, 3.25)])
    store.save_workout(planned, [make_segment(planned.id, 0, 7.0)])
    return run, hybrid, planned


class TestComputeProgress:
    """Tests for compute_progress."""

    def test_reference_scenario(self, service, store):
        seed_reference_week(store)

        report = service.compute_progress("user-1", "2024-03-01", "2024-03-31")
        data = report.to_dict()

        assert data["summary"]["totalWorkouts"] == 3
        assert data["summary"]["completedWorkouts"] == 2
        assert data["summary"]["totalDistanceKm"] == 8.3
        assert data["summary"]["completionRate"] == pytest.approx(66.7, abs=0.05)
        assert data["timeline"] == [
            {"period": "2024-W10", "workouts": 2, "distance": 8.25, "duration": 90}
        ]

    def test_empty_range(self, service):
        report = service.compute_progress("user-1", "2024-03-01", "2024-03-31")

        assert report.summary.completion_rate == 0
        assert report.summary.avg_readiness_score == 0
        assert report.timeline == []

    def test_date_only_end_includes_whole_day(self, service, store):
        store.save_workout(make_workout(scheduled=utc(2024, 3, 10, 18)))

        report = service.compute_progress("user-1", "2024-03-01", "2024-03-10")

        assert report.summary.total_workouts == 1

    def test_default_window_is_last_90_days(self, store):
        clocked = ProgressService(store, default_window_days=90)
        end = utc(2024, 6, 30)
        store.save_workout(make_workout(scheduled=utc(2024, 4, 2)))   # inside
        store.save_workout(make_workout(scheduled=utc(2024, 3, 31)))  # outside

        report = clocked.compute_progress("user-1", end_date=end)

        assert report.start == utc(2024, 4, 1)
        assert report.summary.total_workouts == 1

    def test_does_not_mutate_records(self, service, store):
        run, _, _ = seed_reference_week(store)
        before = store.get_workouts_range("user-1", utc(2024, 1, 1), utc(2025, 1, 1))

        service.compute_progress("user-1", "2024-03-01", "2024-03-31", "day")

        after = store.get_workouts_range("user-1", utc(2024, 1, 1), utc(2025, 1, 1))
        assert before == after

    def test_inverted_window_rejected(self, service):
        with pytest.raises(ValidationError):
            service.compute_progress("user-1", "2024-03-31", "2024-03-01")

    def test_malformed_date_rejected(self, service):
        with pytest.raises(ValidationError):
            service.compute_progress("user-1", "yesterday")

    def test_unknown_granularity_rejected(self, service):
        with pytest.raises(ValidationError):
            service.compute_progress("user-1", granularity="fortnight")

    def test_store_failure_becomes_database_error(self):
        store = MagicMock(spec=WorkoutStore)
        store.get_workouts_range.side_effect = RuntimeError("disk I/O error")

        with pytest.raises(DatabaseError) as exc_info:
            ProgressService(store).compute_progress("user-1")

        assert exc_info.value.status_code == 500
        assert "disk I/O error" in exc_info.value.details["reason"]

    def test_segment_failure_gives_no_partial_result(self):
        store = MagicMock(spec=WorkoutStore)
        store.get_workouts_range.return_value = [make_workout()]
        store.get_segments.side_effect = RuntimeError("timeout")

        with pytest.raises(DatabaseError):
            ProgressService(store).compute_progress("user-1")


class TestGenerateWeeklySummary:
    """Tests for weekly summary generation."""

    def test_generates_and_persists(self, service, store):
        seed_reference_week(store)

        summary = service.generate_weekly_summary("user-1", date(2024, 3, 4))

        assert summary.week_ending == date(2024, 3, 11)
        assert summary.workouts_planned == 3
        assert summary.workouts_completed == 2
        assert summary.total_distance_km == 8.25
        assert summary.workout_breakdown == {"running": 1, "hybrid": 1}
        assert store.get_weekly_summary("user-1", date(2024, 3, 4)) == summary

    def test_week_ending_is_exclusive(self, service, store):
        store.save_workout(make_workout(scheduled=utc(2024, 3, 4, 0)))
        store.save_workout(make_workout(scheduled=utc(2024, 3, 11, 0)))

        summary = service.generate_weekly_summary("user-1", "2024-03-04")

        assert summary.workouts_planned == 1

    def test_idempotent_second_call_wins(self, service, store):
        w = make_workout(scheduled=utc(2024, 3, 5), status="scheduled")
        store.save_workout(w)
        first = service.generate_weekly_summary("user-1", date(2024, 3, 4))

        store.update_workout_status(w.id, "completed")
        second = service.generate_weekly_summary("user-1", date(2024, 3, 4))

        assert first.workouts_completed == 0
        assert second.workouts_completed == 1
        assert second.id == first.id
        assert store.count_weekly_summaries("user-1", date(2024, 3, 4)) == 1

    def test_concurrent_calls_leave_one_row(self, service, store):
        seed_reference_week(store)
        errors = []

        def generate():
            try:
                service.generate_weekly_summary("user-1", date(2024, 3, 4))
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [threading.Thread(target=generate) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert store.count_weekly_summaries("user-1", date(2024, 3, 4)) == 1

    def test_upsert_failure_becomes_database_error(self):
        store = MagicMock(spec=WorkoutStore)
        store.get_workouts_range.return_value = []
        store.upsert_weekly_summary.side_effect = RuntimeError("unique violation")

        with pytest.raises(DatabaseError):
            ProgressService(store).generate_weekly_summary("user-1", date(2024, 3, 4))

    def test_invalid_week_rejected(self, service):
        with pytest.raises(ValidationError):
            service.generate_weekly_summary("user-1", "next monday")


class TestGetWeeklySummary:
    """Tests for weekly summary lookup."""

    def test_not_found(self, service):
        with pytest.raises(WeeklySummaryNotFoundError) as exc_info:
            service.get_weekly_summary("user-1")

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Weekly summary not found"

    def test_latest_and_specific_week(self, service, store):
        seed_reference_week(store)
        service.generate_weekly_summary("user-1", date(2024, 3, 4))
        service.generate_weekly_summary("user-1", date(2024, 3, 11))

        assert service.get_weekly_summary("user-1").week_starting == date(2024, 3, 11)
        assert service.get_weekly_summary("user-1", "2024-03-04").workouts_completed == 2
