"""Tests for the analytics API endpoints."""

import pytest
from fastapi.testclient import TestClient

from flexr.api.deps import get_progress_service, get_workout_store
from flexr.main import app
from flexr.services.progress_service import ProgressService

from conftest import make_segment, make_workout, utc


BASE = "/api/v1/analytics"
HEADERS = {"X-User-Id": "user-1"}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def client(store):
    """Test client wired to a temporary store."""
    service = ProgressService(store)
    app.dependency_overrides[get_workout_store] = lambda: store
    app.dependency_overrides[get_progress_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(store):
    run = make_workout(scheduled=utc(2024, 3, 4, 7), type="running", duration=40, readiness=70)
    hybrid = make_workout(scheduled=utc(2024, 3, 6, 7), type="hybrid", duration=50, readiness=81)
    planned = make_workout(scheduled=utc(2024, 3, 8, 7), status="scheduled", type="strength")
    store.save_workout(run, [make_segment(run.id, 0, 5.0)])
    store.save_workout(hybrid, [make_segment(hybrid.id, 0, 3.25)])
    store.save_workout(planned)
    return store


# ============================================================================
# Progress
# ============================================================================

class TestProgressEndpoint:
    """Tests for GET /progress."""

    def test_requires_user_header(self, client):
        response = client.get(f"{BASE}/progress")

        assert response.status_code == 401
        assert response.json() == {
            "error": {"code": "UNAUTHORIZED", "message": "Missing X-User-Id header"}
        }

    def test_blank_user_header_rejected(self, client):
        response = client.post(
            f"{BASE}/weekly-summary",
            json={"weekStarting": "2024-03-04"},
            headers={"X-User-Id": "   "},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_progress_shape(self, client, seeded):
        response = client.get(
            f"{BASE}/progress",
            params={"startDate": "2024-03-01", "endDate": "2024-03-31"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert set(data) == {"summary", "byType", "timeline", "trends"}
        assert data["summary"]["totalDistanceKm"] == 8.3
        assert data["summary"]["completedWorkouts"] == 2
        assert data["byType"]["strength"] == {
            "planned": 1,
            "completed": 0,
            "completionRate": 0,
            "totalDuration": 0,
        }
        assert data["timeline"][0]["period"] == "2024-W10"
        assert data["trends"]["readinessTrend"] == "stable"

    def test_other_users_data_is_invisible(self, client, seeded):
        response = client.get(
            f"{BASE}/progress",
            params={"startDate": "2024-03-01", "endDate": "2024-03-31"},
            headers={"X-User-Id": "user-2"},
        )

        assert response.json()["data"]["summary"]["totalWorkouts"] == 0

    def test_invalid_granularity(self, client):
        response = client.get(
            f"{BASE}/progress", params={"granularity": "year"}, headers=HEADERS
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_invalid_date(self, client):
        response = client.get(
            f"{BASE}/progress", params={"startDate": "soon"}, headers=HEADERS
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# ============================================================================
# Weekly summaries
# ============================================================================

class TestWeeklySummaryEndpoints:
    """Tests for GET and POST /weekly-summary."""

    def test_missing_summary_is_404(self, client):
        response = client.get(f"{BASE}/weekly-summary", headers=HEADERS)

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "WEEKLY_SUMMARY_NOT_FOUND"
        assert error["message"] == "Weekly summary not found"

    def test_generate_then_fetch(self, client, seeded):
        created = client.post(
            f"{BASE}/weekly-summary", json={"weekStarting": "2024-03-04"}, headers=HEADERS
        )

        assert created.status_code == 200
        summary = created.json()["data"]["summary"]
        assert summary["week_ending"] == "2024-03-11"
        assert summary["workouts_planned"] == 3
        assert summary["workouts_completed"] == 2
        assert summary["workout_breakdown"] == {"running": 1, "hybrid": 1}

        fetched = client.get(
            f"{BASE}/weekly-summary", params={"weekStarting": "2024-03-04"}, headers=HEADERS
        )
        assert fetched.json()["data"]["summary"] == summary

    def test_regenerate_keeps_one_row(self, client, seeded):
        for _ in range(3):
            client.post(f"{BASE}/weekly-summary", json={"weekStarting": "2024-03-04"}, headers=HEADERS)

        assert seeded.count_weekly_summaries("user-1", utc(2024, 3, 4).date()) == 1

    def test_generate_requires_week(self, client):
        response = client.post(f"{BASE}/weekly-summary", json={}, headers=HEADERS)
        assert response.status_code == 422


class TestHealth:
    """Tests for the health endpoint."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"]["backend"] == "sqlite"
