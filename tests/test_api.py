"""
Tests for the FastAPI backend.
"""

import pytest
from fastapi.testclient import TestClient

from activity_tree.core.aggregator import RunContext
from activity_tree.core.config import AppConfig
from activity_tree.core.errors import ActivityFetchError
from backend import api


@pytest.fixture
def remote(fake_client, raw_event):
    return fake_client(
        events=[
            raw_event("project", 1, "added", "2024-02-01T09:00:00Z"),
            raw_event("item", 100, "added", "2024-02-03T09:00:00Z", parent_project_id=1),
            raw_event(
                "item",
                100,
                "updated",
                "2024-02-04T09:00:00Z",
                parent_project_id=1,
                extra_data={"due_date": "2024-02-20", "last_due_date": "2024-02-05"},
            ),
            raw_event("note", 900, "added", "2024-02-05T09:00:00Z", parent_project_id=1, parent_id=100),
        ],
        items=[{"id": "100", "project_id": "1"}],
        projects=[{"id": "1", "name": "Work"}],
    )


@pytest.fixture
def http(remote):
    config = AppConfig(api_token="test-token", history_backoff_base=0.0)
    api.app.dependency_overrides[api.get_context] = lambda: RunContext.create(config, remote)
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


class TestStatus:
    def test_health(self, http):
        response = http.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root_lists_endpoints(self, http):
        assert "/api/activity" in http.get("/").json()["endpoints"]


class TestActivityEndpoint:
    def test_json_tree(self, http):
        response = http.get("/api/activity")
        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 4
        item = data["projects"]["1"]["items"]["100"]
        assert len(item["item_events"]) == 2
        assert len(item["comments"]) == 1
        assert item["health"]["due_date_changes"] == 1

    def test_text_report(self, http):
        response = http.get("/api/activity", params={"format": "text"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "=== Project 1 (Work) ===" in response.text
        assert "Total activities: 4" in response.text

    def test_text_report_without_project_names(self, http, remote):
        def broken():
            raise ActivityFetchError(500, "Internal Server Error")

        remote.get_projects = broken
        response = http.get("/api/activity", params={"format": "text"})
        assert response.status_code == 200
        assert "=== Project 1 ===" in response.text

    def test_focus(self, http):
        response = http.get("/api/activity", params={"task_id": "100"})
        project = response.json()["projects"]["1"]
        assert list(project["items"]) == ["100"]
        assert project["project_events"] == []

    def test_focus_miss_is_empty(self, http):
        data = http.get("/api/activity", params={"project_id": "404"}).json()
        assert data["projects"] == {}
        assert data["other_events"] == []

    def test_two_focus_ids_rejected(self, http):
        response = http.get("/api/activity", params={"project_id": "1", "task_id": "100"})
        assert response.status_code == 400

    def test_negative_limit_rejected(self, http):
        assert http.get("/api/activity", params={"limit": -1}).status_code == 422

    def test_fetch_error_is_bad_gateway(self, http, remote):
        remote.failures = [ActivityFetchError(401, "Unauthorized")]
        response = http.get("/api/activity")
        assert response.status_code == 502
        assert response.json()["detail"] == {
            "error": "activity_fetch_failed",
            "status": 401,
            "reason": "Unauthorized",
        }

    def test_malformed_record_is_bad_gateway(self, http, remote):
        remote.events.append({"object_type": "item", "event_type": "added"})
        assert http.get("/api/activity").status_code == 502


class TestItemHistoryEndpoint:
    def test_history(self, http):
        response = http.get("/api/items/100/history")
        assert response.status_code == 200
        data = response.json()
        assert data["item_id"] == "100"
        assert data["complete"] is True
        assert len(data["item_events"]) == 2
        assert len(data["comments"]) == 1
        assert data["health"]["due_date_changes"] == 1
        assert "fetched_at" in data

    def test_partial_history(self, http, remote):
        remote.failures = [ActivityFetchError(503, "Service Unavailable") for _ in range(4)]
        data = http.get("/api/items/100/history").json()
        assert data["complete"] is False
        assert data["item_events"] == []
        assert data["health"] is None


class TestMissingToken:
    def test_context_error_is_server_error(self, monkeypatch):
        monkeypatch.setattr(api, "config", AppConfig())
        response = TestClient(api.app).get("/api/activity")
        assert response.status_code == 500
        assert "TODOIST_API_TOKEN" in response.json()["detail"]
