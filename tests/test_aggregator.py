"""
End-to-end tests for the Activity Aggregator against an in-memory client.
"""

import pytest

from activity_tree.core.aggregator import ActivityAggregator, RunContext, run_activity_aggregation
from activity_tree.core.config import AppConfig, HealthThresholds
from activity_tree.core.errors import ActivityFetchError
from activity_tree.core.fetcher import ActivityFilters
from activity_tree.core.projector import FocusSelector


@pytest.fixture
def config():
    return AppConfig(api_token="test-token", page_size=2, history_backoff_base=0.0)


@pytest.fixture
def client(fake_client, raw_event):
    events = [
        raw_event("project", 1, "added", "2024-02-01T09:00:00Z"),
        raw_event("section", 10, "added", "2024-02-02T09:00:00Z", parent_project_id=1),
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
        raw_event("item", 200, "added", "2024-02-06T09:00:00Z", parent_project_id=1),
    ]
    items = [
        {"id": "100", "parent_id": None, "section_id": "10", "project_id": "1"},
        {"id": "200", "parent_id": None, "section_id": None, "project_id": "1"},
    ]
    projects = [{"id": "1", "name": "Work", "parent_id": None}]
    return fake_client(events=events, items=items, projects=projects)


class TestCreateTree:
    def test_full_tree(self, config, client, now):
        tree = run_activity_aggregation(config=config, client=client, now=now)

        assert tree.total_count == 6
        assert tree.event_count() == 6
        project = tree.projects["1"]
        item = project.sections["10"].items["100"]
        assert len(item.item_events) == 2
        assert len(item.comments) == 1
        assert item.health.total_postponed_days == 15
        assert "long_postpones" in item.health.health_status
        assert "200" in project.items
        assert tree.diagnostics["duplicate_events"] == 0

    def test_pages_with_configured_size(self, config, client, now):
        run_activity_aggregation(config=config, client=client, now=now)
        assert all(call["limit"] == 2 for call in client.activity_calls)
        assert [call["offset"] for call in client.activity_calls] == [0, 2, 4, 6]

    def test_focus_on_task(self, config, client, now):
        tree = run_activity_aggregation(
            config=config, client=client, now=now, focus=FocusSelector(task_id="100")
        )
        project = tree.projects["1"]
        assert project.items == {}
        assert list(project.sections["10"].items) == ["100"]
        assert project.project_events == []

    def test_filters_passed_through(self, config, client, now):
        run_activity_aggregation(
            ActivityFilters(object_type="task", parent_project_id="1"),
            config=config,
            client=client,
            now=now,
        )
        assert client.activity_calls[0]["object_type"] == "item"
        assert client.items_calls == ["1"]

    def test_include_deleted(self, config, client, now):
        run_activity_aggregation(config=config, client=client, now=now, include_deleted=True)
        assert all("exclude_deleted" not in call for call in client.activity_calls)

    def test_custom_thresholds(self, client, now):
        config = AppConfig(api_token="t", health=HealthThresholds(long_postpone_days=20))
        tree = run_activity_aggregation(config=config, client=client, now=now)
        item = tree.projects["1"].sections["10"].items["100"]
        assert "long_postpones" not in item.health.health_status

    def test_fetch_error_propagates(self, config, client, now):
        client.failures = [ActivityFetchError(401, "Unauthorized")]
        with pytest.raises(ActivityFetchError):
            run_activity_aggregation(config=config, client=client, now=now)
        assert client.items_calls == []

    def test_fresh_context_per_run(self, config, client, now, raw_event):
        first = run_activity_aggregation(config=config, client=client, now=now)
        client.items.append({"id": "300", "section_id": "10", "project_id": "1"})
        client.events.append(raw_event("item", 300, "added", "2024-02-07T09:00:00Z"))
        second = run_activity_aggregation(config=config, client=client, now=now)

        assert "300" not in first.projects["1"].sections["10"].items
        assert "300" in second.projects["1"].sections["10"].items
        assert client.items_calls == [None, None]


class TestItemHistory:
    def test_history_and_health(self, config, client, now):
        aggregator = ActivityAggregator(RunContext.create(config, client))
        history, health = aggregator.item_history("100", now=now)

        assert history.complete
        assert len(history.item_events) == 2
        assert len(history.comments) == 1
        assert health.due_date_changes == 1
        assert health.last_activity_days == 26

    def test_unknown_item_has_no_health(self, config, client, now):
        aggregator = ActivityAggregator(RunContext.create(config, client))
        history, health = aggregator.item_history("404", now=now)
        assert history.events == []
        assert health is None
