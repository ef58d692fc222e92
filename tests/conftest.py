"""Shared fixtures: in-memory stand-ins for the remote task-tracking service."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_raw_event(
    object_type: str,
    object_id: Any,
    event_type: str = "added",
    event_date: str = "2024-02-20T10:00:00Z",
    **fields: Any,
) -> Dict[str, Any]:
    raw = {
        "object_type": object_type,
        "object_id": object_id,
        "event_type": event_type,
        "event_date": event_date,
    }
    raw.update(fields)
    return raw


class FakeClient:
    """
    Serves activity pages, items and projects from lists.

    ``failures`` is a queue of exceptions raised by successive
    ``get_activity`` calls before normal answers resume.
    """

    def __init__(
        self,
        events: Optional[List[Dict[str, Any]]] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        projects: Optional[List[Dict[str, Any]]] = None,
        failures: Optional[List[Exception]] = None,
    ):
        self.events = list(events or [])
        self.items = list(items or [])
        self.projects = list(projects or [])
        self.failures = list(failures or [])
        self.activity_calls: List[Dict[str, Any]] = []
        self.items_calls: List[Optional[str]] = []
        self.projects_calls = 0

    def get_activity(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.activity_calls.append(dict(params))
        if self.failures:
            raise self.failures.pop(0)
        matching = [
            raw
            for raw in self.events
            if all(
                str(raw.get(key)) == str(params[key])
                for key in ("object_type", "object_id", "parent_id", "event_type")
                if key in params
            )
        ]
        offset = params.get("offset", 0)
        limit = params.get("limit", 50)
        return {"events": matching[offset : offset + limit], "count": len(matching)}

    def get_items(self, project_id: Optional[str] = None) -> List[Dict[str, Any]]:
        self.items_calls.append(project_id)
        return [i for i in self.items if project_id is None or str(i.get("project_id")) == project_id]

    def get_projects(self) -> List[Dict[str, Any]]:
        self.projects_calls += 1
        return list(self.projects)


class PagedClient:
    """Returns pre-built pages in order, regardless of the offset asked for."""

    def __init__(self, pages: List[List[Dict[str, Any]]]):
        self.pages = list(pages)
        self.calls: List[Dict[str, Any]] = []

    def get_activity(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(dict(params))
        index = len(self.calls) - 1
        events = self.pages[index] if index < len(self.pages) else []
        return {"events": events}


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def raw_event():
    """Factory for raw activity records as the API sends them."""
    return make_raw_event


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def paged_client():
    return PagedClient
