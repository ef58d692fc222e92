"""
Tests for the paginating, de-duplicating Event Fetcher.
"""

from unittest.mock import patch

import pytest

from activity_tree.core.errors import ActivityFetchError, FetchTimeoutError
from activity_tree.core.fetcher import ActivityFetcher, ActivityFilters


def _page(raw_event, start, count, day="2024-02-20"):
    return [
        raw_event("item", n, "updated", f"{day}T10:{n % 60:02d}:00Z", parent_project_id=1)
        for n in range(start, start + count)
    ]


class TestPagination:
    def test_stops_on_short_page(self, raw_event, paged_client):
        client = paged_client([_page(raw_event, 0, 3), _page(raw_event, 3, 3)])
        result = ActivityFetcher(client, page_size=3).fetch_events()

        # Page 2 is full-sized, so a third (empty) page is requested
        assert len(client.calls) == 3
        assert result.count == 6

    def test_offsets_advance(self, raw_event, paged_client):
        client = paged_client([_page(raw_event, 0, 2), _page(raw_event, 2, 1)])
        ActivityFetcher(client, page_size=2).fetch_events()
        assert [c["offset"] for c in client.calls] == [0, 2]
        assert all(c["limit"] == 2 for c in client.calls)

    def test_max_pages(self, raw_event, paged_client):
        client = paged_client([_page(raw_event, 0, 2)] * 5)
        result = ActivityFetcher(client, page_size=2).fetch_events(max_pages=1)
        assert len(client.calls) == 1
        assert result.pages == 1

    def test_page_size_bounded(self, paged_client):
        with pytest.raises(ValueError):
            ActivityFetcher(paged_client([]), page_size=51)


class TestDeduplication:
    def test_overlapping_pages_deduplicated(self, raw_event, paged_client):
        # An insert mid-fetch shifts the log: page two repeats one record
        first = _page(raw_event, 0, 3)
        second = [first[-1]] + _page(raw_event, 3, 1)
        client = paged_client([first, second])

        result = ActivityFetcher(client, page_size=3).fetch_events()

        assert [e.object_id for e in result.events] == ["0", "1", "2", "3"]
        assert result.duplicates == 1

    def test_result_independent_of_page_boundaries(self, raw_event, paged_client):
        records = _page(raw_event, 0, 4)
        overlapping = [records[:3], records[2:4]]
        distinct_keys = {(r["object_type"], str(r["object_id"]), r["event_type"], r["event_date"]) for r in records}

        for page_size in (2, 3):
            pages = [records[i : i + page_size] for i in range(0, len(records), page_size)]
            for layout in (pages, overlapping):
                client = paged_client(layout + layout)
                result = ActivityFetcher(client, page_size=max(len(p) for p in layout)).fetch_events()
                assert result.count == len(distinct_keys)

    def test_numeric_and_string_ids_are_the_same_event(self, raw_event, paged_client):
        client = paged_client(
            [[raw_event("item", 5, "added", "2024-01-01T00:00:00Z"), raw_event("item", "5", "added", "2024-01-01T00:00:00Z")]]
        )
        result = ActivityFetcher(client, page_size=50).fetch_events()
        assert result.count == 1

    def test_seen_set_not_shared_between_calls(self, raw_event, paged_client):
        page = _page(raw_event, 0, 2)
        client = paged_client([page, page])
        fetcher = ActivityFetcher(client, page_size=5)
        assert fetcher.fetch_events().count == 2
        assert fetcher.fetch_events().count == 2


class TestLimit:
    def test_truncates_mid_page(self, raw_event, paged_client):
        client = paged_client([_page(raw_event, 0, 3), _page(raw_event, 3, 3), _page(raw_event, 6, 3)])
        result = ActivityFetcher(client, page_size=3).fetch_events(ActivityFilters(limit=4))
        assert result.count == 4
        assert len(client.calls) == 2

    def test_limit_zero_fetches_nothing(self, paged_client):
        client = paged_client([])
        assert ActivityFetcher(client).fetch_events(ActivityFilters(limit=0)).count == 0
        assert client.calls == []


class TestFilters:
    def test_params(self):
        params = ActivityFilters(
            object_type="task", object_id=12, event_type="completed", since="2024-01-01"
        ).to_params()
        assert params == {
            "object_type": "item",
            "object_id": "12",
            "event_type": "completed",
            "since": "2024-01-01",
            "exclude_deleted": 1,
        }

    def test_include_deleted_drops_exclusion(self):
        assert "exclude_deleted" not in ActivityFilters(include_deleted=True).to_params()

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            ActivityFilters(limit=-1)


class TestErrors:
    def test_fetch_error_aborts_without_partial_result(self, raw_event, fake_client):
        client = fake_client(events=_page(raw_event, 0, 2))
        client.failures = [ActivityFetchError(503, "Service Unavailable")]
        with pytest.raises(ActivityFetchError) as exc:
            ActivityFetcher(client, page_size=2).fetch_events()
        assert exc.value.status == 503
        assert "Service Unavailable" in str(exc.value)

    def test_timeout_checked_between_pages(self, raw_event, paged_client):
        client = paged_client([_page(raw_event, 0, 2)] * 3)
        clock = iter([0.0, 100.0, 200.0])
        with patch("activity_tree.core.fetcher.time.monotonic", side_effect=lambda: next(clock)):
            with pytest.raises(FetchTimeoutError) as exc:
                ActivityFetcher(client, page_size=2).fetch_events(timeout_seconds=10)
        assert exc.value.pages_fetched == 1
        assert len(client.calls) == 1
