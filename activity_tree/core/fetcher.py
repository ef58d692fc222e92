"""
Event Fetcher.

Pages through the activity log, normalizes every record as its page arrives
and drops duplicates that overlapping pages produce when the log changes
mid-fetch. Fetch errors are fatal: nothing partial is returned.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union

from activity_tree.core.config import MAX_PAGE_SIZE
from activity_tree.core.errors import FetchTimeoutError
from activity_tree.core.store import Event, EventKey, normalize_id, normalize_object_type, parse_event

logger = logging.getLogger(__name__)

DateFilter = Union[str, datetime, None]


def _format_date(value: DateFilter) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return str(value)


@dataclass
class ActivityFilters:
    """
    Optional filters for one activity fetch.

    Parameters
    ----------
    object_type : Optional[str]
        'project', 'section', 'item' or 'note' ('task'/'comment' accepted)
    object_id : Optional[str]
        Only events about this object
    event_type : Optional[str]
        Only this event type
    parent_project_id : Optional[str]
        Only events recorded under this project
    parent_id : Optional[str]
        Only events whose parent is this item
    since : Union[str, datetime, None]
        Lower date bound
    until : Union[str, datetime, None]
        Upper date bound
    limit : Optional[int]
        Overall cap on returned events (None = everything)
    include_deleted : bool
        Include events about deleted objects
    """

    object_type: Optional[str] = None
    object_id: Optional[str] = None
    event_type: Optional[str] = None
    parent_project_id: Optional[str] = None
    parent_id: Optional[str] = None
    since: DateFilter = None
    until: DateFilter = None
    limit: Optional[int] = None
    include_deleted: bool = False

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must not be negative, got {self.limit}")

    def to_params(self) -> Dict[str, Any]:
        """Query parameters shared by every page of the fetch."""
        params: Dict[str, Any] = {}
        if self.object_type:
            params["object_type"] = normalize_object_type(self.object_type)
        for name in ("object_id", "parent_project_id", "parent_id"):
            value = normalize_id(getattr(self, name))
            if value:
                params[name] = value
        if self.event_type:
            params["event_type"] = self.event_type
        since = _format_date(self.since)
        until = _format_date(self.until)
        if since:
            params["since"] = since
        if until:
            params["until"] = until
        if not self.include_deleted:
            params["exclude_deleted"] = 1
        return params


@dataclass
class FetchResult:
    """Deduplicated events from one fetch call."""

    events: List[Event] = field(default_factory=list)
    count: int = 0
    pages: int = 0
    duplicates: int = 0
    fetched: int = 0


class ActivityFetcher:
    """
    Paginating, de-duplicating reader of the activity log.

    Parameters
    ----------
    client : TodoistClient
        Anything with ``get_activity(params) -> {"events": [...]}``
    page_size : int
        Events requested per page (at most 50)
    """

    def __init__(self, client: Any, page_size: int = MAX_PAGE_SIZE):
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        self.client = client
        self.page_size = page_size

    def fetch_events(
        self,
        filters: Optional[ActivityFilters] = None,
        max_pages: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        offset: int = 0,
    ) -> FetchResult:
        """
        Fetch every matching event, page by page.

        Parameters
        ----------
        filters : Optional[ActivityFilters]
            Query filters (None = everything, deleted objects excluded)
        max_pages : Optional[int]
            Stop after this many pages even if more exist
        timeout_seconds : Optional[float]
            Abort between pages once this much time has passed
        offset : int
            Starting offset into the log

        Returns
        -------
        FetchResult
            Events in server order with duplicates removed

        Raises
        ------
        ActivityFetchError
            On any non-success response, or when the time budget runs out
        """
        filters = filters or ActivityFilters()
        base_params = filters.to_params()
        limit = filters.limit

        seen: Set[EventKey] = set()
        events: List[Event] = []
        duplicates = 0
        fetched = 0
        pages = 0
        started = time.monotonic()

        while True:
            if limit is not None and len(events) >= limit:
                break
            if max_pages is not None and pages >= max_pages:
                break
            if timeout_seconds is not None and pages:
                elapsed = time.monotonic() - started
                if elapsed > timeout_seconds:
                    raise FetchTimeoutError(elapsed, pages)

            params = dict(base_params, limit=self.page_size, offset=offset)
            payload = self.client.get_activity(params)
            raw_events = payload.get("events") or []
            pages += 1
            fetched += len(raw_events)
            offset += len(raw_events)

            for raw in raw_events:
                event = parse_event(raw)
                if event.key in seen:
                    duplicates += 1
                    continue
                seen.add(event.key)
                events.append(event)

            logger.debug(
                f"Page {pages}: {len(raw_events)} raw events, {len(events)} unique so far"
            )

            if len(raw_events) < self.page_size:
                break

        if limit is not None and len(events) > limit:
            events = events[:limit]

        if duplicates:
            logger.debug(f"Dropped {duplicates} duplicate events across {pages} pages")
        logger.info(f"Fetched {len(events)} events in {pages} pages")

        return FetchResult(
            events=events,
            count=len(events),
            pages=pages,
            duplicates=duplicates,
            fetched=fetched,
        )
