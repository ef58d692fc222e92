"""
Per-item history helpers.

``ItemHistoryFetcher`` pulls the complete event history of one item (its
own events plus its notes) with bounded retries. Unlike the main fetch it
is best-effort: once the retry budget is spent it returns what it has.

``ProjectPathCache`` resolves project ids to human-readable name paths
("Work » Backend") for reports. Both are owned by one run context.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from activity_tree.core.errors import ActivityFetchError
from activity_tree.core.fetcher import ActivityFetcher, ActivityFilters, FetchResult
from activity_tree.core.store import Event, EventKey, normalize_id

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " » "


@dataclass
class ItemHistory:
    """
    Events gathered for one item.

    Parameters
    ----------
    item_id : str
        The item
    events : List[Event]
        Item events and note events, oldest first
    complete : bool
        False when retries ran out before every page was read
    attempts : int
        Total page requests made, retries included
    """

    item_id: str
    events: List[Event] = field(default_factory=list)
    complete: bool = True
    attempts: int = 0

    @property
    def item_events(self) -> List[Event]:
        return [e for e in self.events if e.object_type == "item"]

    @property
    def comments(self) -> List[Event]:
        return [e for e in self.events if e.object_type == "note"]


class ItemHistoryFetcher:
    """
    Fetch one item's full history with exponential-backoff retries.

    Parameters
    ----------
    fetcher : ActivityFetcher
        Page reader to use
    max_retries : int
        Retries per page after the first attempt
    backoff_base : float
        Delay before retry n is ``backoff_base * 2 ** n`` seconds
    sleep : Callable[[float], None]
        Injected for tests
    """

    def __init__(
        self,
        fetcher: ActivityFetcher,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.fetcher = fetcher
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.sleep = sleep

    def fetch_item_history(self, item_id: str, page_limit: Optional[int] = None) -> ItemHistory:
        """
        Gather every event about an item and its notes.

        Parameters
        ----------
        item_id : str
            Item to fetch
        page_limit : Optional[int]
            Maximum pages per query (None = until exhausted)

        Returns
        -------
        ItemHistory
            Possibly partial history; check ``complete``
        """
        normalized = normalize_id(item_id)
        if normalized is None:
            raise ValueError("item_id is required")

        history = ItemHistory(item_id=normalized)
        seen: Set[EventKey] = set()
        queries = (
            ActivityFilters(object_type="item", object_id=normalized, include_deleted=True),
            ActivityFilters(object_type="note", parent_id=normalized, include_deleted=True),
        )
        for filters in queries:
            if not self._collect(filters, history, seen, page_limit):
                history.complete = False
                break

        history.events.sort(key=lambda e: e.event_date)
        if not history.complete:
            logger.warning(
                f"History for item {normalized} is partial: "
                f"{len(history.events)} events after {history.attempts} attempts"
            )
        return history

    def _collect(
        self,
        filters: ActivityFilters,
        history: ItemHistory,
        seen: Set[EventKey],
        page_limit: Optional[int],
    ) -> bool:
        offset = 0
        pages = 0
        while page_limit is None or pages < page_limit:
            result = self._fetch_page(filters, offset, history)
            if result is None:
                return False
            pages += 1
            for event in result.events:
                if event.key not in seen:
                    seen.add(event.key)
                    history.events.append(event)
            offset += result.fetched
            if result.fetched < self.fetcher.page_size:
                break
        return True

    def _fetch_page(
        self, filters: ActivityFilters, offset: int, history: ItemHistory
    ) -> Optional[FetchResult]:
        attempt = 0
        while True:
            history.attempts += 1
            try:
                return self.fetcher.fetch_events(filters, max_pages=1, offset=offset)
            except ActivityFetchError as e:
                if attempt >= self.max_retries:
                    logger.warning(f"Giving up on history page at offset {offset}: {e}")
                    return None
                delay = self.backoff_base * (2 ** attempt)
                logger.debug(f"History fetch failed ({e}), retrying in {delay:.1f}s")
                self.sleep(delay)
                attempt += 1


class ProjectPathCache:
    """
    Lazily built map of project id -> name path.

    Parameters
    ----------
    client : TodoistClient
        Anything with ``get_projects() -> [dict]``
    """

    def __init__(self, client: Any):
        self.client = client
        self._paths: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        projects = {}
        for raw in self.client.get_projects():
            project_id = normalize_id(raw.get("id"))
            if project_id:
                projects[project_id] = raw

        paths: Dict[str, str] = {}
        for project_id, raw in projects.items():
            segments = [str(raw.get("name", project_id))]
            visited = {project_id}
            parent_id = normalize_id(raw.get("parent_id"))
            while parent_id and parent_id in projects and parent_id not in visited:
                visited.add(parent_id)
                parent = projects[parent_id]
                segments.insert(0, str(parent.get("name", parent_id)))
                parent_id = normalize_id(parent.get("parent_id"))
            paths[project_id] = PATH_SEPARATOR.join(segments)

        logger.info(f"Resolved name paths for {len(paths)} projects")
        return paths

    def paths(self) -> Dict[str, str]:
        if self._paths is None:
            self._paths = self._load()
        return self._paths

    def path_of(self, project_id: Optional[str]) -> Optional[str]:
        normalized = normalize_id(project_id)
        if normalized is None:
            return None
        return self.paths().get(normalized)
