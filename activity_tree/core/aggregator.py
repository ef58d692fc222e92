"""
Activity Aggregator for the Activity Tree.

This module wires the components into one aggregation run:

1. Fetch the deduplicated activity log (Event Fetcher)
2. Snapshot the current item hierarchy (Hierarchy Index)
3. Build the Project/Section/Item tree (Tree Builder)
4. Attach per-item health indicators (Health Analyzer)
5. Optionally cut out one project/section/item (Subtree Projector)

Every run gets a fresh RunContext, so hierarchy snapshots, project paths and
de-duplication state never leak from one request into the next.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from activity_tree.core.builder import TreeBuilder
from activity_tree.core.client import TodoistClient
from activity_tree.core.config import AppConfig, HealthThresholds, load_config
from activity_tree.core.fetcher import ActivityFetcher, ActivityFilters
from activity_tree.core.health import HealthAnalyzer, analyze_item_health
from activity_tree.core.hierarchy import HierarchyIndex
from activity_tree.core.history import ItemHistory, ItemHistoryFetcher, ProjectPathCache
from activity_tree.core.projector import FocusSelector, project_tree
from activity_tree.core.store import ActivityTree, Event, HealthIndicator

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """
    Everything one aggregation run owns.

    Parameters
    ----------
    config : AppConfig
        Settings for the run
    client : TodoistClient
        Remote read API
    fetcher : ActivityFetcher
        Activity log reader
    hierarchy : HierarchyIndex
        Hierarchy snapshots cached for this run only
    project_paths : ProjectPathCache
        Project name paths cached for this run only
    history : ItemHistoryFetcher
        Best-effort per-item history reader
    """

    config: AppConfig
    client: Any
    fetcher: ActivityFetcher
    hierarchy: HierarchyIndex
    project_paths: ProjectPathCache
    history: ItemHistoryFetcher

    @classmethod
    def create(cls, config: Optional[AppConfig] = None, client: Any = None) -> "RunContext":
        """Build a fresh context; the client is created from config when omitted."""
        config = config or load_config()
        if client is None:
            client = TodoistClient(config)
        fetcher = ActivityFetcher(client, page_size=config.page_size)
        return cls(
            config=config,
            client=client,
            fetcher=fetcher,
            hierarchy=HierarchyIndex(client),
            project_paths=ProjectPathCache(client),
            history=ItemHistoryFetcher(
                fetcher,
                max_retries=config.history_max_retries,
                backoff_base=config.history_backoff_base,
            ),
        )


class ActivityAggregator:
    """
    Single entry point that turns the activity log into an ActivityTree.

    Parameters
    ----------
    context : RunContext
        Per-run collaborators; do not share one aggregator across requests
    """

    def __init__(self, context: RunContext):
        self.context = context

    def create_tree(
        self,
        filters: Optional[ActivityFilters] = None,
        focus: Optional[FocusSelector] = None,
        include_children: bool = False,
        include_deleted: bool = False,
        now: Optional[datetime] = None,
        max_pages: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> ActivityTree:
        """
        Run one complete aggregation.

        Parameters
        ----------
        filters : Optional[ActivityFilters]
            Activity log filters (None = everything)
        focus : Optional[FocusSelector]
            Subtree to keep (None = whole tree)
        include_children : bool
            Keep the focused node's descendants
        include_deleted : bool
            Include events about deleted objects
        now : Optional[datetime]
            Reference time for idleness (current UTC time when omitted)
        max_pages : Optional[int]
            Cap on activity pages read
        timeout_seconds : Optional[float]
            Abort the fetch between pages after this long

        Returns
        -------
        ActivityTree
            Built, health-annotated and (optionally) projected tree

        Raises
        ------
        ActivityFetchError
            If any remote listing fails; no partial tree is returned
        """
        run_start = datetime.now(timezone.utc)
        filters = filters or ActivityFilters()
        if include_deleted and not filters.include_deleted:
            filters = replace(filters, include_deleted=True)

        logger.info(f"Starting aggregation: filters={filters}, focus={focus}")

        # Step 1: Fetch deduplicated events
        result = self.context.fetcher.fetch_events(
            filters, max_pages=max_pages, timeout_seconds=timeout_seconds
        )

        # Step 2: Snapshot the current hierarchy once for the whole build
        hierarchy = self.context.hierarchy.build_index(filters.parent_project_id)

        # Step 3 + 4: Build the tree and attach health
        analyzer = HealthAnalyzer(self.context.config.health, now=now)
        tree = TreeBuilder(hierarchy, analyzer).build(result.events)
        tree.diagnostics["duplicate_events"] = result.duplicates

        # Step 5: Projection
        tree = project_tree(tree, focus, include_children)

        elapsed_ms = (datetime.now(timezone.utc) - run_start).total_seconds() * 1000
        logger.info(
            f"Aggregation finished in {elapsed_ms:.1f}ms: "
            f"{result.count} events, {len(tree.projects)} root projects"
        )
        return tree

    def item_history(
        self, item_id: str, now: Optional[datetime] = None
    ) -> Tuple[ItemHistory, Optional[HealthIndicator]]:
        """
        Fetch one item's full history and analyze it.

        Returns
        -------
        Tuple[ItemHistory, Optional[HealthIndicator]]
            The (possibly partial) history and its health indicator
        """
        history = self.context.history.fetch_item_history(item_id)
        health = analyze_item_health(history.item_events, self.context.config.health, now=now)
        return history, health


def run_activity_aggregation(
    filters: Optional[ActivityFilters] = None,
    focus: Optional[FocusSelector] = None,
    include_children: bool = False,
    include_deleted: bool = False,
    config: Optional[AppConfig] = None,
    client: Any = None,
    now: Optional[datetime] = None,
) -> ActivityTree:
    """
    Aggregate the activity log into a tree with a fresh run context.

    See ActivityAggregator.create_tree for parameters.
    """
    context = RunContext.create(config, client)
    return ActivityAggregator(context).create_tree(
        filters,
        focus=focus,
        include_children=include_children,
        include_deleted=include_deleted,
        now=now,
    )


def run_health_only(
    item_events: List[Event],
    thresholds: Optional[HealthThresholds] = None,
    now: Optional[datetime] = None,
) -> Optional[HealthIndicator]:
    """Analyze an ad hoc list of one item's events without building a tree."""
    return analyze_item_health(item_events, thresholds, now=now)
