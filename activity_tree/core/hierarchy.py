"""
Hierarchy Index.

Snapshots the *current* parent/section/project placement of every item so
the tree builder can file historical events. One index belongs to one run:
snapshots are cached per scope for the run and never refreshed.
"""

import logging
from typing import Any, Dict, Optional

from activity_tree.core.store import HierarchyRecord, HierarchySnapshot, normalize_id

logger = logging.getLogger(__name__)

ALL_PROJECTS_SCOPE = "__all__"


class HierarchyIndex:
    """
    Per-run cache of hierarchy snapshots keyed by scope.

    Parameters
    ----------
    client : TodoistClient
        Anything with ``get_items(project_id=None) -> [dict]``
    """

    def __init__(self, client: Any):
        self.client = client
        self._snapshots: Dict[str, HierarchySnapshot] = {}

    def build_index(self, project_id: Optional[str] = None) -> HierarchySnapshot:
        """
        Return the hierarchy snapshot for a scope, fetching it on first use.

        Parameters
        ----------
        project_id : Optional[str]
            Restrict to one project (None = all projects)

        Returns
        -------
        HierarchySnapshot
            Immutable item id -> placement map

        Raises
        ------
        ActivityFetchError
            If the item listing cannot be fetched
        """
        scope = normalize_id(project_id) or ALL_PROJECTS_SCOPE
        cached = self._snapshots.get(scope)
        if cached is not None:
            return cached

        raw_items = self.client.get_items(project_id=None if scope == ALL_PROJECTS_SCOPE else scope)

        records: Dict[str, HierarchyRecord] = {}
        for raw in raw_items:
            item_id = normalize_id(raw.get("id"))
            if item_id is None:
                continue
            records[item_id] = HierarchyRecord(
                id=item_id,
                parent_id=normalize_id(raw.get("parent_id")),
                section_id=normalize_id(raw.get("section_id")),
                project_id=normalize_id(raw.get("project_id")),
            )

        snapshot = HierarchySnapshot(records, scope=scope)
        self._snapshots[scope] = snapshot
        logger.info(f"Built hierarchy snapshot for scope {scope}: {len(snapshot)} items")
        return snapshot
