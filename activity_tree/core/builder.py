"""
Activity Tree Builder.

Turns the flat, deduplicated event list into a Project -> Section -> Item ->
SubItem tree. Placement uses the *current* hierarchy snapshot, so an item
that moved over its lifetime has all of its history filed at its present
location.

The build runs in three passes, and the order matters:

1. Project scaffolding - every owning project gets a root node and project
   events are filed on their own node.
2. Project hierarchy - child projects are moved under their parents. This
   completes before any content is placed so that lookups in pass 3 find
   projects wherever they ended up.
3. Content - sections, items (ancestor chain first) and notes are filed;
   anything without a resolvable project goes to ``other_events``.

Nodes are indexed by id as they are created, so locating a node and
mutating it are two separate steps and no node is ever placed twice.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Set

from activity_tree.core.health import HealthAnalyzer
from activity_tree.core.store import (
    ActivityTree,
    Event,
    HierarchySnapshot,
    ItemNode,
    ProjectNode,
    SectionNode,
)

logger = logging.getLogger(__name__)


class TreeBuilder:
    """
    Build an ActivityTree from events and a hierarchy snapshot.

    Parameters
    ----------
    hierarchy : HierarchySnapshot
        Current placement of items, fixed for the run
    analyzer : Optional[HealthAnalyzer]
        When given, health is attached once the content pass is done
    """

    def __init__(self, hierarchy: HierarchySnapshot, analyzer: Optional[HealthAnalyzer] = None):
        self.hierarchy = hierarchy
        self.analyzer = analyzer
        self._reset()

    def _reset(self) -> None:
        self._tree = ActivityTree()
        self._projects: Dict[str, ProjectNode] = {}
        self._items: Dict[str, ItemNode] = {}
        self._hierarchy_misses: Set[str] = set()
        self._unroutable = 0
        self._nested = 0

    def build(self, events: List[Event]) -> ActivityTree:
        """
        Build a fresh tree from a deduplicated event list.

        Parameters
        ----------
        events : List[Event]
            Events from one fetch, in any order

        Returns
        -------
        ActivityTree
            Tree holding every input event exactly once
        """
        started = datetime.now(timezone.utc)
        self._reset()
        tree = self._tree
        tree.total_count = len(events)

        self._scaffold_projects(events)
        self._nest_projects(events)
        self._place_content(events)

        if self.analyzer is not None:
            self.analyzer.attach_health(tree)

        tree.diagnostics = {
            "hierarchy_misses": len(self._hierarchy_misses),
            "unroutable_events": self._unroutable,
            "nested_projects": self._nested,
        }

        elapsed_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
        logger.info(
            f"Built activity tree in {elapsed_ms:.1f}ms: "
            f"{len(self._projects)} projects, {len(self._items)} items, "
            f"{len(tree.other_events)} other events"
        )
        if self._hierarchy_misses:
            logger.debug(
                f"{len(self._hierarchy_misses)} items missing from hierarchy, "
                f"placed under their event's project"
            )
        return tree

    # ------------------------------------------------------------------
    # Owning project resolution
    # ------------------------------------------------------------------

    def _item_project_id(self, item_id: str, declared: Optional[str]) -> Optional[str]:
        if item_id not in self.hierarchy:
            self._hierarchy_misses.add(item_id)
        return self.hierarchy.project_of(item_id) or declared

    def _owning_project_id(self, event: Event) -> Optional[str]:
        if event.object_type == "project":
            return event.object_id
        if event.object_type == "item":
            return self._item_project_id(event.object_id, event.parent_project_id)
        if event.object_type == "note" and event.parent_id:
            return self._item_project_id(event.parent_id, event.parent_project_id)
        if event.object_type in ("section", "note"):
            return event.parent_project_id
        return None

    # ------------------------------------------------------------------
    # Pass 1: scaffolding
    # ------------------------------------------------------------------

    def _ensure_project(self, project_id: str) -> ProjectNode:
        node = self._projects.get(project_id)
        if node is None:
            node = ProjectNode(id=project_id)
            self._projects[project_id] = node
            self._tree.projects[project_id] = node
        return node

    def _scaffold_projects(self, events: List[Event]) -> None:
        for event in events:
            project_id = self._owning_project_id(event)
            if project_id is None:
                continue
            node = self._ensure_project(project_id)
            if event.object_type == "project":
                node.project_events.append(event)

    # ------------------------------------------------------------------
    # Pass 2: project hierarchy
    # ------------------------------------------------------------------

    def _nest_projects(self, events: List[Event]) -> None:
        declarations = [
            e
            for e in events
            if e.object_type == "project" and e.extra_data is not None and e.extra_data.parent_id
        ]
        # The newest declaration reflects the current parent
        declarations.sort(key=lambda e: e.event_date, reverse=True)

        roots = self._tree.projects
        for event in declarations:
            child_id = event.object_id
            parent_id = event.extra_data.parent_id if event.extra_data else None
            if parent_id is None or parent_id == child_id or child_id not in roots:
                continue
            parent = self._projects.get(parent_id)
            if parent is None:
                continue
            child = roots[child_id]
            if any(p.id == parent_id for p in child.iter_projects()):
                logger.warning(f"Skipping project {child_id} -> {parent_id}: would form a cycle")
                continue
            del roots[child_id]
            parent.child_projects[child_id] = child
            self._nested += 1

    # ------------------------------------------------------------------
    # Pass 3: content
    # ------------------------------------------------------------------

    def _ensure_section(self, project: ProjectNode, section_id: str) -> SectionNode:
        section = project.sections.get(section_id)
        if section is None:
            section = SectionNode(id=section_id)
            project.sections[section_id] = section
        return section

    def _locate_item(
        self, project: ProjectNode, item_id: str, visiting: FrozenSet[str] = frozenset()
    ) -> ItemNode:
        """
        Find or create the node for an item at its current location.

        Ancestors are located (or created) first, so a sub-item is never
        attached before its parent chain exists.
        """
        node = self._items.get(item_id)
        if node is not None:
            return node

        if item_id not in self.hierarchy:
            self._hierarchy_misses.add(item_id)

        parent_id = self.hierarchy.parent_of(item_id)
        section_id = self.hierarchy.section_of(item_id)
        if parent_id and parent_id != item_id and parent_id not in visiting:
            parent = self._locate_item(project, parent_id, visiting | {item_id})
            container = parent.sub_items
        elif section_id:
            container = self._ensure_section(project, section_id).items
        else:
            container = project.items

        node = ItemNode(id=item_id)
        container[item_id] = node
        self._items[item_id] = node
        return node

    def _overflow(self, event: Event) -> None:
        self._tree.other_events.append(event)
        self._unroutable += 1

    def _place_content(self, events: List[Event]) -> None:
        for event in events:
            if event.object_type == "project":
                continue

            project_id = self._owning_project_id(event)
            project = self._projects.get(project_id) if project_id else None
            if project is None:
                self._overflow(event)
                continue

            if event.object_type == "section":
                self._ensure_section(project, event.object_id).section_events.append(event)
            elif event.object_type == "item":
                self._locate_item(project, event.object_id).item_events.append(event)
            elif event.object_type == "note":
                if event.parent_id:
                    self._locate_item(project, event.parent_id).comments.append(event)
                else:
                    project.comments.append(event)
            else:
                self._overflow(event)

        if self._unroutable:
            logger.debug(f"Routed {self._unroutable} events to other_events")


def build_tree(
    events: List[Event],
    hierarchy: Optional[HierarchySnapshot] = None,
    analyzer: Optional[HealthAnalyzer] = None,
) -> ActivityTree:
    """Build a tree in one call; see TreeBuilder."""
    return TreeBuilder(hierarchy or HierarchySnapshot.empty(), analyzer).build(events)
