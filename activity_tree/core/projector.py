"""
Subtree Projector.

Extracts the part of a built tree that one focus selector points at: a
project, a section or a single item, with or without its descendants. A
selector that matches nothing yields an empty tree rather than an error.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from activity_tree.core.store import ActivityTree, ItemNode, ProjectNode, SectionNode, normalize_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FocusSelector:
    """
    Which subtree to keep. At most one field may be set.

    Parameters
    ----------
    project_id : Optional[str]
        Keep one project
    section_id : Optional[str]
        Keep one section
    task_id : Optional[str]
        Keep one item
    """

    project_id: Optional[str] = None
    section_id: Optional[str] = None
    task_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Normalize ids and enforce mutual exclusion."""
        for name in ("project_id", "section_id", "task_id"):
            object.__setattr__(self, name, normalize_id(getattr(self, name)))
        chosen = [n for n in ("project_id", "section_id", "task_id") if getattr(self, n)]
        if len(chosen) > 1:
            raise ValueError(f"Only one focus may be set, got {', '.join(chosen)}")

    def is_empty(self) -> bool:
        return not (self.project_id or self.section_id or self.task_id)


def find_project(tree: ActivityTree, project_id: str) -> Optional[ProjectNode]:
    """Depth-first search through root and nested child projects."""
    for project in tree.iter_projects():
        if project.id == project_id:
            return project
    return None


def find_section(tree: ActivityTree, section_id: str) -> Optional[Tuple[ProjectNode, SectionNode]]:
    for project in tree.iter_projects():
        section = project.sections.get(section_id)
        if section is not None:
            return project, section
    return None


def _search_items(items: Dict[str, ItemNode], task_id: str) -> Optional[ItemNode]:
    for item in items.values():
        for candidate in item.iter_items():
            if candidate.id == task_id:
                return candidate
    return None


def find_item(
    tree: ActivityTree, task_id: str
) -> Optional[Tuple[ProjectNode, Optional[SectionNode], ItemNode]]:
    """
    Locate an item anywhere in the tree.

    Returns
    -------
    Optional[Tuple[ProjectNode, Optional[SectionNode], ItemNode]]
        Owning project, containing section (None for direct project items)
        and the item itself; None when absent
    """
    for project in tree.iter_projects():
        found = _search_items(project.items, task_id)
        if found is not None:
            return project, None, found
        for section in project.sections.values():
            found = _search_items(section.items, task_id)
            if found is not None:
                return project, section, found
    return None


def _prune_item(item: ItemNode, include_children: bool) -> ItemNode:
    if include_children:
        return item
    return replace(item, sub_items={})


def _wrap(project: ProjectNode, source: ActivityTree) -> ActivityTree:
    return ActivityTree(
        projects={project.id: project},
        total_count=project.event_count(),
        diagnostics=dict(source.diagnostics),
    )


def project_tree(
    tree: ActivityTree,
    focus: Optional[FocusSelector],
    include_children: bool = False,
) -> ActivityTree:
    """
    Extract the subtree a focus selector points at.

    Parameters
    ----------
    tree : ActivityTree
        Full tree from the builder
    focus : Optional[FocusSelector]
        What to keep; None or an empty selector returns ``tree`` unchanged
    include_children : bool
        Keep sections/child projects, section items or sub-items of the match

    Returns
    -------
    ActivityTree
        The projected tree, or an empty tree when nothing matches
    """
    if focus is None or focus.is_empty():
        return tree

    if focus.project_id:
        project = find_project(tree, focus.project_id)
        if project is not None:
            if not include_children:
                project = replace(project, sections={}, child_projects={})
            return _wrap(project, tree)

    elif focus.section_id:
        match = find_section(tree, focus.section_id)
        if match is not None:
            owner, section = match
            if not include_children:
                section = replace(section, items={})
            return _wrap(ProjectNode(id=owner.id, sections={section.id: section}), tree)

    elif focus.task_id:
        located = find_item(tree, focus.task_id)
        if located is not None:
            owner, section, item = located
            item = _prune_item(item, include_children)
            if section is not None:
                wrapper_section = SectionNode(id=section.id, items={item.id: item})
                wrapper = ProjectNode(id=owner.id, sections={section.id: wrapper_section})
            else:
                wrapper = ProjectNode(id=owner.id, items={item.id: item})
            return _wrap(wrapper, tree)

    logger.info(f"No match for focus {focus}, returning empty tree")
    return ActivityTree(diagnostics=dict(tree.diagnostics))

