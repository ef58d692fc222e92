"""
Report Renderer.

Serializes a (possibly projected) tree either as JSON or as an indented,
human-readable report.
"""

from typing import Dict, List, Optional

from activity_tree.core.store import ActivityTree, Event, ItemNode, ProjectNode, SectionNode

INDENT = "  "


def render_json(tree: ActivityTree) -> str:
    """Render the tree as pretty-printed JSON."""
    return tree.to_json()


def _summarize_extra(event: Event) -> str:
    extra = event.extra_data
    if extra is None:
        return ""
    parts = []
    if extra.content:
        parts.append(repr(extra.content))
    if extra.name:
        parts.append(repr(extra.name))
    if extra.due_date and extra.last_due_date:
        parts.append(f"due {extra.last_due_date.date()} -> {extra.due_date.date()}")
    elif extra.due_date:
        parts.append(f"due {extra.due_date.date()}")
    if extra.last_section_id and extra.section_id and extra.last_section_id != extra.section_id:
        parts.append(f"section {extra.last_section_id} -> {extra.section_id}")
    return f" {' '.join(parts)}" if parts else ""


def _event_line(event: Event, depth: int) -> str:
    stamp = event.event_date.strftime("%Y-%m-%d %H:%M")
    return f"{INDENT * depth}- [{stamp}] {event.event_type}{_summarize_extra(event)}"


def _render_item(item: ItemNode, depth: int, lines: List[str]) -> None:
    lines.append(f"{INDENT * depth}Item {item.id}:")
    for event in item.item_events:
        lines.append(_event_line(event, depth + 1))
    if item.health is not None:
        health = item.health
        tags = ", ".join(sorted(health.health_status)) or "ok"
        lines.append(
            f"{INDENT * (depth + 1)}Health: {tags} "
            f"(idle {health.last_activity_days}d, "
            f"{health.due_date_changes} postponements, "
            f"avg {health.avg_postpone_days:.1f}d, "
            f"streak {health.max_consecutive_postpones})"
        )
    if item.comments:
        lines.append(f"{INDENT * (depth + 1)}Comments:")
        for comment in item.comments:
            lines.append(_event_line(comment, depth + 2))
    for child in item.sub_items.values():
        _render_item(child, depth + 1, lines)


def _render_section(section: SectionNode, depth: int, lines: List[str]) -> None:
    lines.append(f"{INDENT * depth}Section {section.id}:")
    for event in section.section_events:
        lines.append(_event_line(event, depth + 1))
    for item in section.items.values():
        _render_item(item, depth + 1, lines)


def _render_project(
    project: ProjectNode, depth: int, lines: List[str], project_paths: Dict[str, str]
) -> None:
    title = project_paths.get(project.id)
    heading = f"Project {project.id}" + (f" ({title})" if title else "")
    lines.append("")
    lines.append(f"{INDENT * depth}=== {heading} ===")

    if project.project_events:
        lines.append(f"{INDENT * depth}Project Events:")
        for event in project.project_events:
            lines.append(_event_line(event, depth + 1))
    if project.comments:
        lines.append(f"{INDENT * depth}Project Comments:")
        for comment in project.comments:
            lines.append(_event_line(comment, depth + 1))
    if project.items:
        lines.append(f"{INDENT * depth}Items:")
        for item in project.items.values():
            _render_item(item, depth + 1, lines)
    for section in project.sections.values():
        _render_section(section, depth, lines)
    for child in project.child_projects.values():
        _render_project(child, depth + 1, lines, project_paths)


def render_text(tree: ActivityTree, project_paths: Optional[Dict[str, str]] = None) -> str:
    """
    Render the tree as an indented text report.

    Parameters
    ----------
    tree : ActivityTree
        Tree to render
    project_paths : Optional[Dict[str, str]]
        Project id -> human-readable name path, shown in project headings

    Returns
    -------
    str
        Report text
    """
    if tree.is_empty():
        return "No activities found"

    paths = project_paths or {}
    lines: List[str] = []
    for project in tree.projects.values():
        _render_project(project, 0, lines, paths)

    if tree.other_events:
        lines.append("")
        lines.append("=== Other Events ===")
        for event in tree.other_events:
            lines.append(f"- {event.object_type} {event.object_id}: {event.event_type}")
            lines.append(f"  Date: {event.event_date.isoformat()}")

    lines.append("")
    lines.append(f"Total activities: {tree.total_count}")
    return "\n".join(lines).lstrip("\n")
