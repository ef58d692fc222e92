"""
Data Models for the Activity Tree.

This module defines the immutable activity events read from the remote
service, the point-in-time hierarchy snapshot used to place them, and the
mutable tree nodes the builder fills in during a single aggregation pass.

Key principles:
- ALL timestamps must be timezone-aware (UTC)
- ALL identifiers are normalized to one string form at ingestion
- Events and hierarchy snapshots never change after construction
- Tree nodes are only mutated while one aggregation run builds them
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Literal, Mapping, Optional, Set, Tuple

from activity_tree.core.errors import EventParseError

ObjectType = Literal["project", "section", "item", "note"]

OBJECT_TYPES = ("project", "section", "item", "note")

EVENT_TYPES = (
    "added",
    "updated",
    "completed",
    "uncompleted",
    "deleted",
    "archived",
    "unarchived",
)

# Names accepted from callers and older API versions
OBJECT_TYPE_ALIASES = {
    "task": "item",
    "comment": "note",
}

HEALTH_TAGS = ("idle", "long_postpones", "frequent_postpones")

EventKey = Tuple[str, str, str, datetime]


def normalize_id(value: Any) -> Optional[str]:
    """
    Normalize an identifier to its canonical string form.

    The remote service emits the same id as an int, an integral float or a
    string depending on endpoint and API version.

    Parameters
    ----------
    value : Any
        Raw identifier

    Returns
    -------
    Optional[str]
        Canonical id, or None for missing/empty values
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    text = str(value).strip()
    return text or None


def normalize_object_type(value: Any) -> str:
    """Fold object type aliases (``task``, ``comment``) to canonical names."""
    text = str(value or "").strip().lower()
    return OBJECT_TYPE_ALIASES.get(text, text)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an API timestamp into an aware UTC datetime.

    Accepts ISO 8601 with or without ``Z``, and bare ``YYYY-MM-DD`` dates
    (midnight UTC). Naive values are treated as UTC.

    Raises
    ------
    ValueError
        If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class ExtraData:
    """
    Sparse, validated view of an event's ``extra_data`` payload.

    Parameters
    ----------
    due_date : Optional[datetime]
        Due date after the change
    last_due_date : Optional[datetime]
        Due date before the change
    content : Optional[str]
        Item or note content after the change
    last_content : Optional[str]
        Content before the change
    priority : Optional[int]
        Priority after the change
    last_priority : Optional[int]
        Priority before the change
    section_id : Optional[str]
        Section after the change
    last_section_id : Optional[str]
        Section before the change
    parent_id : Optional[str]
        Parent (item or project) after the change
    last_parent_id : Optional[str]
        Parent before the change
    name : Optional[str]
        Project or section name
    other : Dict[str, Any]
        Remaining keys, kept verbatim
    """

    due_date: Optional[datetime] = None
    last_due_date: Optional[datetime] = None
    content: Optional[str] = None
    last_content: Optional[str] = None
    priority: Optional[int] = None
    last_priority: Optional[int] = None
    section_id: Optional[str] = None
    last_section_id: Optional[str] = None
    parent_id: Optional[str] = None
    last_parent_id: Optional[str] = None
    name: Optional[str] = None
    other: Dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key in (
            "due_date",
            "last_due_date",
            "content",
            "last_content",
            "priority",
            "last_priority",
            "section_id",
            "last_section_id",
            "parent_id",
            "last_parent_id",
            "name",
        ):
            value = getattr(self, key)
            if value is None:
                continue
            data[key] = value.isoformat() if isinstance(value, datetime) else value
        data.update(self.other)
        return data


_ID_FIELDS = ("section_id", "last_section_id", "parent_id", "last_parent_id")
_DATE_FIELDS = ("due_date", "last_due_date")
_TEXT_FIELDS = ("content", "last_content", "name")
_INT_FIELDS = ("priority", "last_priority")


def parse_extra_data(raw: Optional[Dict[str, Any]]) -> Optional[ExtraData]:
    """
    Validate a raw ``extra_data`` mapping.

    ``v2_*`` duplicates of fields are dropped, ids are normalized and due
    dates parsed. Returns None when nothing is left.

    Raises
    ------
    EventParseError
        If a known field holds a value of the wrong shape
    """
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise EventParseError(f"extra_data must be an object, got {type(raw).__name__}")

    values: Dict[str, Any] = {}
    other: Dict[str, Any] = {}
    for key, value in raw.items():
        if key.startswith("v2_"):
            continue
        if key in _ID_FIELDS:
            values[key] = normalize_id(value)
        elif key in _DATE_FIELDS:
            if value in (None, ""):
                continue
            try:
                values[key] = parse_timestamp(value)
            except ValueError as e:
                raise EventParseError(f"extra_data.{key}: malformed date {value!r}") from e
        elif key in _TEXT_FIELDS:
            values[key] = None if value is None else str(value)
        elif key in _INT_FIELDS:
            if value is None:
                continue
            try:
                values[key] = int(value)
            except (TypeError, ValueError) as e:
                raise EventParseError(f"extra_data.{key}: invalid priority {value!r}") from e
        else:
            other[key] = value

    extra = ExtraData(other=other, **values)
    return None if extra.is_empty() else extra


@dataclass(frozen=True)
class Event:
    """
    One immutable activity-log record.

    Parameters
    ----------
    object_type : str
        One of 'project', 'section', 'item', 'note' (other values are kept
        as sent and routed to the overflow bucket)
    object_id : str
        Normalized id of the object the event is about
    event_type : str
        'added', 'updated', 'completed', ... as sent by the server
    event_date : datetime
        When the event happened (must be timezone-aware UTC)
    parent_project_id : Optional[str]
        Project the object belonged to when the event was recorded
    parent_id : Optional[str]
        Parent item of a note (or sub-item)
    extra_data : Optional[ExtraData]
        Validated payload
    id : Optional[str]
        Server-side event id, when sent
    """

    object_type: str
    object_id: str
    event_type: str
    event_date: datetime
    parent_project_id: Optional[str] = None
    parent_id: Optional[str] = None
    extra_data: Optional[ExtraData] = None
    id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate timezone-aware timestamp."""
        if self.event_date.tzinfo is None:
            raise ValueError(f"Event {self.object_id}: event_date must be timezone-aware")

    @property
    def key(self) -> EventKey:
        """Composite identity used for de-duplication."""
        return (self.object_type, self.object_id, self.event_type, self.event_date)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "event_type": self.event_type,
            "object_type": self.object_type,
            "object_id": self.object_id,
            "event_date": self.event_date.isoformat(),
        }
        if self.parent_project_id:
            data["parent_project_id"] = self.parent_project_id
        if self.parent_id:
            data["parent_id"] = self.parent_id
        if self.extra_data is not None:
            data["extra_data"] = self.extra_data.to_dict()
        return data


def parse_event(raw: Dict[str, Any]) -> Event:
    """
    Build an Event from one raw API record.

    Parameters
    ----------
    raw : Dict[str, Any]
        Record from the activity endpoint

    Returns
    -------
    Event
        Validated event with normalized identifiers

    Raises
    ------
    EventParseError
        If required fields are missing or malformed
    """
    if not isinstance(raw, dict):
        raise EventParseError(f"event must be an object, got {type(raw).__name__}")

    object_id = normalize_id(raw.get("object_id"))
    object_type = normalize_object_type(raw.get("object_type"))
    event_type = str(raw.get("event_type") or "").strip().lower()
    missing = [
        name
        for name, value in (
            ("object_id", object_id),
            ("object_type", object_type),
            ("event_type", event_type),
            ("event_date", raw.get("event_date")),
        )
        if not value
    ]
    if missing:
        raise EventParseError(f"event {raw.get('id')!r}: missing required fields {missing}")

    try:
        event_date = parse_timestamp(raw["event_date"])
    except ValueError as e:
        raise EventParseError(f"event {raw.get('id')!r}: malformed event_date") from e

    # Notes carry their item as parent_item_id on the Sync API
    parent_id = normalize_id(raw.get("parent_id")) or normalize_id(raw.get("parent_item_id"))

    assert object_id is not None
    return Event(
        object_type=object_type,
        object_id=object_id,
        event_type=event_type,
        event_date=event_date,
        parent_project_id=normalize_id(raw.get("parent_project_id")),
        parent_id=parent_id,
        extra_data=parse_extra_data(raw.get("extra_data")),
        id=normalize_id(raw.get("id")),
    )


@dataclass(frozen=True)
class HierarchyRecord:
    """Current placement of one item."""

    id: str
    parent_id: Optional[str] = None
    section_id: Optional[str] = None
    project_id: Optional[str] = None


class HierarchySnapshot:
    """
    Immutable, point-in-time map of item id -> current placement.

    Unknown ids resolve to None rather than raising; callers fall back to
    the project declared on the event.
    """

    def __init__(self, records: Mapping[str, HierarchyRecord], scope: Optional[str] = None):
        self._records: Mapping[str, HierarchyRecord] = MappingProxyType(dict(records))
        self.scope = scope
        self.created_at = datetime.now(timezone.utc)

    @classmethod
    def empty(cls) -> "HierarchySnapshot":
        return cls({})

    def get(self, item_id: Optional[str]) -> Optional[HierarchyRecord]:
        if item_id is None:
            return None
        return self._records.get(item_id)

    def parent_of(self, item_id: Optional[str]) -> Optional[str]:
        record = self.get(item_id)
        return record.parent_id if record else None

    def section_of(self, item_id: Optional[str]) -> Optional[str]:
        record = self.get(item_id)
        return record.section_id if record else None

    def project_of(self, item_id: Optional[str]) -> Optional[str]:
        record = self.get(item_id)
        return record.project_id if record else None

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)


@dataclass
class HealthIndicator:
    """
    Derived risk metrics for one item.

    Parameters
    ----------
    last_activity_days : int
        Whole days since the most recent event
    due_date_changes : int
        Number of updates that moved the due date forward
    total_postponed_days : int
        Sum of whole days the due date was pushed out
    avg_postpone_days : float
        total_postponed_days / due_date_changes (0.0 without changes)
    max_consecutive_postpones : int
        Longest run of postponements each within 24h of the previous one
    health_status : Set[str]
        Subset of 'idle', 'long_postpones', 'frequent_postpones'
    """

    last_activity_days: int
    due_date_changes: int = 0
    total_postponed_days: int = 0
    avg_postpone_days: float = 0.0
    max_consecutive_postpones: int = 0
    health_status: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_activity_days": self.last_activity_days,
            "due_date_changes": self.due_date_changes,
            "total_postponed_days": self.total_postponed_days,
            "avg_postpone_days": self.avg_postpone_days,
            "max_consecutive_postpones": self.max_consecutive_postpones,
            "health_status": sorted(self.health_status),
        }


@dataclass
class ItemNode:
    """An item (task) with its own events, comments and sub-items."""

    id: str
    item_events: List[Event] = field(default_factory=list)
    comments: List[Event] = field(default_factory=list)
    sub_items: Dict[str, "ItemNode"] = field(default_factory=dict)
    health: Optional[HealthIndicator] = None

    def iter_items(self) -> Iterator["ItemNode"]:
        """Yield this node and every descendant sub-item, depth first."""
        yield self
        for child in self.sub_items.values():
            yield from child.iter_items()

    def event_count(self) -> int:
        return (
            len(self.item_events)
            + len(self.comments)
            + sum(child.event_count() for child in self.sub_items.values())
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "item_events": [e.to_dict() for e in self.item_events],
            "comments": [e.to_dict() for e in self.comments],
            "sub_items": {k: v.to_dict() for k, v in self.sub_items.items()},
        }
        if self.health is not None:
            data["health"] = self.health.to_dict()
        return data


@dataclass
class SectionNode:
    """A section of a project and the items currently filed under it."""

    id: str
    section_events: List[Event] = field(default_factory=list)
    items: Dict[str, ItemNode] = field(default_factory=dict)

    def event_count(self) -> int:
        return len(self.section_events) + sum(i.event_count() for i in self.items.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "section_events": [e.to_dict() for e in self.section_events],
            "items": {k: v.to_dict() for k, v in self.items.items()},
        }


@dataclass
class ProjectNode:
    """A project with its sections, direct items, comments and child projects."""

    id: str
    project_events: List[Event] = field(default_factory=list)
    sections: Dict[str, SectionNode] = field(default_factory=dict)
    items: Dict[str, ItemNode] = field(default_factory=dict)
    comments: List[Event] = field(default_factory=list)
    child_projects: Dict[str, "ProjectNode"] = field(default_factory=dict)

    def iter_projects(self) -> Iterator["ProjectNode"]:
        """Yield this project and every nested child project, depth first."""
        yield self
        for child in self.child_projects.values():
            yield from child.iter_projects()

    def iter_items(self) -> Iterator[ItemNode]:
        """Yield every item owned by this project (not child projects)."""
        for item in self.items.values():
            yield from item.iter_items()
        for section in self.sections.values():
            for item in section.items.values():
                yield from item.iter_items()

    def event_count(self) -> int:
        return (
            len(self.project_events)
            + len(self.comments)
            + sum(s.event_count() for s in self.sections.values())
            + sum(i.event_count() for i in self.items.values())
            + sum(p.event_count() for p in self.child_projects.values())
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_events": [e.to_dict() for e in self.project_events],
            "sections": {k: v.to_dict() for k, v in self.sections.items()},
            "items": {k: v.to_dict() for k, v in self.items.items()},
            "comments": [e.to_dict() for e in self.comments],
            "child_projects": {k: v.to_dict() for k, v in self.child_projects.items()},
        }


@dataclass
class ActivityTree:
    """
    Aggregated output of one run.

    Parameters
    ----------
    projects : Dict[str, ProjectNode]
        Root-level projects (child projects hang off their parents)
    other_events : List[Event]
        Events whose owning project could not be resolved
    total_count : int
        Number of events the tree was built from
    diagnostics : Dict[str, int]
        Counters for recoverable conditions met while building
    """

    projects: Dict[str, ProjectNode] = field(default_factory=dict)
    other_events: List[Event] = field(default_factory=list)
    total_count: int = 0
    diagnostics: Dict[str, int] = field(default_factory=dict)

    def iter_projects(self) -> Iterator[ProjectNode]:
        for project in self.projects.values():
            yield from project.iter_projects()

    def iter_items(self) -> Iterator[ItemNode]:
        for project in self.iter_projects():
            yield from project.iter_items()

    def is_empty(self) -> bool:
        return not self.projects and not self.other_events

    def event_count(self) -> int:
        """Count every event held anywhere in the tree."""
        return sum(p.event_count() for p in self.projects.values()) + len(self.other_events)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projects": {k: v.to_dict() for k, v in self.projects.items()},
            "other_events": [e.to_dict() for e in self.other_events],
            "total_count": self.total_count,
            "diagnostics": dict(self.diagnostics),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
