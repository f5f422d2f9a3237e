"""Pure task domain logic - no I/O dependencies."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum

from .errors import MalformedRecord

NOTION = "notion"
TODOIST = "todoist"
PROVIDERS = (NOTION, TODOIST)

CATEGORIES = (
    "Product Development",
    "Meetings",
    "Documentation",
    "Research",
    "Stakeholder Management",
    "Other",
)
DEFAULT_CATEGORY = "Other"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: "str | Priority | None") -> "Priority":
        """Lenient parse; anything unrecognised becomes MEDIUM."""
        if isinstance(value, Priority):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.MEDIUM


def normalize_title(title: str) -> str:
    """Dedup key for a title: trimmed and lowercased."""
    return title.strip().lower()


def normalize_category(category: str | None) -> str:
    """Map a category onto the fixed set (case-insensitive), defaulting to Other."""
    if not category:
        return DEFAULT_CATEGORY
    wanted = category.strip().lower()
    for known in CATEGORIES:
        if known.lower() == wanted:
            return known
    return DEFAULT_CATEGORY


def new_task_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Providers hand back either "2025-01-15" or a full timestamp
    return date.fromisoformat(str(value)[:10])


def parse_datetime(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class Task:
    """A canonical task, the single authoritative record held by the store."""

    id: str
    title: str
    priority: Priority = Priority.MEDIUM
    category: str = DEFAULT_CATEGORY
    deadline: date | None = None
    completed: bool = False
    provider_ids: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_modified: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> str:
        return normalize_title(self.title)

    def copy(self) -> "Task":
        """Shallow copy with its own provider_ids mapping."""
        return Task(
            id=self.id,
            title=self.title,
            priority=self.priority,
            category=self.category,
            deadline=self.deadline,
            completed=self.completed,
            provider_ids=dict(self.provider_ids),
            created_at=self.created_at,
            last_modified=self.last_modified,
        )

    def to_dict(self) -> dict:
        """Wire/storage shape."""
        return {
            "id": self.id,
            "title": self.title,
            "priority": self.priority.value,
            "category": self.category,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "completed": self.completed,
            "providerIds": dict(self.provider_ids),
            "createdAt": self.created_at.isoformat(),
            "lastModified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """Create Task from its wire/storage shape."""
        if not data.get("id") or not (data.get("title") or "").strip():
            raise MalformedRecord(f"Task record needs an id and a title: {data!r}")
        created = parse_datetime(data.get("createdAt")) or utcnow()
        return cls(
            id=str(data["id"]),
            title=data["title"].strip(),
            priority=Priority.parse(data.get("priority")),
            category=normalize_category(data.get("category")),
            deadline=parse_date(data.get("deadline")),
            completed=bool(data.get("completed", False)),
            provider_ids={
                k: str(v) for k, v in (data.get("providerIds") or {}).items() if v
            },
            created_at=created,
            last_modified=parse_datetime(data.get("lastModified")) or created,
        )


@dataclass
class TaskRecord:
    """
    A partial task as delivered by a provider (or a caller's update).

    None means the field is absent and must not overwrite anything.
    """

    title: str | None = None
    priority: Priority | None = None
    category: str | None = None
    deadline: date | None = None
    completed: bool | None = None
    external_id: str | None = None
    last_modified: datetime | None = None

    def present_fields(self) -> dict:
        """Fields carrying a value, normalized to the canonical types."""
        fields = {}
        if self.title is not None and self.title.strip():
            fields["title"] = self.title.strip()
        if self.priority is not None:
            fields["priority"] = Priority.parse(self.priority)
        if self.category is not None:
            fields["category"] = normalize_category(self.category)
        if self.deadline is not None:
            fields["deadline"] = self.deadline
        if self.completed is not None:
            fields["completed"] = self.completed
        return fields

    @classmethod
    def from_dict(cls, data: dict) -> "TaskRecord":
        """Build a partial record from a loosely-shaped dict (HTTP bodies, tests)."""
        priority = data.get("priority")
        completed = data.get("completed")
        return cls(
            title=data.get("title"),
            priority=Priority.parse(priority) if priority else None,
            category=data.get("category"),
            deadline=parse_date(data.get("deadline")),
            completed=bool(completed) if completed is not None else None,
            external_id=data.get("externalId"),
            last_modified=parse_datetime(data.get("lastModified")),
        )


def sort_by_priority(tasks: list[Task]) -> list[Task]:
    """
    Sort open tasks first, then priority (high first), then deadline (soonest first).

    Pure function - no I/O.
    """
    rank = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}

    def sort_key(t: Task) -> tuple[bool, int, date]:
        return (t.completed, rank[t.priority], t.deadline or date.max)

    return sorted(tasks, key=sort_key)
