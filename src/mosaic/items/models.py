"""Work item data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class WorkItemKind(str, Enum):
    """Vocabulary a work item is presented with (goal or task)."""

    GOAL = "goal"
    TASK = "task"

    @property
    def label(self) -> str:
        return self.value

    @property
    def child_label(self) -> str:
        return f"sub-{self.value}"


class WorkItemStatus(str, Enum):
    """Work item execution status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class WorkItemPriority(str, Enum):
    """Work item priority levels."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Statuses that pin an item (and its ancestors) against deletion.
ACTIVE_STATUSES = frozenset({WorkItemStatus.IN_PROGRESS, WorkItemStatus.BLOCKED})

TERMINAL_STATUSES = frozenset({WorkItemStatus.COMPLETED, WorkItemStatus.FAILED})

# IN_PROGRESS -> OPEN is absent on purpose: only WorkItemStore.reopen performs it.
ALLOWED_TRANSITIONS: dict[WorkItemStatus, frozenset[WorkItemStatus]] = {
    WorkItemStatus.OPEN: frozenset(
        {
            WorkItemStatus.IN_PROGRESS,
            WorkItemStatus.BLOCKED,
            WorkItemStatus.COMPLETED,
            WorkItemStatus.FAILED,
        }
    ),
    WorkItemStatus.IN_PROGRESS: frozenset(
        {WorkItemStatus.COMPLETED, WorkItemStatus.FAILED, WorkItemStatus.BLOCKED}
    ),
    WorkItemStatus.BLOCKED: frozenset(
        {
            WorkItemStatus.OPEN,
            WorkItemStatus.IN_PROGRESS,
            WorkItemStatus.COMPLETED,
            WorkItemStatus.FAILED,
        }
    ),
    WorkItemStatus.FAILED: frozenset({WorkItemStatus.IN_PROGRESS, WorkItemStatus.COMPLETED}),
    WorkItemStatus.COMPLETED: frozenset(),
}


def can_transition(current: WorkItemStatus, target: WorkItemStatus) -> bool:
    """Check whether a status change is legal. Same-status is always allowed."""
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


class WorkItem(BaseModel):
    """A node in the work hierarchy (a goal or a task)."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    kind: WorkItemKind = WorkItemKind.TASK
    title: str
    description: str = ""
    status: WorkItemStatus = WorkItemStatus.OPEN
    priority: WorkItemPriority = WorkItemPriority.MEDIUM

    # Hierarchy. parent_id is authoritative; child_ids is filled in by the store on read.
    parent_id: Optional[str] = None
    child_ids: list[str] = Field(default_factory=list, exclude=True)
    sequence: int = 0

    # Ownership
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None

    # Outcome
    strategy: Optional[str] = None
    result: Optional[Any] = None
    error_message: Optional[str] = None

    tags: set[str] = Field(default_factory=set)
    metadata: dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_decomposed(self) -> bool:
        return bool(self.metadata.get("decomposed"))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class WorkItemCreate(BaseModel):
    """Fields a caller may supply when creating a work item."""

    title: str
    description: str = ""
    kind: WorkItemKind = WorkItemKind.TASK
    priority: WorkItemPriority = WorkItemPriority.MEDIUM
    parent_id: Optional[str] = None
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: set[str] = Field(default_factory=set)
    metadata: dict[str, Any] = Field(default_factory=dict)


class WorkItemQuery(BaseModel):
    """Filter for WorkItemStore.query. Unset fields match everything."""

    status: Optional[WorkItemStatus] = None
    priority: Optional[WorkItemPriority] = None
    kind: Optional[WorkItemKind] = None
    parent_id: Optional[str] = None
    roots_only: bool = False
    assigned_to: Optional[str] = None
    tag: Optional[str] = None

    def matches(self, item: WorkItem) -> bool:
        if self.status is not None and item.status != self.status:
            return False
        if self.priority is not None and item.priority != self.priority:
            return False
        if self.kind is not None and item.kind != self.kind:
            return False
        if self.parent_id is not None and item.parent_id != self.parent_id:
            return False
        if self.roots_only and item.parent_id is not None:
            return False
        if self.assigned_to is not None and item.assigned_to != self.assigned_to:
            return False
        if self.tag is not None and self.tag not in item.tags:
            return False
        return True


class WorkItemTree(BaseModel):
    """Recursive tree view with the depth of each node relative to the root."""

    item: WorkItem
    depth: int = 0
    children: list["WorkItemTree"] = Field(default_factory=list)

    def walk(self):
        """Yield nodes depth-first, pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()


class WorkItemStats(BaseModel):
    """Aggregate counts over the store."""

    total: int = 0
    roots: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
