"""Work item model and store."""

from mosaic.items.models import (
    WorkItem,
    WorkItemCreate,
    WorkItemKind,
    WorkItemPriority,
    WorkItemQuery,
    WorkItemStats,
    WorkItemStatus,
    WorkItemTree,
)
from mosaic.items.store import WorkItemStore

__all__ = [
    "WorkItem",
    "WorkItemCreate",
    "WorkItemKind",
    "WorkItemPriority",
    "WorkItemQuery",
    "WorkItemStats",
    "WorkItemStatus",
    "WorkItemTree",
    "WorkItemStore",
]
