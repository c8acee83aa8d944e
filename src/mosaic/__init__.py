"""mosaic - hierarchical work-item decomposition and execution engine."""

__version__ = "0.1.0"

from mosaic.core.runtime import Runtime
from mosaic.engine.agent import WorkItemAgent
from mosaic.items.models import WorkItem, WorkItemKind, WorkItemPriority, WorkItemStatus
from mosaic.items.store import WorkItemStore
from mosaic.tools.base import Tool, ToolDefinition, ToolResult, tool

__all__ = [
    "Runtime",
    "WorkItemAgent",
    "WorkItem",
    "WorkItemKind",
    "WorkItemPriority",
    "WorkItemStatus",
    "WorkItemStore",
    "Tool",
    "ToolDefinition",
    "ToolResult",
    "tool",
]
