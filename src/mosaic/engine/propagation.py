"""Bottom-up status cascade from children to parents."""

import logging
from typing import Any, Optional

from mosaic.items.models import WorkItem, WorkItemStatus
from mosaic.items.store import WorkItemStore

logger = logging.getLogger(__name__)

FAILED_CHILD_MESSAGE = "one or more sub-items failed"


def aggregate_results(children: list[WorkItem]) -> dict[str, Any]:
    """Combine child results in creation order into a parent result."""
    child_results = []
    lines = []
    for child in children:
        result = child.result
        summary = result.get("summary") if isinstance(result, dict) else result
        child_results.append({"id": child.id, "title": child.title, "result": result})
        lines.append(f"- {child.title}: {summary}" if summary else f"- {child.title}")
    return {"summary": "\n".join(lines), "child_results": child_results}


class CompletionPropagator:
    """
    Recompute parent status from children and cascade upward.

    Assumes one agent drives all children of a parent sequentially, so the
    read of the children and the write of the parent are not guarded against
    concurrent writers. A multi-agent setup would need a version check here.
    """

    def __init__(self, store: WorkItemStore) -> None:
        self.store = store
        self._walking = False

    def attach(self) -> None:
        """Have the store cascade every child status change through this propagator."""
        self.store.propagator = self

    async def on_child_status_changed(self, parent_id: Optional[str]) -> list[str]:
        """
        Re-derive the parent's status after a child changed.

        All children completed -> parent COMPLETED with aggregated result.
        Otherwise any child failed -> parent FAILED.
        Otherwise nothing changes. The walk continues to the grandparent only
        when the parent's status actually changed.

        Args:
            parent_id: Parent of the child that changed (None is a no-op)

        Returns:
            Ids of items whose status changed, nearest first
        """
        if self._walking:
            # Parent updates made by this walk re-enter through the store.
            return []

        self._walking = True
        try:
            return await self._walk(parent_id)
        finally:
            self._walking = False

    async def _walk(self, parent_id: Optional[str]) -> list[str]:
        changed: list[str] = []
        visited: set[str] = set()

        while parent_id is not None and parent_id not in visited:
            visited.add(parent_id)
            parent = await self.store.get(parent_id)
            if parent is None:
                break

            new_status = await self._apply(parent)
            if new_status is None:
                break

            changed.append(parent.id)
            parent_id = parent.parent_id

        return changed

    async def _apply(self, parent: WorkItem) -> Optional[WorkItemStatus]:
        children = await self.store.children(parent.id)
        if not children:
            return None

        if all(c.status == WorkItemStatus.COMPLETED for c in children):
            if parent.status == WorkItemStatus.COMPLETED:
                return None
            await self.store.update(
                parent.id,
                {
                    "status": WorkItemStatus.COMPLETED,
                    "result": aggregate_results(children),
                    "error_message": None,
                },
            )
            logger.info(f"All {len(children)} sub-items of {parent.id} completed; parent completed")
            return WorkItemStatus.COMPLETED

        if any(c.status == WorkItemStatus.FAILED for c in children):
            if parent.status in (WorkItemStatus.FAILED, WorkItemStatus.COMPLETED):
                return None
            await self.store.update(
                parent.id,
                {"status": WorkItemStatus.FAILED, "error_message": FAILED_CHILD_MESSAGE},
            )
            logger.info(f"Sub-item of {parent.id} failed; parent failed")
            return WorkItemStatus.FAILED

        return None
