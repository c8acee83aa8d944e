"""Work item store: owns the hierarchy and every status change in it."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import ValidationError

from mosaic.errors import InvalidState, WorkItemNotFound
from mosaic.items.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    WorkItem,
    WorkItemCreate,
    WorkItemQuery,
    WorkItemStats,
    WorkItemStatus,
    WorkItemTree,
    can_transition,
    utcnow,
)

if TYPE_CHECKING:
    from mosaic.engine.payloads import DecompositionPlan
    from mosaic.engine.propagation import CompletionPropagator
    from mosaic.hooks.engine import HookEngine

logger = logging.getLogger(__name__)

# Fields that callers can never change through update().
IMMUTABLE_FIELDS = frozenset({"id", "parent_id", "child_ids", "sequence", "created_at"})


class WorkItemStore:
    """
    In-memory store for work items with optional JSON persistence.

    The parent_id foreign key is the only stored representation of the
    hierarchy. child_ids is derived on every read, ordered by creation
    sequence, so the two can never drift apart.

    All mutations run without awaiting between the read and the write, which
    makes each one atomic with respect to other coroutines on the same loop.
    """

    def __init__(self, config: dict, event_bus: Optional["HookEngine"] = None) -> None:
        """
        Initialize work item store.

        Args:
            config: Store configuration (the ``items`` section)
            event_bus: Optional event bus notified of created/updated/deleted items
        """
        self.config = config
        self.event_bus = event_bus
        self._items: dict[str, WorkItem] = {}
        self._next_sequence = 0
        # Set by CompletionPropagator.attach(); cascades child status changes.
        self.propagator: Optional["CompletionPropagator"] = None

        persistence_config = config.get("persistence", {})
        self.persistence_enabled = persistence_config.get("enabled", True)
        self.autosave = persistence_config.get("autosave", False)
        self.state_file = Path(persistence_config.get("state_file", "./.mosaic/state.json"))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _children_of(self, item_id: str) -> list[WorkItem]:
        children = [i for i in self._items.values() if i.parent_id == item_id]
        children.sort(key=lambda i: i.sequence)
        return children

    def _materialize(self, item: WorkItem) -> WorkItem:
        """Return a detached copy with child_ids filled in."""
        copy = item.model_copy(deep=True)
        copy.child_ids = [c.id for c in self._children_of(item.id)]
        return copy

    def _require(self, item_id: str) -> WorkItem:
        item = self._items.get(item_id)
        if item is None:
            raise WorkItemNotFound(item_id)
        return item

    async def get(self, item_id: str) -> Optional[WorkItem]:
        """
        Get a work item by ID.

        Args:
            item_id: Work item ID

        Returns:
            A copy of the item, or None if not found
        """
        item = self._items.get(item_id)
        if item is None:
            return None
        return self._materialize(item)

    async def require(self, item_id: str) -> WorkItem:
        """Like get(), but raises WorkItemNotFound instead of returning None."""
        return self._materialize(self._require(item_id))

    async def query(self, query: Optional[WorkItemQuery] = None) -> list[WorkItem]:
        """
        List work items matching a filter, in creation order.

        Args:
            query: Filter to apply; None returns everything

        Returns:
            Matching items
        """
        query = query or WorkItemQuery()
        items = sorted(self._items.values(), key=lambda i: i.sequence)
        return [self._materialize(i) for i in items if query.matches(i)]

    async def children(self, item_id: str) -> list[WorkItem]:
        """Direct children of an item, in creation order."""
        return [self._materialize(c) for c in self._children_of(item_id)]

    async def depth(self, item_id: str) -> int:
        """
        Depth of an item in the hierarchy (0 for roots).

        Stops at the first repeated id, so a corrupt cyclic chain still returns.
        """
        depth = 0
        visited = {item_id}
        item = self._require(item_id)
        while item.parent_id and item.parent_id in self._items:
            if item.parent_id in visited:
                logger.warning(f"Cycle detected in parent chain of {item_id}")
                break
            visited.add(item.parent_id)
            item = self._items[item.parent_id]
            depth += 1
        return depth

    async def tree(self, root_id: str) -> Optional[WorkItemTree]:
        """
        Build the subtree rooted at root_id.

        Args:
            root_id: Root item ID

        Returns:
            Tree view annotated with depth, or None if the root does not exist
        """
        root = self._items.get(root_id)
        if root is None:
            return None

        visited: set[str] = set()

        def build(item: WorkItem, depth: int) -> WorkItemTree:
            visited.add(item.id)
            node = WorkItemTree(item=self._materialize(item), depth=depth)
            for child in self._children_of(item.id):
                if child.id in visited:
                    logger.warning(f"Skipping revisited item {child.id} under {item.id}")
                    continue
                node.children.append(build(child, depth + 1))
            return node

        return build(root, 0)

    async def stats(self) -> WorkItemStats:
        """Count items by status and priority."""
        stats = WorkItemStats(
            by_status={s.value: 0 for s in WorkItemStatus},
            by_priority={},
        )
        for item in self._items.values():
            stats.total += 1
            if item.parent_id is None:
                stats.roots += 1
            stats.by_status[item.status.value] += 1
            stats.by_priority[item.priority.value] = stats.by_priority.get(item.priority.value, 0) + 1
        return stats

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, spec: Union[WorkItemCreate, dict[str, Any]]) -> WorkItem:
        """
        Create a new work item.

        Args:
            spec: Creation fields; status always starts as OPEN

        Returns:
            The created item

        Raises:
            WorkItemNotFound: If parent_id refers to an unknown item
        """
        if isinstance(spec, dict):
            spec = WorkItemCreate.model_validate(spec)

        if spec.parent_id is not None and spec.parent_id not in self._items:
            raise WorkItemNotFound(spec.parent_id)

        item = WorkItem(**spec.model_dump(), sequence=self._next_sequence)
        self._next_sequence += 1
        self._items[item.id] = item

        logger.info(f"Created {item.kind.value}: {item.id} - {item.title}")

        created = self._materialize(item)
        await self._publish("item.created", {"item": created.model_dump(mode="json")})
        await self._autosave()
        return created

    async def update(self, item_id: str, updates: dict[str, Any]) -> WorkItem:
        """
        Apply a partial update to a work item.

        ``metadata`` is merged key by key; every other field is replaced.
        Entering IN_PROGRESS stamps ``started_at`` the first time only and
        clears ``completed_at`` left by an earlier failure. Entering COMPLETED
        or FAILED stamps ``completed_at``; repeating the current status leaves
        timestamps alone. A status change on an item with a parent is cascaded
        through the attached propagator, if any.

        Args:
            item_id: Work item ID
            updates: Fields to change

        Returns:
            Updated item

        Raises:
            WorkItemNotFound: If the item does not exist
            InvalidState: On an immutable field or an illegal status transition
            ValueError: On an unknown field or a value that fails validation
        """
        item = self._require(item_id)

        forbidden = IMMUTABLE_FIELDS.intersection(updates)
        if forbidden:
            raise InvalidState(f"Cannot update immutable fields: {', '.join(sorted(forbidden))}")

        unknown = set(updates) - set(WorkItem.model_fields)
        if unknown:
            raise ValueError(f"Unknown work item fields: {', '.join(sorted(unknown))}")

        merged = item.model_dump()
        for key, value in updates.items():
            if key == "metadata" and value is not None:
                merged["metadata"] = {**item.metadata, **value}
            else:
                merged[key] = value

        try:
            candidate = WorkItem.model_validate(merged)
        except ValidationError as e:
            raise ValueError(f"Invalid update for {item_id}: {e}") from e

        old_status = item.status
        new_status = candidate.status
        if not can_transition(old_status, new_status):
            raise InvalidState(
                f"Illegal transition for {item_id}: {old_status.value} -> {new_status.value}"
            )

        now = utcnow()
        if new_status != old_status:
            if new_status == WorkItemStatus.IN_PROGRESS:
                if candidate.started_at is None:
                    candidate.started_at = now
                candidate.completed_at = None
            if new_status in TERMINAL_STATUSES:
                candidate.completed_at = now
        candidate.last_updated_at = now

        self._items[item_id] = candidate
        logger.debug(f"Updated work item {item_id}: {sorted(updates)}")

        updated = self._materialize(candidate)
        await self._publish(
            "item.updated",
            {
                "item": updated.model_dump(mode="json"),
                "old_status": old_status.value,
                "changes": sorted(updates),
            },
        )
        if new_status != old_status and new_status in TERMINAL_STATUSES:
            await self._publish(f"item.{new_status.value}", {"item": updated.model_dump(mode="json")})
        await self._autosave()
        if new_status != old_status and candidate.parent_id is not None and self.propagator is not None:
            await self.propagator.on_child_status_changed(candidate.parent_id)
        return updated

    async def reopen(self, item_id: str) -> WorkItem:
        """
        Move an interrupted item back to OPEN so it can be resumed later.

        This is the only path out of IN_PROGRESS other than a terminal status.
        Items in any other status are returned unchanged.
        """
        item = self._require(item_id)
        if item.status != WorkItemStatus.IN_PROGRESS:
            return self._materialize(item)

        reopened = item.model_copy(
            update={"status": WorkItemStatus.OPEN, "last_updated_at": utcnow()}
        )
        self._items[item_id] = reopened
        logger.info(f"Reopened work item {item_id}")

        result = self._materialize(reopened)
        await self._publish(
            "item.updated",
            {
                "item": result.model_dump(mode="json"),
                "old_status": WorkItemStatus.IN_PROGRESS.value,
                "changes": ["status"],
            },
        )
        await self._autosave()
        return result

    async def decompose(self, item_id: str, plan: "DecompositionPlan") -> list[WorkItem]:
        """
        Create one child per planned sub-item and mark the parent decomposed.

        Children inherit kind, ``assigned_to`` and tags from the parent, and are
        created by whoever owns the parent.

        Args:
            item_id: Item being decomposed
            plan: Sanitized decomposition plan

        Returns:
            Created children in plan order
        """
        parent = self._require(item_id)
        owner = parent.assigned_to or parent.created_by

        children = []
        for sub in plan.sub_items:
            metadata: dict[str, Any] = {"decomposition_reasoning": plan.reasoning}
            if sub.estimated_steps is not None:
                metadata["estimated_steps"] = sub.estimated_steps
            if sub.dependencies:
                metadata["dependencies"] = list(sub.dependencies)

            child = await self.create(
                WorkItemCreate(
                    title=sub.title,
                    description=sub.description,
                    kind=parent.kind,
                    priority=sub.priority,
                    parent_id=parent.id,
                    created_by=owner,
                    assigned_to=parent.assigned_to,
                    tags=set(parent.tags),
                    metadata=metadata,
                )
            )
            children.append(child)

        await self.update(
            item_id,
            {
                "strategy": plan.reasoning,
                "metadata": {"decomposed": True, "decomposed_at": utcnow().isoformat()},
            },
        )
        logger.info(f"Decomposed {item_id} into {len(children)} sub-items")
        return children

    async def delete(self, item_id: str) -> bool:
        """
        Delete an item and its whole subtree.

        Args:
            item_id: Work item ID

        Returns:
            True if deleted, False if not found

        Raises:
            InvalidState: If the item or any descendant is in progress or blocked
        """
        if item_id not in self._items:
            return False

        subtree = [item_id]
        visited = {item_id}
        index = 0
        while index < len(subtree):
            for child in self._children_of(subtree[index]):
                if child.id not in visited:
                    visited.add(child.id)
                    subtree.append(child.id)
            index += 1

        active = [i for i in subtree if self._items[i].status in ACTIVE_STATUSES]
        if active:
            if active[0] == item_id:
                raise InvalidState(
                    f"Cannot delete {item_id} while it is {self._items[item_id].status.value}"
                )
            raise InvalidState(f"Cannot delete {item_id}: sub-item {active[0]} is still active")

        removed = [self._items.pop(i) for i in subtree]
        logger.info(f"Deleted work item {item_id} ({len(removed)} items including sub-items)")

        await self._publish(
            "item.deleted",
            {"item_id": item_id, "deleted_ids": [i.id for i in removed]},
        )
        await self._autosave()
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_state(self, path: Optional[Path] = None) -> None:
        """
        Save all items to a JSON file.

        Args:
            path: Optional path to save to, defaults to config
        """
        if path is None:
            if not self.persistence_enabled:
                logger.debug("Persistence disabled, skipping save")
                return
            path = self.state_file

        path.parent.mkdir(parents=True, exist_ok=True)

        state = {
            "items": {
                item_id: item.model_dump(mode="json") for item_id, item in self._items.items()
            },
            "next_sequence": self._next_sequence,
        }

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state, f, indent=2)
            os.replace(tmp_name, path)
        except OSError as e:
            logger.error(f"Error saving work item state: {e}", exc_info=True)
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return

        logger.debug(f"Saved {len(self._items)} work items to {path}")

    async def load_state(self, path: Optional[Path] = None) -> int:
        """
        Load items from a JSON file, replacing anything in memory.

        Args:
            path: Optional path to load from, defaults to config

        Returns:
            Number of items loaded
        """
        if path is None:
            if not self.persistence_enabled:
                logger.debug("Persistence disabled, skipping load")
                return 0
            path = self.state_file

        if not path.exists():
            logger.debug(f"State file does not exist: {path}")
            return 0

        with open(path) as f:
            state = json.load(f)

        items = {
            item_id: WorkItem.model_validate(data)
            for item_id, data in state.get("items", {}).items()
        }
        self._items = items
        self._next_sequence = max(
            state.get("next_sequence", 0),
            max((i.sequence for i in items.values()), default=-1) + 1,
        )

        logger.info(f"Loaded {len(items)} work items from {path}")
        return len(items)

    async def _autosave(self) -> None:
        if self.autosave and self.persistence_enabled:
            await self.save_state()

    async def _publish(self, topic: str, data: dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(topic, data)
