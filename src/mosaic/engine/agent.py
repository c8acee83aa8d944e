"""Work item agent: the decompose-or-execute control flow."""

import logging
from typing import TYPE_CHECKING, Any, Optional

from mosaic.actions.recorder import ActionRecorder, ActionStatus, SafeRecorder
from mosaic.engine.execution import ExecutionLoop
from mosaic.engine.interrupt import InterruptController, InterruptReason
from mosaic.engine.planner import DecompositionPlanner
from mosaic.engine.prompts import SiblingContext
from mosaic.engine.propagation import CompletionPropagator
from mosaic.engine.resumption import ResumptionController
from mosaic.errors import ExecutionInterrupted, WorkItemNotFound
from mosaic.items.models import (
    WorkItem,
    WorkItemCreate,
    WorkItemKind,
    WorkItemPriority,
    WorkItemStatus,
)
from mosaic.items.store import WorkItemStore
from mosaic.tools.base import ToolProvider

if TYPE_CHECKING:
    from mosaic.hooks.engine import HookEngine

logger = logging.getLogger(__name__)


class WorkItemAgent:
    """
    Drives one work-item subtree depth-first, one item at a time.

    For every item: completed items are skipped; items that already have
    children are resumed; decomposed items left without children are planned
    again; otherwise the planner decides between decomposing
    (then recursing into each child in order) and executing directly. Parents
    only ever complete through the cascade.

    Errors are recorded on the failing item, cascaded to its parent, and
    re-raised, so a failure stops the remaining siblings and surfaces at
    the root.
    """

    def __init__(
        self,
        store: WorkItemStore,
        planner: DecompositionPlanner,
        loop: ExecutionLoop,
        tools: ToolProvider,
        interrupt: Optional[InterruptController] = None,
        recorder: Optional[ActionRecorder] = None,
        event_bus: Optional["HookEngine"] = None,
        agent_id: str = "agent",
    ) -> None:
        self.store = store
        self.planner = planner
        self.loop = loop
        self.tools = tools
        self.interrupt = interrupt or InterruptController()
        self.recorder = SafeRecorder(recorder)
        self.event_bus = event_bus
        self.agent_id = agent_id

        self.propagator = CompletionPropagator(store)
        self.propagator.attach()
        self.resumption = ResumptionController(store, self.work_on_item, recorder)
        self.reopen_on_stop = False

        if loop.interrupt is None:
            loop.interrupt = self.interrupt

    async def start(
        self,
        title: str,
        description: str = "",
        kind: WorkItemKind = WorkItemKind.GOAL,
        priority: WorkItemPriority = WorkItemPriority.MEDIUM,
        tags: Optional[set[str]] = None,
        created_by: Optional[str] = None,
    ) -> WorkItem:
        """
        Create a root item for an objective and work on it.

        Returns:
            The root item as stored after the run

        Raises:
            Whatever failed the root; the item is already marked FAILED
        """
        root = await self.store.create(
            WorkItemCreate(
                title=title,
                description=description,
                kind=kind,
                priority=priority,
                tags=tags or set(),
                created_by=created_by or self.agent_id,
                assigned_to=self.agent_id,
            )
        )
        await self.run(root.id)
        return await self.store.require(root.id)

    async def run(self, item_id: str) -> WorkItem:
        """
        Work on (or resume) any item, computing its depth from the store.

        Returns:
            The item as stored after the run
        """
        await self.interrupt.reset()
        self.reopen_on_stop = False
        depth = await self.store.depth(item_id)

        await self._publish("agent.started", {"agent_id": self.agent_id, "item_id": item_id})
        try:
            await self.work_on_item(item_id, depth)
        finally:
            item = await self.store.get(item_id)
            await self._publish(
                "agent.stopped",
                {
                    "agent_id": self.agent_id,
                    "item_id": item_id,
                    "status": item.status.value if item else None,
                },
            )
        return await self.store.require(item_id)

    async def resume(self, item_id: str) -> WorkItem:
        """Alias of run() for re-entering a partially executed item."""
        return await self.run(item_id)

    async def stop(self, reopen: bool = False) -> None:
        """
        Ask the running agent to stop before its next step.

        Args:
            reopen: Move interrupted items back to OPEN instead of leaving
                them IN_PROGRESS
        """
        self.reopen_on_stop = reopen
        await self.interrupt.request_interrupt(InterruptReason.USER_REQUEST, "Stop requested")

    async def work_on_item(self, item_id: str, depth: int = 0) -> None:
        """
        Bring one item to a terminal status.

        Args:
            item_id: Item to work on
            depth: Depth of the item (0 for roots)

        Raises:
            WorkItemNotFound: If the item does not exist
            ExecutionInterrupted: If a stop was requested
            Exception: Any failure, after the item has been marked FAILED
        """
        self.interrupt.raise_if_interrupted()

        item = await self.store.get(item_id)
        if item is None:
            raise WorkItemNotFound(item_id)

        if item.status == WorkItemStatus.COMPLETED:
            logger.info(f"{item_id} '{item.title}' already completed; skipping")
            return

        logger.info(f"Working on {item.kind.value} {item_id} '{item.title}' at depth {depth}")
        item = await self.store.update(
            item_id, {"status": WorkItemStatus.IN_PROGRESS, "error_message": None}
        )
        action_id = await self.recorder.record_action(
            item_id, "item_started", f"Started working on: {item.title}", {"depth": depth}
        )

        try:
            if item.child_ids:
                await self.resumption.resume(item, depth)
            elif item.is_decomposed:
                # Every sub-item was deleted; plan again rather than execute.
                await self._decompose_and_run(item, depth)
            else:
                await self._decide_and_run(item, depth)

            # Decomposed items complete here via the cascade, never directly.
            await self.propagator.on_child_status_changed(item_id)

        except ExecutionInterrupted:
            logger.info(f"{item_id} interrupted")
            if self.reopen_on_stop:
                await self.store.reopen(item_id)
            await self.recorder.complete_action(action_id, ActionStatus.FAILED, error="interrupted")
            raise

        except Exception as e:
            logger.error(f"{item_id} '{item.title}' failed: {e}")
            current = await self.store.get(item_id)
            if current is not None and current.status != WorkItemStatus.FAILED:
                await self.store.update(
                    item_id, {"status": WorkItemStatus.FAILED, "error_message": str(e)}
                )
            await self.recorder.complete_action(action_id, ActionStatus.FAILED, error=str(e))
            await self.propagator.on_child_status_changed(item.parent_id)
            raise

        await self.recorder.complete_action(action_id, ActionStatus.COMPLETED)
        await self.propagator.on_child_status_changed(item.parent_id)

    async def _decide_and_run(self, item: WorkItem, depth: int) -> None:
        siblings = await self._sibling_context(item)
        decompose = await self.planner.should_decompose(item, depth, siblings)
        await self.recorder.record_completed(
            item.id,
            "decision",
            f"{'Decompose' if decompose else 'Execute'}: {item.title}",
            {"depth": depth, "decompose": decompose},
        )

        if decompose:
            await self._decompose_and_run(item, depth)
        else:
            await self._execute(item)

    async def _decompose_and_run(self, item: WorkItem, depth: int) -> None:
        self.interrupt.raise_if_interrupted()
        plan = await self.planner.plan(item)
        children = await self.store.decompose(item.id, plan)
        await self.recorder.record_completed(
            item.id,
            "decomposition",
            f"Decomposed '{item.title}' into {len(children)} sub-items",
            {"reasoning": plan.reasoning, "sub_items": [c.title for c in children]},
        )
        for child in children:
            await self.work_on_item(child.id, depth + 1)

    async def _execute(self, item: WorkItem) -> None:
        parent = await self.store.get(item.parent_id) if item.parent_id else None
        result = await self.loop.run(item, self.tools, parent.title if parent else None)

        if not result.ok:
            raise result.error

        await self.store.update(
            item.id,
            {
                "status": WorkItemStatus.COMPLETED,
                "result": {"summary": result.summary, "steps": result.steps},
            },
        )

    async def _sibling_context(self, item: WorkItem) -> Optional[SiblingContext]:
        if item.parent_id is None:
            return None
        parent = await self.store.get(item.parent_id)
        if parent is None:
            return None

        siblings = await self.store.children(parent.id)
        position = next((i for i, s in enumerate(siblings, 1) if s.id == item.id), 0)
        return SiblingContext(
            parent_title=parent.title,
            position=position,
            total=len(siblings),
            others=[(s.title, s.status.value) for s in siblings if s.id != item.id],
        )

    async def _publish(self, topic: str, data: dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(topic, data)
