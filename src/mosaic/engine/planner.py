"""Decompose-or-execute decisions and decomposition plans."""

import logging
from typing import Optional

from mosaic.engine.payloads import DecompositionPlan, decode_plan
from mosaic.engine.prompts import SiblingContext, decision_messages, plan_messages
from mosaic.errors import ParseError, PlanningError
from mosaic.items.models import WorkItem
from mosaic.llm.client import CompletionOptions, LLMProvider

logger = logging.getLogger(__name__)


class DecompositionPlanner:
    """Asks the model whether to split a work item, and how."""

    def __init__(self, llm: LLMProvider, config: dict) -> None:
        """
        Initialize planner.

        Args:
            llm: LLM provider
            config: Planner configuration (the ``engine.planner`` section)
        """
        self.llm = llm
        self.config = config
        self.max_depth = config.get("max_depth", 3)
        self.decision_temperature = config.get("decision_temperature", 0.2)
        self.decision_max_tokens = config.get("decision_max_tokens", 10)
        self.plan_temperature = config.get("plan_temperature", 0.7)
        self.min_sub_items = config.get("min_sub_items", 1)
        self.max_sub_items = config.get("max_sub_items", 7)

    async def should_decompose(
        self,
        item: WorkItem,
        depth: int,
        siblings: Optional[SiblingContext] = None,
    ) -> bool:
        """
        Decide whether an item should be decomposed.

        At or beyond ``max_depth`` the answer is always False and no request
        is made. Otherwise anything other than a reply containing "decompose"
        means execute.

        Args:
            item: Item under consideration
            depth: Depth of the item (0 for roots)
            siblings: Hierarchy context when the item is itself a sub-item

        Returns:
            True to decompose, False to execute directly
        """
        if depth >= self.max_depth:
            logger.info(f"{item.id} at depth {depth} (max {self.max_depth}): forcing execution")
            return False

        completion = await self.llm.complete(
            decision_messages(item, depth, self.max_depth, siblings),
            CompletionOptions(
                temperature=self.decision_temperature,
                max_tokens=self.decision_max_tokens,
            ),
        )
        decision = completion.content.strip().lower()
        will_decompose = "decompose" in decision

        logger.info(
            f"Decomposition decision for {item.id} at depth {depth}: "
            f"{decision!r} -> {'decompose' if will_decompose else 'execute'}"
        )
        return will_decompose

    async def plan(self, item: WorkItem) -> DecompositionPlan:
        """
        Ask for a sub-item plan.

        Args:
            item: Item to decompose

        Returns:
            Sanitized plan; ids suggested by the model are dropped

        Raises:
            PlanningError: If the response is unparsable or has no sub-items
        """
        completion = await self.llm.complete(
            plan_messages(item),
            CompletionOptions(temperature=self.plan_temperature, response_format="json"),
        )

        try:
            plan = decode_plan(completion.content)
        except ParseError as e:
            logger.error(f"Unparsable decomposition plan for {item.id}: {e}")
            raise PlanningError(f"Could not parse decomposition plan: {e}") from e

        if len(plan.sub_items) < self.min_sub_items:
            raise PlanningError(f"Decomposition plan for {item.id} has no sub-items")

        if len(plan.sub_items) > self.max_sub_items:
            logger.warning(
                f"Plan for {item.id} has {len(plan.sub_items)} sub-items; "
                f"keeping the first {self.max_sub_items}"
            )
            plan.sub_items = plan.sub_items[: self.max_sub_items]

        logger.info(f"Planned {len(plan.sub_items)} sub-items for {item.id}: {plan.reasoning}")
        return plan
