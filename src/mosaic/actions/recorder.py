"""Action timeline: a record of every planning decision and tool call."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from mosaic.items.models import utcnow

logger = logging.getLogger(__name__)


class ActionStatus(str, Enum):
    """Lifecycle of a recorded action."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionRecord(BaseModel):
    """One entry in the action timeline."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    item_id: str
    action_type: str  # "decision", "decomposition", "tool_call", "completion"
    description: str
    input: Optional[dict[str, Any]] = None
    status: ActionStatus = ActionStatus.PENDING
    result: Optional[Any] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class ActionRecorder(ABC):
    """Sink for action records."""

    @abstractmethod
    async def record_action(
        self,
        item_id: str,
        action_type: str,
        description: str,
        input: Optional[dict[str, Any]] = None,
    ) -> str:
        """Open an action and return its id."""
        pass

    @abstractmethod
    async def complete_action(
        self,
        action_id: str,
        status: ActionStatus,
        result: Optional[Any] = None,
        error: Optional[str] = None,
    ) -> None:
        """Close a previously opened action."""
        pass


class InMemoryActionRecorder(ActionRecorder):
    """
    Keep the timeline in memory, optionally appending closed actions to a
    JSON-lines file.

    Config options:
        output_file: Path to a .jsonl file (default: none)
    """

    def __init__(self, config: dict) -> None:
        self.config = config
        self.actions: dict[str, ActionRecord] = {}
        output_file = config.get("output_file")
        self.output_file = Path(output_file) if output_file else None
        if self.output_file:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)

    async def record_action(
        self,
        item_id: str,
        action_type: str,
        description: str,
        input: Optional[dict[str, Any]] = None,
    ) -> str:
        record = ActionRecord(
            item_id=item_id, action_type=action_type, description=description, input=input
        )
        self.actions[record.id] = record
        return record.id

    async def complete_action(
        self,
        action_id: str,
        status: ActionStatus,
        result: Optional[Any] = None,
        error: Optional[str] = None,
    ) -> None:
        record = self.actions.get(action_id)
        if record is None:
            raise KeyError(f"Action not found: {action_id}")

        record.status = ActionStatus(status)
        record.result = result
        record.error = error
        record.completed_at = utcnow()

        if self.output_file:
            with open(self.output_file, "a") as f:
                f.write(json.dumps(record.model_dump(mode="json"), default=str) + "\n")

    def timeline(self, item_id: Optional[str] = None) -> list[ActionRecord]:
        """Actions in the order they were opened, optionally for one item."""
        records = list(self.actions.values())
        if item_id is not None:
            records = [r for r in records if r.item_id == item_id]
        return records


class SafeRecorder:
    """
    Best-effort wrapper: recorder failures are logged and swallowed so they
    never change the outcome of the work being recorded.
    """

    def __init__(self, recorder: Optional[ActionRecorder]) -> None:
        self.recorder = recorder

    async def record_action(
        self,
        item_id: str,
        action_type: str,
        description: str,
        input: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        if self.recorder is None:
            return None
        try:
            return await self.recorder.record_action(item_id, action_type, description, input)
        except Exception as e:
            logger.warning(f"Action recorder failed to record {action_type} for {item_id}: {e}")
            return None

    async def complete_action(
        self,
        action_id: Optional[str],
        status: ActionStatus,
        result: Optional[Any] = None,
        error: Optional[str] = None,
    ) -> None:
        if self.recorder is None or action_id is None:
            return
        try:
            await self.recorder.complete_action(action_id, status, result, error)
        except Exception as e:
            logger.warning(f"Action recorder failed to complete action {action_id}: {e}")

    async def record_completed(
        self,
        item_id: str,
        action_type: str,
        description: str,
        input: Optional[dict[str, Any]] = None,
        result: Optional[Any] = None,
    ) -> None:
        """Open and immediately close an action."""
        action_id = await self.record_action(item_id, action_type, description, input)
        await self.complete_action(action_id, ActionStatus.COMPLETED, result=result)
