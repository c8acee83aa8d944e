"""Execution loop: drives one leaf work item to completion with tools."""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from mosaic.actions.recorder import ActionRecorder, ActionStatus, SafeRecorder
from mosaic.engine.payloads import TurnAction, decode_turn
from mosaic.engine.prompts import conversation_opening, next_action_messages
from mosaic.errors import (
    MosaicError,
    ParseError,
    ProviderError,
    StepBudgetExceeded,
    ToolExecutionError,
    ToolNotFound,
)
from mosaic.items.models import WorkItem
from mosaic.llm.client import CompletionOptions, LLMProvider
from mosaic.tools.base import ToolProvider, ToolResult, sanitize_tool_name

if TYPE_CHECKING:
    from mosaic.engine.interrupt import InterruptController

logger = logging.getLogger(__name__)


class Conversation:
    """Append-only message history for one execution run."""

    def __init__(self, opening: str) -> None:
        self._messages: list[dict[str, Any]] = [{"role": "system", "content": opening}]

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [dict(m) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def add_assistant(self, content: str) -> None:
        self._messages.append({"role": "assistant", "content": content})

    def add_tool_call(self, call_id: str, name: str, params: dict[str, Any], content: str = "") -> None:
        self._messages.append(
            {
                "role": "assistant",
                "content": content,
                "tool_calls": [
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {"name": name, "arguments": json.dumps(params, default=str)},
                    }
                ],
            }
        )

    def add_tool_result(self, call_id: str, name: str, content: str) -> None:
        self._messages.append(
            {"role": "tool", "content": content, "name": name, "tool_call_id": call_id}
        )


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of ExecutionLoop.run."""

    status: RunStatus
    steps: int
    summary: Optional[str] = None
    error: Optional[MosaicError] = None
    conversation: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def completed(cls, summary: str, steps: int, conversation: Conversation) -> "RunResult":
        return cls(RunStatus.COMPLETED, steps, summary=summary, conversation=conversation.messages)

    @classmethod
    def failed(cls, error: MosaicError, steps: int, conversation: Conversation) -> "RunResult":
        return cls(RunStatus.FAILED, steps, error=error, conversation=conversation.messages)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


def format_tool_result(result: ToolResult, preview_chars: int = 1000, extra_chars: int = 500) -> str:
    """
    Render a tool result as a bounded, readable tool turn.

    Well-known fields (url, title, content, screenshot) are pulled out; the
    rest of the payload is JSON-dumped and truncated.
    """
    if not result.success:
        return f"ERROR: {result.error or 'Tool execution failed'}"

    data = result.data
    if data is None:
        return "Success"
    if not isinstance(data, dict):
        text = data if isinstance(data, str) else json.dumps(data, indent=2, default=str)
        return f"Success: {_truncate(text, preview_chars)}"

    lines = []
    if data.get("url"):
        lines.append(f"URL: {data['url']}")
    if data.get("title"):
        lines.append(f"Title: {data['title']}")
    if data.get("content"):
        lines.append(f"Content Preview:\n{_truncate(str(data['content']), preview_chars)}")
    if data.get("screenshot"):
        lines.append("[Screenshot captured and available]")

    other = {k: v for k, v in data.items() if k not in ("url", "title", "content", "screenshot")}
    if other:
        lines.append(
            f"Additional data: {_truncate(json.dumps(other, indent=2, default=str), extra_chars)}"
        )
    return "\n".join(lines) if lines else "Success"


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class ExecutionLoop:
    """
    Bounded plan-act loop for a single leaf item.

    Each step sends the whole conversation to the model, decodes a
    ``TurnAction``, and either finishes, calls one tool, or records a
    reasoning-only turn. The conversation is the loop's only memory.
    """

    def __init__(
        self,
        llm: LLMProvider,
        config: dict,
        recorder: Optional[ActionRecorder] = None,
        interrupt: Optional["InterruptController"] = None,
    ) -> None:
        """
        Initialize execution loop.

        Args:
            llm: LLM provider
            config: Loop configuration (the ``engine.execution`` section)
            recorder: Optional action recorder, called best-effort
            interrupt: Optional cancellation signal checked before each step
        """
        self.llm = llm
        self.config = config
        self.recorder = SafeRecorder(recorder)
        self.interrupt = interrupt
        self.max_steps = config.get("max_steps", 100)
        self.temperature = config.get("temperature", 0.7)
        self.preview_chars = config.get("result_preview_chars", 1000)
        self.extra_chars = config.get("result_extra_chars", 500)

    async def run(
        self,
        item: WorkItem,
        tools: ToolProvider,
        parent_title: Optional[str] = None,
    ) -> RunResult:
        """
        Drive an item until the model reports completion.

        Provider and tool errors end the run as failed; so does running out of
        steps, after exactly ``max_steps`` model calls.

        Args:
            item: Leaf item to execute
            tools: Tool catalog and invoker
            parent_title: Title of the parent item, for focus

        Returns:
            RunResult (completed with a summary, or failed with the error)

        Raises:
            ExecutionInterrupted: If cancellation is requested between steps
        """
        conversation = Conversation(conversation_opening(item))
        catalog = tools.get_tools()
        logger.info(f"Executing {item.id} '{item.title}' with {len(catalog)} tools")

        for step in range(1, self.max_steps + 1):
            if self.interrupt is not None:
                self.interrupt.raise_if_interrupted()

            messages = next_action_messages(
                item, catalog, conversation.messages, step, self.max_steps, parent_title
            )
            try:
                completion = await self.llm.complete(
                    messages,
                    CompletionOptions(temperature=self.temperature, response_format="json"),
                )
            except ProviderError as e:
                logger.error(f"Provider failed on step {step} of {item.id}: {e}")
                return RunResult.failed(e, step, conversation)

            try:
                action = decode_turn(completion.content)
            except ParseError as e:
                logger.warning(f"Step {step} of {item.id}: unusable model output, no-op turn ({e})")
                action = TurnAction.noop(str(e))

            decision_id = await self.recorder.record_action(
                item.id,
                "decision",
                f"Step {step}: {action.action}",
                {
                    "step": step,
                    "reasoning": action.reasoning,
                    "tool": action.tool,
                    "complete": action.complete,
                },
            )
            turn_text = f"[Step {step}]\nReasoning: {action.reasoning}\nAction: {action.action}"

            if action.complete:
                conversation.add_assistant(
                    f"[Step {step}] COMPLETE\nReasoning: {action.reasoning}\nAction: {action.action}"
                )
                await self.recorder.complete_action(decision_id, ActionStatus.COMPLETED)
                logger.info(f"{item.id} completed after {step} steps")
                return RunResult.completed(
                    action.action or action.reasoning, step, conversation
                )

            if action.wants_tool:
                error = await self._call_tool(item, tools, action, step, conversation)
                if error is not None:
                    await self.recorder.complete_action(
                        decision_id, ActionStatus.FAILED, error=str(error)
                    )
                    return RunResult.failed(error, step, conversation)
            else:
                conversation.add_assistant(turn_text)

            await self.recorder.complete_action(decision_id, ActionStatus.COMPLETED)

        logger.error(f"{item.id} exceeded step budget of {self.max_steps}")
        return RunResult.failed(StepBudgetExceeded(self.max_steps), self.max_steps, conversation)

    async def _call_tool(
        self,
        item: WorkItem,
        tools: ToolProvider,
        action: TurnAction,
        step: int,
        conversation: Conversation,
    ) -> Optional[MosaicError]:
        """Invoke the requested tool and append the call and its result. Returns a fatal error, if any."""
        call_id = f"call_{step}"
        name = sanitize_tool_name(action.tool)
        conversation.add_tool_call(call_id, name, action.params)

        tool_action_id = await self.recorder.record_action(
            item.id, "tool_call", action.tool, {"step": step, "params": action.params}
        )
        try:
            result = await tools.invoke_tool(action.tool, action.params)
        except (ToolNotFound, ToolExecutionError) as e:
            logger.error(f"Tool {action.tool} failed on step {step} of {item.id}: {e}")
            await self.recorder.complete_action(tool_action_id, ActionStatus.FAILED, error=str(e))
            return e

        await self.recorder.complete_action(
            tool_action_id,
            ActionStatus.COMPLETED if result.success else ActionStatus.FAILED,
            result=result.data,
            error=result.error,
        )
        content = format_tool_result(result, self.preview_chars, self.extra_chars)
        conversation.add_tool_result(call_id, name, content)
        logger.debug(f"Tool {action.tool} -> success={result.success}, {len(content)} chars")
        return None
