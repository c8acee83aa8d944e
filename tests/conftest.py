"""Shared fixtures: scripted LLM and tool providers."""

import json
import re
from typing import Any, Callable, Optional, Union

import pytest

from mosaic.items.store import WorkItemStore
from mosaic.llm.client import Completion, CompletionOptions, LLMProvider
from mosaic.tools.base import ToolProvider, ToolResult, ToolSpec
from mosaic.errors import ToolNotFound

_TITLE_RE = re.compile(r'^\w+: "(.*)"', re.MULTILINE)

Response = Union[str, Exception]


def turn(action: str = "", complete: bool = False, tool: Optional[str] = None, **params: Any) -> str:
    """Build an execution-loop turn as the model would emit it."""
    payload: dict[str, Any] = {"action": action, "reasoning": f"because {action}", "complete": complete}
    if tool:
        payload["tool"] = tool
        payload["params"] = params
    return json.dumps(payload)


def plan(*titles: str, reasoning: str = "split it up") -> str:
    """Build a decomposition plan response wrapped in a code fence."""
    body = {
        "reasoning": reasoning,
        "subItems": [
            {"title": t, "description": f"do {t}", "priority": "high", "estimatedSteps": 3}
            for t in titles
        ],
    }
    return f"```json\n{json.dumps(body)}\n```"


class ScriptedLLM(LLMProvider):
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, responses: Optional[list[Response]] = None, default: Optional[str] = None):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[tuple[list[dict], Optional[CompletionOptions]]] = []

    async def complete(self, messages, options=None) -> Completion:
        self.calls.append((messages, options))
        if self.responses:
            response = self.responses.pop(0)
        elif self.default is not None:
            response = self.default
        else:
            raise AssertionError("ScriptedLLM ran out of responses")
        if isinstance(response, Exception):
            raise response
        return Completion(content=response, model="scripted")


class RoutingLLM(LLMProvider):
    """
    Answers by request type and item title.

    decisions: title -> "decompose" / "execute" (default "execute")
    plans: title -> plan response
    turns: title -> queue of execution turns (default: complete immediately)
    """

    def __init__(self):
        self.decisions: dict[str, str] = {}
        self.plans: dict[str, str] = {}
        self.turns: dict[str, list[Response]] = {}
        self.log: list[tuple[str, str]] = []  # (request type, title)

    async def complete(self, messages, options=None) -> Completion:
        system = messages[0]["content"]
        match = _TITLE_RE.search(messages[-1]["content"])
        title = match.group(1) if match else ""

        if "deciding whether" in system:
            self.log.append(("decide", title))
            return Completion(content=self.decisions.get(title, "execute"))
        if "strategic planner" in system:
            self.log.append(("plan", title))
            return Completion(content=self.plans[title])

        self.log.append(("execute", title))
        queue = self.turns.get(title)
        response = queue.pop(0) if queue else turn(f"finished {title}", complete=True)
        if isinstance(response, Exception):
            raise response
        return Completion(content=response)


class FakeTools(ToolProvider):
    """Tool provider whose tools return canned results or raise."""

    def __init__(self):
        self.handlers: dict[str, Callable[[dict], Any]] = {}
        self.calls: list[tuple[str, dict]] = []

    def add(self, name: str, outcome: Union[ToolResult, Exception, Callable[[dict], Any]]) -> None:
        if callable(outcome) and not isinstance(outcome, Exception):
            self.handlers[name] = outcome
        else:
            self.handlers[name] = lambda params, outcome=outcome: outcome

    def get_tools(self) -> list[ToolSpec]:
        return [
            ToolSpec(name=name, description=f"fake {name}", input_schema={"type": "object"})
            for name in self.handlers
        ]

    async def invoke_tool(self, name: str, params: dict) -> ToolResult:
        self.calls.append((name, params))
        if name not in self.handlers:
            raise ToolNotFound(name)
        outcome = self.handlers[name](params)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def store():
    """In-memory store with persistence off."""
    return WorkItemStore({"persistence": {"enabled": False}})


@pytest.fixture
def tools():
    return FakeTools()


@pytest.fixture
def routing_llm():
    return RoutingLLM()
