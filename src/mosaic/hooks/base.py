"""Base classes for the hook system."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union


@dataclass
class HookContext:
    """Context passed to hooks for one published event."""

    event: str  # e.g. "item.created", "tool.after_execute"
    data: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)  # Shared between hooks of one event


@dataclass
class HookResult:
    """Result returned from hook execution."""

    action: str = "continue"  # "continue" or "stop" (skip remaining hooks for this event)
    metadata: Optional[dict[str, Any]] = None


class Hook(ABC):
    """Base hook interface."""

    priority: int = 100  # Lower runs first

    @abstractmethod
    async def execute(self, context: HookContext) -> HookResult:
        """
        Handle a published event.

        Args:
            context: Hook execution context

        Returns:
            HookResult; metadata is merged into the context for later hooks
        """
        pass

    def should_run(self, context: HookContext) -> bool:
        """Filter hook; return False to skip this event."""
        return True


HookCallback = Callable[[HookContext], Union[None, HookResult, Awaitable[Optional[HookResult]]]]


class FunctionHook(Hook):
    """Adapts a plain (sync or async) callable to the Hook interface."""

    def __init__(self, func: HookCallback, priority: int = 100) -> None:
        self.func = func
        self.priority = priority

    async def execute(self, context: HookContext) -> HookResult:
        result = self.func(context)
        if asyncio.iscoroutine(result):
            result = await result
        return result if isinstance(result, HookResult) else HookResult()
