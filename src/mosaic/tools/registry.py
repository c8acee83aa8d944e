"""Tool registry: the default ToolProvider."""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Optional

from mosaic.errors import ToolExecutionError, ToolNotFound
from mosaic.tools.base import Tool, ToolDefinition, ToolProvider, ToolResult, ToolSpec, sanitize_tool_name

if TYPE_CHECKING:
    from mosaic.hooks.engine import HookEngine

logger = logging.getLogger(__name__)


class ToolRegistry(ToolProvider):
    """
    Registry for managing and invoking tools.

    Tools are keyed by their qualified name (``namespace.name``). Lookups also
    accept the sanitized form (``namespace_name``) the model sees in tool-call
    ids, and a bare name when it is unambiguous.
    """

    def __init__(self, config: dict, event_bus: Optional["HookEngine"] = None) -> None:
        """
        Initialize tool registry.

        Args:
            config: Tool configuration (the ``tools`` section)
            event_bus: Optional event bus notified around each invocation
        """
        self.config = config
        self.event_bus = event_bus
        self.tools: dict[str, Tool] = {}

    async def initialize(self) -> None:
        """Register the built-in tools enabled in configuration."""
        from mosaic.tools.builtin.file_ops import (
            DeleteFileTool,
            ListDirectoryTool,
            ReadFileTool,
            WriteFileTool,
        )
        from mosaic.tools.builtin.web_fetch import WebFetchTool

        fs_config = self.config.get("filesystem", {})
        if fs_config.get("enabled", True):
            for tool_class in (ReadFileTool, WriteFileTool, DeleteFileTool, ListDirectoryTool):
                self.register(tool_class(fs_config))

        web_config = self.config.get("web_fetch", {})
        if web_config.get("enabled", True):
            self.register(WebFetchTool(web_config))

        logger.info(f"Tool registry initialized with {len(self.tools)} tools")

    def register(self, tool: Tool) -> None:
        """
        Register a tool under its qualified name.

        Args:
            tool: Tool instance to register
        """
        name = tool.definition.qualified_name
        if name in self.tools:
            logger.warning(f"Tool already registered, overwriting: {name}")

        self.tools[name] = tool
        logger.info(f"Registered tool: {name}")

    def unregister(self, name: str) -> None:
        """
        Unregister a tool.

        Args:
            name: Qualified tool name
        """
        if name in self.tools:
            del self.tools[name]
            logger.info(f"Unregistered tool: {name}")

    def get(self, name: str) -> Optional[Tool]:
        """
        Resolve a tool by qualified, sanitized or bare name.

        Args:
            name: Tool name as the model wrote it

        Returns:
            Tool instance or None
        """
        if name in self.tools:
            return self.tools[name]

        sanitized = sanitize_tool_name(name)
        for qualified, tool in self.tools.items():
            if sanitize_tool_name(qualified) == sanitized:
                return tool

        bare = [t for t in self.tools.values() if t.definition.name == name]
        if len(bare) == 1:
            return bare[0]
        return None

    def list_all(self) -> list[ToolDefinition]:
        """List all registered tool definitions."""
        return [tool.definition for tool in self.tools.values()]

    def get_tools(self) -> list[ToolSpec]:
        return [tool.definition.to_spec() for tool in self.tools.values()]

    async def invoke_tool(self, name: str, params: dict[str, Any]) -> ToolResult:
        """
        Invoke a tool by name.

        Args:
            name: Tool name
            params: Keyword arguments for the tool

        Returns:
            The tool's result; a failed result is returned, not raised

        Raises:
            ToolNotFound: If no tool matches
            ToolExecutionError: If the tool raised, or rejected the parameters
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFound(name)

        qualified = tool.definition.qualified_name
        await self._publish("tool.before_execute", {"tool_name": qualified, "params": params})

        try:
            inspect.signature(tool.execute).bind(**params)
        except TypeError as e:
            await self._publish("tool.after_execute", {"tool_name": qualified, "success": False})
            raise ToolExecutionError(f"Invalid parameters for {qualified}: {e}") from e

        try:
            result = await tool.execute(**params)
        except ToolExecutionError:
            await self._publish("tool.after_execute", {"tool_name": qualified, "success": False})
            raise
        except Exception as e:
            logger.error(f"Tool {qualified} raised: {e}", exc_info=True)
            await self._publish("tool.after_execute", {"tool_name": qualified, "success": False})
            raise ToolExecutionError(str(e)) from e

        await self._publish(
            "tool.after_execute",
            {"tool_name": qualified, "success": result.success, "error": result.error},
        )
        return result

    async def _publish(self, topic: str, data: dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(topic, data)
