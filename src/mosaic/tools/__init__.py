"""Tool system."""

from mosaic.tools.base import Tool, ToolDefinition, ToolParameter, ToolProvider, ToolResult, ToolSpec, tool
from mosaic.tools.registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolDefinition",
    "ToolParameter",
    "ToolProvider",
    "ToolResult",
    "ToolSpec",
    "ToolRegistry",
    "tool",
]
