"""Base classes for the tool system."""

import asyncio
import inspect
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_tool_name(name: str) -> str:
    """Map a dotted tool name onto the ``[a-zA-Z0-9_-]`` identifier syntax."""
    return _UNSAFE_NAME_CHARS.sub("_", name)


class ToolParameter(BaseModel):
    """Tool parameter definition."""

    name: str
    type: str  # "string", "integer", "number", "boolean", "object", "array"
    description: str
    required: bool = True
    default: Optional[Any] = None
    enum: Optional[list[Any]] = None


class ToolSpec(BaseModel):
    """Catalog entry advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """Tool metadata and configuration."""

    name: str
    description: str
    parameters: list[ToolParameter]
    namespace: Optional[str] = None
    timeout_seconds: int = 60

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def input_schema(self) -> dict[str, Any]:
        """JSON schema for the tool's parameters."""
        properties: dict[str, Any] = {}
        required = []

        for param in self.parameters:
            properties[param.name] = {"type": param.type, "description": param.description}
            if param.enum:
                properties[param.name]["enum"] = param.enum
            if param.required:
                required.append(param.name)

        schema: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def to_spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.qualified_name,
            description=self.description,
            input_schema=self.input_schema(),
        )


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class Tool(ABC):
    """Base tool interface."""

    definition: ToolDefinition

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """
        Execute the tool.

        Expected failures come back as ``ToolResult(success=False)``; anything
        raised is treated by the provider as a tool execution error.

        Args:
            **kwargs: Tool parameters

        Returns:
            ToolResult with execution result
        """
        pass


class ToolProvider(ABC):
    """Source of callable tools for the execution loop."""

    @abstractmethod
    def get_tools(self) -> list[ToolSpec]:
        """Return the current tool catalog."""
        pass

    @abstractmethod
    async def invoke_tool(self, name: str, params: dict[str, Any]) -> ToolResult:
        """
        Invoke a tool by name.

        Raises:
            ToolNotFound: If no tool matches the name
            ToolExecutionError: If the tool raised while executing
        """
        pass


def _python_type_to_json_type(annotation: Any) -> str:
    """Convert Python type annotation to JSON schema type."""
    if annotation is str:
        return "string"
    if annotation is bool:
        return "boolean"
    if annotation is int:
        return "integer"
    if annotation is float:
        return "number"
    if annotation is list or getattr(annotation, "__origin__", None) is list:
        return "array"
    if annotation is dict or getattr(annotation, "__origin__", None) is dict:
        return "object"
    return "string"


def tool(
    name: str,
    namespace: Optional[str] = None,
    timeout_seconds: int = 60,
) -> Callable[[Callable[..., Any]], Tool]:
    """
    Decorator to convert a function into a Tool.

    The first docstring line becomes the description. Exceptions raised by the
    function are returned as a failed ToolResult.

    Args:
        name: Tool name
        namespace: Optional namespace; the tool is addressed as ``namespace.name``
        timeout_seconds: Execution timeout

    Returns:
        Tool instance wrapping the function
    """

    def decorator(func: Callable[..., Any]) -> Tool:
        params = []
        for param_name, param in inspect.signature(func).parameters.items():
            params.append(
                ToolParameter(
                    name=param_name,
                    type=_python_type_to_json_type(param.annotation),
                    description=f"Parameter: {param_name}",
                    required=param.default is inspect.Parameter.empty,
                    default=None if param.default is inspect.Parameter.empty else param.default,
                )
            )

        class FunctionTool(Tool):
            definition = ToolDefinition(
                name=name,
                namespace=namespace,
                description=func.__doc__.strip().split("\n")[0] if func.__doc__ else "",
                parameters=params,
                timeout_seconds=timeout_seconds,
            )

            async def execute(self, **kwargs: Any) -> ToolResult:
                try:
                    if asyncio.iscoroutinefunction(func):
                        result = await func(**kwargs)
                    else:
                        result = func(**kwargs)
                    return ToolResult(success=True, data=result)
                except Exception as e:
                    return ToolResult(success=False, error=str(e))

        return FunctionTool()

    return decorator
