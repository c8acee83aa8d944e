"""Typed payloads decoded from model output."""

import json
import re
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from mosaic.errors import ParseError
from mosaic.items.models import WorkItemPriority

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced code block, or the text unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def decode_json_object(text: str) -> dict[str, Any]:
    """
    Leniently pull a JSON object out of model output.

    Strips a markdown fence, then takes the outermost ``{...}`` span.

    Raises:
        ParseError: If no JSON object can be decoded
    """
    body = strip_code_fence(text or "")
    match = _OBJECT_RE.search(body)
    if match:
        body = match.group(0)

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ParseError(f"Response is not valid JSON: {e.msg} (got: {body[:200]!r})") from e

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def coerce_priority(value: Any) -> WorkItemPriority:
    """Map free-form priority text onto the enum, defaulting to MEDIUM."""
    if isinstance(value, WorkItemPriority):
        return value
    if isinstance(value, str):
        try:
            return WorkItemPriority(value.strip().lower())
        except ValueError:
            pass
    return WorkItemPriority.MEDIUM


class TurnAction(BaseModel):
    """One planning turn of the execution loop."""

    model_config = ConfigDict(extra="ignore")

    action: str = ""
    reasoning: str = ""
    complete: bool = False
    tool: Optional[str] = None
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("action", "reasoning", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else json.dumps(value)

    @field_validator("params", mode="before")
    @classmethod
    def _default_params(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("tool", mode="before")
    @classmethod
    def _blank_tool(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def noop(cls, reason: str) -> "TurnAction":
        """Placeholder turn used when the model output could not be decoded."""
        return cls(action="Unable to plan next action", reasoning=reason, complete=False)

    @property
    def wants_tool(self) -> bool:
        return not self.complete and bool(self.tool)


class SubItemSpec(BaseModel):
    """A planned sub-item. Model-supplied ids are dropped by ``extra='ignore'``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    description: str = ""
    priority: WorkItemPriority = WorkItemPriority.MEDIUM
    estimated_steps: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("estimatedSteps", "estimated_steps")
    )
    dependencies: list[str] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> WorkItemPriority:
        return coerce_priority(value)

    @field_validator("estimated_steps", mode="before")
    @classmethod
    def _steps(cls, value: Any) -> Optional[int]:
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    @field_validator("dependencies", mode="before")
    @classmethod
    def _dependencies(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            value = [value]
        return [str(v) for v in value]


class DecompositionPlan(BaseModel):
    """A decomposition plan: rationale plus ordered sub-items."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    reasoning: str = ""
    sub_items: list[SubItemSpec] = Field(
        default_factory=list,
        validation_alias=AliasChoices("subItems", "sub_items", "subTasks", "subGoals"),
    )


def decode_turn(text: str) -> TurnAction:
    """
    Decode an execution-loop turn.

    Raises:
        ParseError: If the output is not a usable turn object
    """
    data = decode_json_object(text)
    try:
        return TurnAction.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Malformed turn payload: {e}") from e


def decode_plan(text: str) -> DecompositionPlan:
    """
    Decode a decomposition plan.

    Raises:
        ParseError: If the output is not a usable plan object
    """
    data = decode_json_object(text)
    try:
        return DecompositionPlan.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Malformed decomposition plan: {e}") from e
