"""Prompt builders for the planner and the execution loop."""

from dataclasses import dataclass, field
from typing import Optional

from mosaic.items.models import WorkItem
from mosaic.tools.base import ToolSpec


@dataclass
class SiblingContext:
    """Where a sub-item sits among its siblings."""

    parent_title: str
    position: int  # 1-based
    total: int
    others: list[tuple[str, str]] = field(default_factory=list)  # (title, status)


DECISION_SYSTEM_PROMPT = """You are deciding whether a {kind} should be executed directly or decomposed further.

BIAS TOWARD EXECUTION:
- Most {kind}s should be EXECUTED directly with tools
- Research {kind}s -> EXECUTE (fetch pages, search, analyze)
- Data gathering -> EXECUTE (navigate, extract, compile)
- Analysis {kind}s -> EXECUTE (process information, generate insights)

ONLY decompose if:
- The {kind} requires fundamentally different skill sets or domains
- The {kind} spans multiple days or weeks of work
- The {kind} has clear, independent phases (like "build a product" -> design, develop, test, deploy)

NEVER decompose:
- {Kind}s that are already {child}s (check the hierarchy context)
- Research or information gathering {kind}s
- {Kind}s that can be done with fewer than 20 tool calls

Respond with ONLY "decompose" or "execute"."""

PLAN_SYSTEM_PROMPT = """You are an expert strategic planner. Break down complex {kind}s into 3-7 concrete, actionable {child}s.
Each {child} should be specific and measurable.

IMPORTANT: Do NOT include "id" fields. IDs are generated automatically.

Respond ONLY with valid JSON in this exact format:
{{
  "reasoning": "Why and how this breakdown helps achieve the {kind}",
  "subItems": [
    {{
      "title": "{Child} title",
      "description": "What needs to be accomplished",
      "priority": "critical|high|medium|low",
      "estimatedSteps": 5,
      "dependencies": ["title of an earlier {child}, if any"]
    }}
  ]
}}"""

EXECUTION_SYSTEM_PROMPT = """You are executing a {kind}. Your goal is to COMPLETE it, not just take random actions.

Available tools:
{tools}

EXECUTION RULES:

1. PURPOSEFUL TOOL USE
   - Analyze every tool result as soon as you get it; extract the specific facts you need
   - Don't call the same tool repeatedly without processing what it returned

2. PROGRESS TOWARD COMPLETION
   - Each action must move you closer to completion
   - When you have completed the work, mark complete: true

3. OUTPUT QUALITY
   - When marking complete, your action should summarize what you accomplished
   - Be specific: "Wrote a 3-line haiku to haiku.txt" not just "Done"

RESPONSE FORMAT (JSON only):
{{
  "action": "Clear description of what you're doing",
  "reasoning": "How this helps complete the {kind}",
  "complete": false,
  "tool": "namespace.tool_name",
  "params": {{"all": "required parameters"}}
}}

Mark complete: true when you've achieved the objective."""


def _labels(item: WorkItem) -> dict[str, str]:
    kind = item.kind.label
    child = item.kind.child_label
    return {
        "kind": kind,
        "Kind": kind.capitalize(),
        "child": child,
        "Child": child.capitalize(),
    }


def describe_tools(tools: list[ToolSpec]) -> str:
    """Render the tool catalog as a bullet list with parameter summaries."""
    if not tools:
        return "(no tools available)"

    lines = []
    for spec in tools:
        properties = spec.input_schema.get("properties", {})
        if properties:
            params = ", ".join(
                f"{name} ({schema.get('type', 'string')}): {schema.get('description', '')}"
                for name, schema in properties.items()
            )
        else:
            params = "no parameters"
        required = spec.input_schema.get("required")
        suffix = f" [Required: {', '.join(required)}]" if required else ""
        lines.append(f"- {spec.name}: {spec.description}\n  Parameters: {params}{suffix}")
    return "\n\n".join(lines)


def decision_messages(
    item: WorkItem,
    depth: int,
    max_depth: int,
    siblings: Optional[SiblingContext] = None,
) -> list[dict]:
    labels = _labels(item)

    hierarchy = ""
    if siblings is not None:
        others = ", ".join(f'"{title}" ({status})' for title, status in siblings.others) or "none"
        hierarchy = (
            f"\n\nHIERARCHY CONTEXT:\n"
            f'Parent {labels["kind"]}: "{siblings.parent_title}"\n'
            f"This is {labels['child']} {siblings.position} of {siblings.total}\n"
            f"Other {labels['child']}s: {others}\n\n"
            f"IMPORTANT: This {labels['kind']} was already decomposed from a parent. "
            f"EXECUTE it; do not decompose it further unless absolutely necessary."
        )

    return [
        {"role": "system", "content": DECISION_SYSTEM_PROMPT.format(**labels)},
        {
            "role": "user",
            "content": (
                f'{labels["Kind"]}: "{item.title}"\n'
                f'Description: "{item.description}"\n'
                f"Current depth: {depth} of max {max_depth}{hierarchy}\n\n"
                f"Should this {labels['kind']} be decomposed into {labels['child']}s, "
                f"or executed directly?"
            ),
        },
    ]


def plan_messages(item: WorkItem) -> list[dict]:
    labels = _labels(item)
    return [
        {"role": "system", "content": PLAN_SYSTEM_PROMPT.format(**labels)},
        {
            "role": "user",
            "content": (
                f'{labels["Kind"]}: "{item.title}"\n'
                f'Description: "{item.description}"\n\n'
                f"Break this down into actionable {labels['child']}s."
            ),
        },
    ]


def conversation_opening(item: WorkItem) -> str:
    """First message of an execution conversation."""
    return (
        f'You are working on: "{item.title}"\n'
        f"Description: {item.description}\n\n"
        f"COMPLETE this {item.kind.label} by using tools and producing concrete results."
    )


def next_action_messages(
    item: WorkItem,
    tools: list[ToolSpec],
    conversation: list[dict],
    step: int,
    max_steps: int,
    parent_title: Optional[str] = None,
) -> list[dict]:
    """Full request for one execution step: instructions, history, then the ask."""
    labels = _labels(item)
    context = ""
    if parent_title:
        context = (
            f'\n\nCONTEXT: This is a {labels["child"]} of "{parent_title}". '
            f"Focus on completing YOUR specific part."
        )

    system = EXECUTION_SYSTEM_PROMPT.format(tools=describe_tools(tools), **labels)
    return [
        {"role": "system", "content": system},
        *conversation,
        {
            "role": "user",
            "content": (
                f'{labels["Kind"].upper()}: "{item.title}"\n'
                f'Description: "{item.description}"\n'
                f"Current step: {step}/{max_steps}{context}\n\n"
                f"What's your next action to COMPLETE this {labels['kind']}? "
                f"Respond with JSON only."
            ),
        },
    ]
