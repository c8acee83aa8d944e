"""Execution statistics hook."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mosaic.hooks.base import Hook, HookContext, HookResult

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime:
    # fromisoformat only accepts a trailing "Z" from Python 3.11
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class MetricsHook(Hook):
    """
    Collect item and tool statistics into a JSON file.

    Tracks items created/completed/failed (with wall-clock durations for
    items that recorded a start time) and per-tool call/success/failure counts.

    Config options:
        output_file: Path to metrics JSON file (default: .mosaic/metrics.json)
    """

    priority = 100

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.output_file = Path(config.get("output_file", ".mosaic/metrics.json"))
        self.metrics: dict[str, Any] = {
            "items": {"created": 0, "completed": 0, "failed": 0, "durations": {}},
            "tools": {},
            "last_updated": None,
        }

        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        self._load_metrics()

    async def execute(self, context: HookContext) -> HookResult:
        event = context.event
        data = context.data
        items = self.metrics["items"]

        if event == "item.created":
            items["created"] += 1
        elif event in ("item.completed", "item.failed"):
            items[event.split(".", 1)[1]] += 1
            item = data.get("item", {})
            duration = self._duration(item)
            if duration is not None:
                items["durations"][item["id"]] = duration
        elif event == "tool.after_execute":
            tool_name = data.get("tool_name", "unknown")
            stats = self.metrics["tools"].setdefault(
                tool_name, {"calls": 0, "successes": 0, "failures": 0}
            )
            stats["calls"] += 1
            stats["successes" if data.get("success") else "failures"] += 1
        else:
            return HookResult()

        self.metrics["last_updated"] = datetime.now(timezone.utc).isoformat()
        self._save_metrics()
        return HookResult()

    @staticmethod
    def _duration(item: dict[str, Any]) -> float | None:
        started, finished = item.get("started_at"), item.get("completed_at")
        if not started or not finished:
            return None
        delta = _parse_timestamp(finished) - _parse_timestamp(started)
        return delta.total_seconds()

    def _load_metrics(self) -> None:
        if not self.output_file.exists():
            return
        try:
            with open(self.output_file) as f:
                self.metrics.update(json.load(f))
            logger.debug(f"Loaded metrics from {self.output_file}")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Error loading metrics: {e}")

    def _save_metrics(self) -> None:
        with open(self.output_file, "w") as f:
            json.dump(self.metrics, f, indent=2)

    def get_summary(self) -> dict[str, Any]:
        """Counts plus success rates."""
        items = self.metrics["items"]
        finished = items["completed"] + items["failed"]
        return {
            "items": {
                "created": items["created"],
                "completed": items["completed"],
                "failed": items["failed"],
                "success_rate": items["completed"] / finished if finished else 0.0,
            },
            "tools": {
                name: {
                    "calls": stats["calls"],
                    "success_rate": stats["successes"] / stats["calls"] if stats["calls"] else 0.0,
                }
                for name, stats in self.metrics["tools"].items()
            },
        }
