"""Event log hook."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mosaic.hooks.base import Hook, HookContext, HookResult

logger = logging.getLogger(__name__)


class LoggingHook(Hook):
    """
    Append every event it receives to a log file.

    Config options:
        log_file: Path to log file (default: .mosaic/events.log)
        log_format: "text" or "json" (default: "text")
        max_value_length: Truncation for text-format values (default: 100)
    """

    priority = 10

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.log_file = Path(config.get("log_file", ".mosaic/events.log"))
        self.log_format = config.get("log_format", "text")
        self.max_value_length = config.get("max_value_length", 100)

        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    async def execute(self, context: HookContext) -> HookResult:
        timestamp = datetime.now(timezone.utc).isoformat()

        if self.log_format == "json":
            line = json.dumps(
                {"timestamp": timestamp, "event": context.event, "data": context.data},
                default=str,
            )
        else:
            line = f"[{timestamp}] Event: {context.event} | Data: {self._format_data(context.data)}"

        with open(self.log_file, "a") as f:
            f.write(line + "\n")

        return HookResult()

    def _format_data(self, data: dict[str, Any]) -> str:
        """Flatten event data into ``key=value`` pairs, summarizing items."""
        parts = []
        for key, value in data.items():
            if key == "item" and isinstance(value, dict):
                value = f"{value.get('id')}:{value.get('status')}:{value.get('title')}"
            text = str(value)
            if len(text) > self.max_value_length:
                text = text[: self.max_value_length - 3] + "..."
            parts.append(f"{key}={text}")
        return ", ".join(parts)
