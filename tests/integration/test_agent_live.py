"""End-to-end run against the real Anthropic API. Skipped without a key."""

import os

import pytest

from mosaic.core.runtime import Runtime
from mosaic.items.models import WorkItemKind, WorkItemStatus

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not os.getenv("ANTHROPIC_API_KEY"), reason="ANTHROPIC_API_KEY not set"),
]


def _config(tmp_path):
    return {
        "llm": {"provider": "anthropic", "anthropic": {"max_tokens": 1024}},
        "engine": {"planner": {"max_depth": 1}, "execution": {"max_steps": 8}},
        "items": {"persistence": {"state_file": str(tmp_path / "state.json")}},
        "tools": {
            "filesystem": {"root": str(tmp_path / "workspace")},
            "web_fetch": {"enabled": False},
        },
        "hooks": {"enabled": False},
    }


@pytest.mark.asyncio
async def test_write_a_haiku(tmp_path):
    runtime = Runtime(_config(tmp_path), setup_logging=False)

    root = await runtime.run_objective(
        "Write a haiku about autumn to haiku.txt",
        "Use the filesystem.write_file tool to save a three-line haiku.",
        kind=WorkItemKind.TASK,
    )

    assert root.status == WorkItemStatus.COMPLETED, root.error_message
    assert (tmp_path / "workspace" / "haiku.txt").exists()
