"""Unit tests for Runtime wiring and persisted resume."""

import pytest
from conftest import FakeTools, RoutingLLM, plan, turn

from mosaic.core.runtime import Runtime
from mosaic.errors import ToolExecutionError
from mosaic.items.models import WorkItemQuery, WorkItemStatus
from mosaic.tools.base import ToolResult


def _config(tmp_path, **overrides):
    config = {
        "agent": {"id": "test-agent"},
        "engine": {"planner": {"max_depth": 2}, "execution": {"max_steps": 5}},
        "items": {"persistence": {"enabled": True, "state_file": str(tmp_path / "state.json")}},
        "actions": {"output_file": str(tmp_path / "actions.jsonl")},
        "hooks": {"enabled": False},
    }
    config.update(overrides)
    return config


class TestRuntime:
    """Test the composition root with injected providers."""

    @pytest.mark.asyncio
    async def test_run_objective(self, tmp_path):
        llm = RoutingLLM()
        runtime = Runtime(_config(tmp_path), llm=llm, tools=FakeTools(), setup_logging=False)

        root = await runtime.run_objective("Write a haiku", "about rain")

        assert root.status == WorkItemStatus.COMPLETED
        assert root.created_by == "test-agent"
        assert (tmp_path / "state.json").exists()
        assert runtime.recorder.timeline(root.id)
        assert runtime.agent.loop.interrupt is runtime.interrupt

    @pytest.mark.asyncio
    async def test_failure_is_recorded_not_raised(self, tmp_path):
        llm = RoutingLLM()
        llm.turns["Loop"] = [turn("thinking")] * 5
        runtime = Runtime(_config(tmp_path), llm=llm, tools=FakeTools(), setup_logging=False)

        root = await runtime.run_objective("Loop")

        assert root.status == WorkItemStatus.FAILED
        assert "maximum steps" in root.error_message

    @pytest.mark.asyncio
    async def test_resume_from_saved_state(self, tmp_path):
        """A new runtime picks up a failed tree from the state file."""
        llm = RoutingLLM()
        llm.decisions["Launch"] = "decompose"
        llm.plans["Launch"] = plan("Design", "Build")
        llm.turns["Build"] = [turn("push", tool="deploy.push")]
        tools = FakeTools()
        tools.add("deploy.push", ToolExecutionError("registry down"))

        first = Runtime(_config(tmp_path), llm=llm, tools=tools, setup_logging=False)
        root = await first.run_objective("Launch")
        assert root.status == WorkItemStatus.FAILED

        tools.add("deploy.push", ToolResult(success=True, data="pushed"))
        llm.log.clear()
        second = Runtime(_config(tmp_path), llm=llm, tools=tools, setup_logging=False)
        await second.initialize()
        assert len(await second.store.query()) == 3

        resumed = await second.resume(root.id)

        assert resumed.status == WorkItemStatus.COMPLETED
        assert llm.log == [("decide", "Build"), ("execute", "Build")]
        children = await second.store.query(WorkItemQuery(parent_id=root.id))
        assert [c.status for c in children] == [WorkItemStatus.COMPLETED] * 2

    @pytest.mark.asyncio
    async def test_stop_and_shutdown(self, tmp_path):
        runtime = Runtime(_config(tmp_path), llm=RoutingLLM(), tools=FakeTools(), setup_logging=False)
        await runtime.initialize()

        await runtime.stop(reopen=True)
        await runtime.shutdown()

        assert runtime.interrupt.is_interrupted
        assert (tmp_path / "state.json").exists()

    @pytest.mark.asyncio
    async def test_logging_setup(self, tmp_path):
        log_file = tmp_path / "logs" / "mosaic.log"
        Runtime(
            _config(tmp_path, logging={"level": "DEBUG", "file": str(log_file)}),
            llm=RoutingLLM(),
            tools=FakeTools(),
        )

        assert log_file.parent.exists()
