"""Unit tests for the read-only and delete CLI commands."""

import asyncio

import pytest
import yaml
from click.testing import CliRunner

from mosaic.cli import main
from mosaic.items.models import WorkItemStatus
from mosaic.items.store import WorkItemStore


@pytest.fixture
def state(tmp_path):
    """Config file plus a saved tree: a root with one completed and one open child."""
    state_file = tmp_path / "state.json"
    config_file = tmp_path / "mosaic.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "items": {"persistence": {"state_file": str(state_file)}},
                "hooks": {"enabled": False},
                "logging": {"file": str(tmp_path / "mosaic.log")},
            }
        )
    )

    async def build():
        store = WorkItemStore({"persistence": {"state_file": str(state_file)}})
        root = await store.create({"title": "Launch a product", "kind": "goal"})
        design = await store.create({"title": "Design", "parent_id": root.id})
        await store.create({"title": "Build", "parent_id": root.id})
        await store.update(design.id, {"status": WorkItemStatus.COMPLETED})
        await store.save_state()
        return root.id

    root_id = asyncio.run(build())
    return config_file, state_file, root_id


def _invoke(config_file, *args):
    return CliRunner().invoke(main, ["--config", str(config_file), *args])


class TestCli:
    def test_tree(self, state):
        config_file, _, root_id = state

        result = _invoke(config_file, "tree", root_id[:8])

        assert result.exit_code == 0, result.output
        assert "Launch a product" in result.output
        assert "Design" in result.output
        assert "completed" in result.output

    def test_list_filters_by_status(self, state):
        config_file, _, _ = state

        result = _invoke(config_file, "list", "--status", "completed")

        assert result.exit_code == 0, result.output
        assert "Design" in result.output
        assert "Build" not in result.output

    def test_stats(self, state):
        config_file, _, _ = state

        result = _invoke(config_file, "stats")

        assert result.exit_code == 0, result.output
        assert "3 work items (1 roots)" in result.output

    def test_delete_subtree(self, state):
        config_file, state_file, root_id = state

        result = _invoke(config_file, "delete", root_id)

        assert result.exit_code == 0, result.output
        store = WorkItemStore({"persistence": {"state_file": str(state_file)}})
        assert asyncio.run(store.load_state()) == 0

    def test_unknown_id(self, state):
        config_file, _, _ = state

        result = _invoke(config_file, "tree", "zzzz")

        assert result.exit_code != 0
        assert "No work item matches" in result.output
