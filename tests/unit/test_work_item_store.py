"""Unit tests for WorkItemStore."""

import json

import pytest

from mosaic.engine.payloads import DecompositionPlan, SubItemSpec
from mosaic.errors import InvalidState, WorkItemNotFound
from mosaic.hooks.engine import HookEngine
from mosaic.items.models import (
    WorkItemCreate,
    WorkItemKind,
    WorkItemPriority,
    WorkItemQuery,
    WorkItemStatus,
)
from mosaic.items.store import WorkItemStore


async def _tree_of(store, *titles_per_level):
    """Create a root with one child per title; returns (root, children)."""
    root = await store.create({"title": "root"})
    children = [await store.create({"title": t, "parent_id": root.id}) for t in titles_per_level]
    return root, children


class TestCreate:
    """Test item creation and hierarchy linkage."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, store):
        """New items start OPEN with a generated id."""
        item = await store.create(WorkItemCreate(title="Write a haiku"))

        assert item.id
        assert item.status == WorkItemStatus.OPEN
        assert item.priority == WorkItemPriority.MEDIUM
        assert item.kind == WorkItemKind.TASK
        assert item.child_ids == []
        assert item.started_at is None

    @pytest.mark.asyncio
    async def test_create_accepts_dict(self, store):
        """A plain dict spec is validated into WorkItemCreate."""
        item = await store.create({"title": "x", "priority": "high", "tags": ["a", "b"]})

        assert item.priority == WorkItemPriority.HIGH
        assert item.tags == {"a", "b"}

    @pytest.mark.asyncio
    async def test_child_ids_follow_creation_order(self, store):
        """child_ids are derived from parent_id in creation order."""
        root, children = await _tree_of(store, "a", "b", "c")

        fetched = await store.get(root.id)
        assert fetched.child_ids == [c.id for c in children]

    @pytest.mark.asyncio
    async def test_create_with_unknown_parent(self, store):
        """Unknown parent ids are rejected and nothing is inserted."""
        with pytest.raises(WorkItemNotFound):
            await store.create({"title": "orphan", "parent_id": "missing"})

        assert await store.query() == []

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        """Mutating a returned item does not touch the stored one."""
        item = await store.create({"title": "x"})
        item.title = "changed"
        item.metadata["k"] = "v"

        fetched = await store.get(item.id)
        assert fetched.title == "x"
        assert fetched.metadata == {}

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("nope") is None
        with pytest.raises(WorkItemNotFound):
            await store.require("nope")


class TestUpdate:
    """Test partial updates, transitions and timestamps."""

    @pytest.mark.asyncio
    async def test_metadata_is_merged(self, store):
        item = await store.create({"title": "x", "metadata": {"a": 1}})

        updated = await store.update(item.id, {"metadata": {"b": 2}})

        assert updated.metadata == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_started_at_stamped_once(self, store):
        """started_at is set on the first move into IN_PROGRESS only."""
        item = await store.create({"title": "x"})
        first = await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})
        again = await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})

        assert first.started_at is not None
        assert again.started_at == first.started_at

    @pytest.mark.asyncio
    async def test_completed_at_not_restamped(self, store):
        """Repeating a terminal status leaves completed_at unchanged."""
        item = await store.create({"title": "x"})
        done = await store.update(item.id, {"status": WorkItemStatus.COMPLETED})
        again = await store.update(item.id, {"status": WorkItemStatus.COMPLETED})

        assert done.completed_at is not None
        assert again.completed_at == done.completed_at

    @pytest.mark.asyncio
    async def test_retry_clears_then_restamps_completed_at(self, store):
        """A failed item moved back to IN_PROGRESS has no completion time until it finishes again."""
        item = await store.create({"title": "x"})
        await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})
        failed = await store.update(item.id, {"status": WorkItemStatus.FAILED})

        retrying = await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})
        assert retrying.completed_at is None
        assert retrying.started_at == failed.started_at

        done = await store.update(item.id, {"status": WorkItemStatus.COMPLETED})
        assert done.completed_at is not None
        assert done.completed_at >= failed.completed_at

    @pytest.mark.asyncio
    async def test_failed_stamps_completed_at(self, store):
        item = await store.create({"title": "x"})
        failed = await store.update(
            item.id, {"status": WorkItemStatus.FAILED, "error_message": "boom"}
        )

        assert failed.completed_at is not None
        assert failed.error_message == "boom"

    @pytest.mark.asyncio
    async def test_completed_is_terminal(self, store):
        """COMPLETED items cannot move anywhere else; the item is untouched."""
        item = await store.create({"title": "x"})
        await store.update(item.id, {"status": WorkItemStatus.COMPLETED})

        with pytest.raises(InvalidState):
            await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})

        assert (await store.get(item.id)).status == WorkItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_in_progress_to_open_requires_reopen(self, store):
        """Going back to OPEN only happens through reopen()."""
        item = await store.create({"title": "x"})
        await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})

        with pytest.raises(InvalidState):
            await store.update(item.id, {"status": WorkItemStatus.OPEN})

        reopened = await store.reopen(item.id)
        assert reopened.status == WorkItemStatus.OPEN

    @pytest.mark.asyncio
    async def test_failed_can_be_retried(self, store):
        item = await store.create({"title": "x"})
        await store.update(item.id, {"status": WorkItemStatus.FAILED})

        retried = await store.update(item.id, {"status": WorkItemStatus.IN_PROGRESS})
        assert retried.status == WorkItemStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_immutable_fields_rejected(self, store):
        root, (child,) = await _tree_of(store, "a")

        for field in ("id", "parent_id", "child_ids", "sequence", "created_at"):
            with pytest.raises(InvalidState):
                await store.update(child.id, {field: "x"})

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, store):
        item = await store.create({"title": "x"})
        with pytest.raises(ValueError):
            await store.update(item.id, {"colour": "blue"})

    @pytest.mark.asyncio
    async def test_invalid_value_rejected(self, store):
        item = await store.create({"title": "x"})
        with pytest.raises(ValueError):
            await store.update(item.id, {"status": "sleeping"})

    @pytest.mark.asyncio
    async def test_update_missing_item(self, store):
        with pytest.raises(WorkItemNotFound):
            await store.update("missing", {"title": "x"})


class TestQueryAndTree:
    """Test filtering, depth and tree materialization."""

    @pytest.mark.asyncio
    async def test_query_filters(self, store):
        root, (a, b) = await _tree_of(store, "a", "b")
        await store.update(a.id, {"status": WorkItemStatus.COMPLETED})

        completed = await store.query(WorkItemQuery(status=WorkItemStatus.COMPLETED))
        roots = await store.query(WorkItemQuery(roots_only=True))
        children = await store.query(WorkItemQuery(parent_id=root.id))

        assert [i.id for i in completed] == [a.id]
        assert [i.id for i in roots] == [root.id]
        assert [i.id for i in children] == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_depth(self, store):
        root, (child,) = await _tree_of(store, "a")
        grandchild = await store.create({"title": "g", "parent_id": child.id})

        assert await store.depth(root.id) == 0
        assert await store.depth(child.id) == 1
        assert await store.depth(grandchild.id) == 2

    @pytest.mark.asyncio
    async def test_tree_annotates_depth(self, store):
        root, (a, b) = await _tree_of(store, "a", "b")
        await store.create({"title": "a1", "parent_id": a.id})

        tree = await store.tree(root.id)

        assert [n.item.title for n in tree.walk()] == ["root", "a", "a1", "b"]
        assert [n.depth for n in tree.walk()] == [0, 1, 2, 1]

    @pytest.mark.asyncio
    async def test_tree_terminates_on_cycle(self, store):
        """A corrupted parent chain forming a cycle still yields a finite tree."""
        a = await store.create({"title": "a"})
        b = await store.create({"title": "b", "parent_id": a.id})
        # Corrupt the graph directly: a's parent becomes b.
        store._items[a.id] = store._items[a.id].model_copy(update={"parent_id": b.id})

        tree = await store.tree(a.id)

        assert [n.item.id for n in tree.walk()] == [a.id, b.id]
        assert await store.depth(a.id) == 1

    @pytest.mark.asyncio
    async def test_tree_missing_root(self, store):
        assert await store.tree("missing") is None

    @pytest.mark.asyncio
    async def test_stats(self, store):
        root, (a, b) = await _tree_of(store, "a", "b")
        await store.update(a.id, {"status": WorkItemStatus.FAILED})

        stats = await store.stats()

        assert stats.total == 3
        assert stats.roots == 1
        assert stats.by_status["failed"] == 1
        assert stats.by_status["open"] == 2
        assert stats.by_priority == {"medium": 3}


class TestDelete:
    """Test delete guards and cascading."""

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store):
        assert await store.delete("missing") is False

    @pytest.mark.asyncio
    async def test_delete_removes_subtree(self, store):
        root, (a, b) = await _tree_of(store, "a", "b")
        await store.create({"title": "a1", "parent_id": a.id})

        assert await store.delete(root.id) is True
        assert await store.query() == []

    @pytest.mark.asyncio
    async def test_delete_child_updates_parent_links(self, store):
        root, (a, b) = await _tree_of(store, "a", "b")

        await store.delete(a.id)

        assert (await store.get(root.id)).child_ids == [b.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [WorkItemStatus.IN_PROGRESS, WorkItemStatus.BLOCKED])
    async def test_delete_refused_for_active_item(self, store, status):
        item = await store.create({"title": "x"})
        await store.update(item.id, {"status": status})

        with pytest.raises(InvalidState):
            await store.delete(item.id)
        assert await store.get(item.id) is not None

    @pytest.mark.asyncio
    async def test_delete_refused_for_active_descendant(self, store):
        root, (a,) = await _tree_of(store, "a")
        grandchild = await store.create({"title": "g", "parent_id": a.id})
        await store.update(grandchild.id, {"status": WorkItemStatus.IN_PROGRESS})

        with pytest.raises(InvalidState):
            await store.delete(root.id)
        assert len(await store.query()) == 3


class TestDecompose:
    """Test creating children from a plan."""

    @pytest.mark.asyncio
    async def test_children_inherit_from_parent(self, store):
        parent = await store.create(
            {
                "title": "Launch a product",
                "kind": "goal",
                "assigned_to": "agent-1",
                "created_by": "alice",
                "tags": ["launch"],
            }
        )
        plan = DecompositionPlan(
            reasoning="phases",
            sub_items=[
                SubItemSpec(title="Design", estimated_steps=4),
                SubItemSpec(title="Build", dependencies=["Design"]),
            ],
        )

        children = await store.decompose(parent.id, plan)

        assert [c.title for c in children] == ["Design", "Build"]
        for child in children:
            assert child.parent_id == parent.id
            assert child.kind == WorkItemKind.GOAL
            assert child.assigned_to == "agent-1"
            assert child.created_by == "agent-1"
            assert child.tags == {"launch"}
            assert child.metadata["decomposition_reasoning"] == "phases"
        assert children[0].metadata["estimated_steps"] == 4
        assert children[1].metadata["dependencies"] == ["Design"]

        updated = await store.get(parent.id)
        assert updated.strategy == "phases"
        assert updated.is_decomposed
        assert "decomposed_at" in updated.metadata
        assert updated.child_ids == [c.id for c in children]


class TestEventsAndPersistence:
    """Test event publication and JSON state files."""

    @pytest.mark.asyncio
    async def test_events_published(self):
        bus = HookEngine({})
        events = []
        bus.subscribe("*", lambda ctx: events.append(ctx.event))
        store = WorkItemStore({"persistence": {"enabled": False}}, event_bus=bus)

        item = await store.create({"title": "x"})
        await store.update(item.id, {"status": WorkItemStatus.COMPLETED})
        await store.delete(item.id)

        assert events == ["item.created", "item.updated", "item.completed", "item.deleted"]

    @pytest.mark.asyncio
    async def test_save_and_load_roundtrip(self, tmp_path):
        state_file = tmp_path / "state.json"
        config = {"persistence": {"enabled": True, "state_file": str(state_file)}}
        store = WorkItemStore(config)
        root, (a, b) = await _tree_of(store, "a", "b")
        await store.update(a.id, {"status": WorkItemStatus.COMPLETED, "result": {"summary": "ok"}})
        await store.save_state()

        saved = json.loads(state_file.read_text())
        assert "child_ids" not in saved["items"][root.id]

        restored = WorkItemStore(config)
        assert await restored.load_state() == 3
        assert (await restored.get(root.id)).child_ids == [a.id, b.id]
        assert (await restored.get(a.id)).result == {"summary": "ok"}

        newer = await restored.create({"title": "c", "parent_id": root.id})
        assert (await restored.get(root.id)).child_ids == [a.id, b.id, newer.id]

    @pytest.mark.asyncio
    async def test_autosave(self, tmp_path):
        state_file = tmp_path / "state.json"
        store = WorkItemStore(
            {"persistence": {"enabled": True, "autosave": True, "state_file": str(state_file)}}
        )

        await store.create({"title": "x"})

        assert state_file.exists()

    @pytest.mark.asyncio
    async def test_load_missing_file(self, tmp_path):
        store = WorkItemStore({"persistence": {"state_file": str(tmp_path / "none.json")}})
        assert await store.load_state() == 0
