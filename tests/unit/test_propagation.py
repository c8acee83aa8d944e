"""Unit tests for the completion cascade."""

import pytest

from mosaic.engine.propagation import (
    FAILED_CHILD_MESSAGE,
    CompletionPropagator,
    aggregate_results,
)
from mosaic.items.models import WorkItem, WorkItemStatus


async def _complete(store, item_id, summary="done"):
    await store.update(item_id, {"status": WorkItemStatus.COMPLETED, "result": {"summary": summary}})


class TestCascade:
    """Test parent status derivation."""

    @pytest.mark.asyncio
    async def test_parent_completes_when_all_children_complete(self, store):
        parent = await store.create({"title": "Launch"})
        a = await store.create({"title": "Design", "parent_id": parent.id})
        b = await store.create({"title": "Build", "parent_id": parent.id})
        await store.update(parent.id, {"status": WorkItemStatus.IN_PROGRESS})
        propagator = CompletionPropagator(store)

        await _complete(store, a.id, "mockups")
        assert await propagator.on_child_status_changed(parent.id) == []
        assert (await store.get(parent.id)).status == WorkItemStatus.IN_PROGRESS

        await _complete(store, b.id, "binary")
        assert await propagator.on_child_status_changed(parent.id) == [parent.id]

        done = await store.get(parent.id)
        assert done.status == WorkItemStatus.COMPLETED
        assert done.completed_at is not None
        assert done.result["summary"] == "- Design: mockups\n- Build: binary"
        assert [r["title"] for r in done.result["child_results"]] == ["Design", "Build"]

    @pytest.mark.asyncio
    async def test_cascade_reaches_root(self, store):
        root = await store.create({"title": "root"})
        mid = await store.create({"title": "mid", "parent_id": root.id})
        leaf = await store.create({"title": "leaf", "parent_id": mid.id})

        await _complete(store, leaf.id)
        changed = await CompletionPropagator(store).on_child_status_changed(mid.id)

        assert changed == [mid.id, root.id]
        assert (await store.get(root.id)).status == WorkItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_child_fails_parent(self, store):
        parent = await store.create({"title": "p"})
        a = await store.create({"title": "a", "parent_id": parent.id})
        await store.create({"title": "b", "parent_id": parent.id})

        await store.update(a.id, {"status": WorkItemStatus.FAILED, "error_message": "boom"})
        changed = await CompletionPropagator(store).on_child_status_changed(parent.id)

        failed = await store.get(parent.id)
        assert changed == [parent.id]
        assert failed.status == WorkItemStatus.FAILED
        assert failed.error_message == FAILED_CHILD_MESSAGE

    @pytest.mark.asyncio
    async def test_failed_parent_completes_after_retry(self, store):
        """A parent failed by a child completes once every child succeeds."""
        parent = await store.create({"title": "p"})
        a = await store.create({"title": "a", "parent_id": parent.id})
        propagator = CompletionPropagator(store)
        await store.update(a.id, {"status": WorkItemStatus.FAILED})
        await propagator.on_child_status_changed(parent.id)

        await store.update(a.id, {"status": WorkItemStatus.IN_PROGRESS})
        await _complete(store, a.id)
        await propagator.on_child_status_changed(parent.id)

        done = await store.get(parent.id)
        assert done.status == WorkItemStatus.COMPLETED
        assert done.error_message is None

    @pytest.mark.asyncio
    async def test_completed_parent_is_untouched(self, store):
        parent = await store.create({"title": "p"})
        a = await store.create({"title": "a", "parent_id": parent.id})
        await _complete(store, a.id)
        propagator = CompletionPropagator(store)

        assert await propagator.on_child_status_changed(parent.id) == [parent.id]
        first = await store.get(parent.id)
        assert await propagator.on_child_status_changed(parent.id) == []
        assert (await store.get(parent.id)).completed_at == first.completed_at

    @pytest.mark.asyncio
    async def test_open_children_leave_parent_alone(self, store):
        parent = await store.create({"title": "p"})
        await store.create({"title": "a", "parent_id": parent.id})

        assert await CompletionPropagator(store).on_child_status_changed(parent.id) == []
        assert (await store.get(parent.id)).status == WorkItemStatus.OPEN

    @pytest.mark.asyncio
    async def test_noop_inputs(self, store):
        propagator = CompletionPropagator(store)
        leaf = await store.create({"title": "leaf"})

        assert await propagator.on_child_status_changed(None) == []
        assert await propagator.on_child_status_changed("missing") == []
        assert await propagator.on_child_status_changed(leaf.id) == []


class TestAttachedPropagator:
    """Status changes made directly through the store cascade once attached."""

    @pytest.mark.asyncio
    async def test_store_update_completes_ancestors(self, store):
        root = await store.create({"title": "root"})
        mid = await store.create({"title": "mid", "parent_id": root.id})
        leaf = await store.create({"title": "leaf", "parent_id": mid.id})
        CompletionPropagator(store).attach()

        await _complete(store, leaf.id)

        assert (await store.get(mid.id)).status == WorkItemStatus.COMPLETED
        assert (await store.get(root.id)).status == WorkItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_store_update_fails_parent(self, store):
        parent = await store.create({"title": "p"})
        a = await store.create({"title": "a", "parent_id": parent.id})
        await store.create({"title": "b", "parent_id": parent.id})
        CompletionPropagator(store).attach()

        await store.update(a.id, {"status": WorkItemStatus.FAILED, "error_message": "boom"})

        failed = await store.get(parent.id)
        assert failed.status == WorkItemStatus.FAILED
        assert failed.error_message == FAILED_CHILD_MESSAGE

    @pytest.mark.asyncio
    async def test_unblocking_last_child_completes_parent(self, store):
        """An operator completing a blocked child rolls the parent up."""
        parent = await store.create({"title": "Launch"})
        design = await store.create({"title": "Design", "parent_id": parent.id})
        build = await store.create({"title": "Build", "parent_id": parent.id})
        await store.update(parent.id, {"status": WorkItemStatus.IN_PROGRESS})
        CompletionPropagator(store).attach()
        await _complete(store, design.id, "mockups")
        await store.update(build.id, {"status": WorkItemStatus.BLOCKED})
        assert (await store.get(parent.id)).status == WorkItemStatus.IN_PROGRESS

        await _complete(store, build.id, "unblocked by hand")

        done = await store.get(parent.id)
        assert done.status == WorkItemStatus.COMPLETED
        assert done.result["summary"] == "- Design: mockups\n- Build: unblocked by hand"

    @pytest.mark.asyncio
    async def test_detached_store_does_not_cascade(self, store):
        parent = await store.create({"title": "p"})
        a = await store.create({"title": "a", "parent_id": parent.id})

        await _complete(store, a.id)

        assert (await store.get(parent.id)).status == WorkItemStatus.OPEN

    @pytest.mark.asyncio
    async def test_explicit_call_after_store_cascade_is_noop(self, store):
        parent = await store.create({"title": "p"})
        a = await store.create({"title": "a", "parent_id": parent.id})
        propagator = CompletionPropagator(store)
        propagator.attach()
        await _complete(store, a.id)
        first = await store.get(parent.id)

        assert await propagator.on_child_status_changed(parent.id) == []
        assert (await store.get(parent.id)).completed_at == first.completed_at


class TestAggregateResults:
    def test_mixed_result_shapes(self, store):
        children = [
            WorkItem(id="1", title="a", result={"summary": "alpha"}),
            WorkItem(id="2", title="b", result="plain text"),
            WorkItem(id="3", title="c"),
        ]

        aggregated = aggregate_results(children)

        assert aggregated["summary"] == "- a: alpha\n- b: plain text\n- c"
        assert [r["id"] for r in aggregated["child_results"]] == ["1", "2", "3"]
