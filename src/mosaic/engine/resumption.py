"""Re-entry into items that were already decomposed."""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from mosaic.actions.recorder import ActionRecorder, SafeRecorder
from mosaic.items.models import WorkItem, WorkItemStatus
from mosaic.items.store import WorkItemStore

logger = logging.getLogger(__name__)

WorkOnItem = Callable[[str, int], Awaitable[None]]


@dataclass
class ResumptionReport:
    """Status breakdown of an item's children at the time of resumption."""

    item_id: str
    total: int
    counts: dict[str, int] = field(default_factory=dict)
    resumed: list[str] = field(default_factory=list)

    @property
    def already_complete(self) -> bool:
        return self.counts.get(WorkItemStatus.COMPLETED.value, 0) == self.total


class ResumptionController:
    """
    Continue a decomposed item by re-running every child that is not completed.

    Failed and blocked children get a fresh attempt on every resume; there is
    no retry cap.
    """

    def __init__(
        self,
        store: WorkItemStore,
        work_on_item: WorkOnItem,
        recorder: ActionRecorder | None = None,
    ) -> None:
        """
        Args:
            store: Work item store
            work_on_item: Entry point used to run each incomplete child
            recorder: Optional action recorder, called best-effort
        """
        self.store = store
        self.work_on_item = work_on_item
        self.recorder = SafeRecorder(recorder)

    async def resume(self, item: WorkItem, depth: int) -> ResumptionReport:
        """
        Resume an item that already has children.

        Children run sequentially at ``depth + 1`` in creation order. A child
        failure propagates out and leaves later children untouched.

        Args:
            item: Previously decomposed item
            depth: Depth of the item

        Returns:
            Report with per-status counts and the ids that were re-run
        """
        children = await self.store.children(item.id)
        counts = {status.value: 0 for status in WorkItemStatus}
        for child in children:
            counts[child.status.value] += 1

        report = ResumptionReport(item_id=item.id, total=len(children), counts=counts)
        logger.info(
            f"Resuming {item.id}: {counts['completed']}/{len(children)} sub-items completed "
            f"({', '.join(f'{k}={v}' for k, v in counts.items() if v)})"
        )
        await self.recorder.record_completed(
            item.id,
            "resumption",
            f"Resuming '{item.title}': {counts['completed']}/{len(children)} sub-items completed",
            {"depth": depth, "counts": counts},
        )

        if report.already_complete:
            logger.info(f"All sub-items of {item.id} already completed")
            return report

        for child in children:
            if child.status == WorkItemStatus.COMPLETED:
                continue
            logger.info(f"Resuming sub-item {child.id} '{child.title}' (was {child.status.value})")
            report.resumed.append(child.id)
            await self.work_on_item(child.id, depth + 1)

        return report
