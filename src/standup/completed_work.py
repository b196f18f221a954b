"""
Completed Work 調整

把已記錄的工時加到 Task 的 Completed Work，並反向扣除 Remaining Work。
寫入時附帶讀取當下的 revision，若期間有人修改則由上游拒絕 (ConcurrencyConflictError)。
"""

import logging
from datetime import timedelta
from typing import Optional

from .collaborators import AdjustmentSink, IssueTracker
from .errors import InvalidOperationError, NotFoundError
from .models import (
    COMPLETED_WORK_PATH,
    ORIGINAL_ESTIMATE_PATH,
    REMAINING_WORK_PATH,
    AdjustmentResult,
    PatchOperation,
    ScrumState,
    TaskAdjustment,
    WorkItem,
    WorkItemType,
)

logger = logging.getLogger(__name__)

COMPLETED_WORK_INTERVAL = 0.05
REMAINING_WORK_INTERVAL = 0.1


def to_nearest(value: float, interval: float) -> float:
    """四捨五入到最接近的 interval 倍數"""
    factor = 1 / interval
    return round(value * factor) / factor


class CompletedWorkService:
    """Task 工時調整服務"""

    def __init__(self, issue_tracker: IssueTracker, sink: Optional[AdjustmentSink] = None):
        self.issue_tracker = issue_tracker
        self.sink = sink

    async def get_work_item(self, work_item_id: int) -> WorkItem:
        work_items = await self.issue_tracker.get_work_items([work_item_id])
        for work_item in work_items:
            if work_item.id == work_item_id:
                return work_item
        raise NotFoundError("Work Item", work_item_id)

    async def adjust(self, work_item_id: int, delta: timedelta) -> AdjustmentResult:
        """
        調整 Completed Work

        Args:
            work_item_id: Task 的 ID
            delta: 要加到 Completed Work 的時間（可為負數）

        Returns:
            AdjustmentResult；沒有任何欄位改變時 changed 為 False 且不會寫入
        """
        work_item = await self.get_work_item(work_item_id)
        if work_item.type is not WorkItemType.TASK:
            raise InvalidOperationError(f"Work Item {work_item_id} is not a task")

        operations = plan_adjustment(work_item, delta.total_seconds() / 3600)
        if not operations:
            logger.info(f"Work Item {work_item_id} unchanged, skipping write")
            return AdjustmentResult(work_item=work_item, changed=False)

        updated = await self.issue_tracker.patch_work_item(
            work_item_id, operations, expected_revision=work_item.revision
        )
        logger.info(f"Adjusted Work Item {work_item_id} by {delta} (rev {work_item.revision} -> {updated.revision})")

        result = AdjustmentResult(work_item=updated, changed=True, operations=operations)
        if self.sink is not None:
            try:
                await self.sink.send(TaskAdjustment(work_item_id, delta))
            except Exception as e:
                # 工作項目已經更新，匯出失敗只回報不回滾
                logger.exception(f"Failed to export adjustment for Work Item {work_item_id}: {e}")
                result.export_error = str(e)
        return result


def plan_adjustment(work_item: WorkItem, hours: float) -> list[PatchOperation]:
    """
    計算需要寫入的欄位，只包含實際會改變的欄位

    - Completed Work 加上 hours，取到 0.05
    - Done 的 Task 不動 Remaining Work；否則從 Remaining Work（或 Original Estimate）扣除，取到 0.1
    - Original Estimate 尚未設定時，記錄調整前的 Remaining Work 作為基準
    """
    operations = []

    completed = work_item.completed_work or 0.0
    new_completed = to_nearest(completed + hours, COMPLETED_WORK_INTERVAL)
    if new_completed != completed:
        operations.append(PatchOperation(COMPLETED_WORK_PATH, new_completed))

    if work_item.state is not ScrumState.DONE:
        baseline = work_item.remaining_work
        if baseline is None:
            baseline = work_item.original_estimate
        if baseline is not None:
            new_remaining = to_nearest(baseline - hours, REMAINING_WORK_INTERVAL)
            if new_remaining != work_item.remaining_work:
                operations.append(PatchOperation(REMAINING_WORK_PATH, new_remaining))

    if work_item.original_estimate is None and work_item.remaining_work is not None:
        operations.append(PatchOperation(ORIGINAL_ESTIMATE_PATH, work_item.remaining_work))

    return operations
