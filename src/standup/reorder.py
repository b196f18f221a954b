"""
Backlog 排序

拖曳排序時，把移動的 work item 平均插入兩個錨點之間（fractional indexing），
不需要重新編號整個 backlog。
"""

import logging
from typing import Iterable, Mapping, Optional

from .collaborators import IssueTracker
from .errors import InvalidOperationError, NotFoundError
from .models import Iteration, ReorderOperation, ReorderResult

logger = logging.getLogger(__name__)

# 沒有下一個錨點時，放在目前最大值之後的距離
END_OF_BACKLOG_GAP = 100.0


def _anchor_position(positions: Mapping[int, float], anchor_id: int) -> float:
    if anchor_id not in positions:
        raise NotFoundError("Work Item", anchor_id)
    return positions[anchor_id]


def plan_reorder(positions: Mapping[int, float], operation: ReorderOperation) -> list[ReorderResult]:
    """
    計算移動後的位置

    Args:
        positions: work item ID -> 目前的 backlog priority
        operation: 要移動的 ID（依呼叫者給定順序）與前後錨點

    Returns:
        每個移動項目的新位置，嚴格遞增且嚴格介於兩錨點之間
    """
    if operation.previous_id is not None:
        previous_position = _anchor_position(positions, operation.previous_id)
    else:
        previous_position = 0.0

    if operation.next_id is not None:
        next_position = _anchor_position(positions, operation.next_id)
    else:
        next_position = max(positions.values(), default=0.0) + END_OF_BACKLOG_GAP

    if previous_position >= next_position:
        raise InvalidOperationError(
            f"Position of items is invalid: previous {previous_position} must be before next {next_position}"
        )

    gap = (next_position - previous_position) / (len(operation.ids) + 1)
    return [
        ReorderResult(id=work_item_id, order=previous_position + gap * (i + 1))
        for i, work_item_id in enumerate(operation.ids)
    ]


class ReorderService:
    """Sprint backlog 排序服務"""

    def __init__(self, issue_tracker: IssueTracker):
        self.issue_tracker = issue_tracker

    async def get_positions(self, iteration: Iteration) -> dict[int, float]:
        """取得 iteration 內所有 work item 的 backlog priority"""
        members = await self.issue_tracker.get_iteration_work_items(iteration)
        ids = sorted({m.id for m in members} | {m.parent_id for m in members if m.parent_id})
        if not ids:
            return {}
        work_items = await self.issue_tracker.get_work_items(ids)
        return {
            wi.id: wi.backlog_priority
            for wi in work_items
            if wi.backlog_priority is not None
        }

    async def reorder(
        self,
        iteration: Iteration,
        moved_ids: Iterable[int],
        previous_id: Optional[int] = None,
        next_id: Optional[int] = None,
    ) -> list[ReorderResult]:
        """
        移動 work item 到 previous_id 與 next_id 之間

        呼叫者需確保所有移動項目都屬於同一個來源 iteration，且屬於目標 iteration；
        這裡不再檢查。

        先以目前的 backlog priority 在本地計算新位置並驗證錨點，錯誤時不送出任何寫入。
        回傳 Azure DevOps 實際寫入的位置；回應沒有內容時回傳本地計算的位置。
        """
        operation = ReorderOperation(tuple(moved_ids), previous_id, next_id)
        if not operation.ids:
            raise InvalidOperationError("Work Items must be selected to be moved")

        positions = await self.get_positions(iteration)
        planned = plan_reorder(positions, operation)
        logger.debug(
            f"Reorder {iteration.team_name}: moving {operation.ids} between "
            f"{previous_id} & {next_id} -> {[round(r.order, 2) for r in planned]}"
        )

        results = await self.issue_tracker.reorder(iteration, operation)
        if not results:
            logger.warning(f"Reorder response for {iteration.team_name} was empty, returning planned positions")
            return planned
        logger.info(f"Reordered {len(results)} work items in {iteration.team_name}")
        return results
