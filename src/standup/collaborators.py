"""
外部服務介面

Stand-up 核心只依賴以下介面；實作見 kimai_api、azure_devops_api、outbox。
"""

from typing import Iterable, Protocol

from .models import (
    Iteration,
    IterationWorkItem,
    PatchOperation,
    ReorderOperation,
    ReorderResult,
    TaskAdjustment,
    TimeEntry,
    TimeSheetFilter,
    User,
    WorkItem,
)


class TimeTracker(Protocol):
    """時間記錄服務 (Kimai)"""

    async def list_entries(self, filter: TimeSheetFilter) -> list[TimeEntry]: ...

    async def get_entry(self, entry_id: int) -> TimeEntry: ...

    async def stop(self, entry_id: int) -> None: ...

    async def set_description(self, entry_id: int, text: str) -> None: ...

    async def export(self, entry_id: int) -> None: ...

    async def get_my_user(self) -> User: ...


class IssueTracker(Protocol):
    """Issue 追蹤服務 (Azure DevOps)"""

    async def get_work_items(self, ids: Iterable[int]) -> list[WorkItem]: ...

    async def patch_work_item(
        self,
        work_item_id: int,
        operations: list[PatchOperation],
        expected_revision: int,
    ) -> WorkItem:
        """
        更新欄位，revision 不等於 expected_revision 時拋出 ConcurrencyConflictError
        """
        ...

    async def get_iteration_work_items(self, iteration: Iteration) -> list[IterationWorkItem]: ...

    async def reorder(self, iteration: Iteration, operation: ReorderOperation) -> list[ReorderResult]: ...


class AdjustmentSink(Protocol):
    """工時調整的下游傳遞管道"""

    async def send(self, adjustment: TaskAdjustment) -> None: ...
