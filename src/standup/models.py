"""
資料模型

- Kimai 時間記錄 (TimeEntry) 與其專案、活動、使用者
- Azure DevOps work item 與其類型、狀態
- 工時調整、排序請求與結果
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from .time_range import TimeRange


# Azure DevOps 欄位路徑
COMPLETED_WORK_PATH = "/fields/Microsoft.VSTS.Scheduling.CompletedWork"
REMAINING_WORK_PATH = "/fields/Microsoft.VSTS.Scheduling.RemainingWork"
ORIGINAL_ESTIMATE_PATH = "/fields/Microsoft.VSTS.Scheduling.OriginalEstimate"


class WorkItemType(str, Enum):
    """Work item 類型（值為 API 字串）"""
    PRODUCT_BACKLOG_ITEM = "Product Backlog Item"
    BUG = "Bug"
    TASK = "Task"
    FEATURE = "Feature"
    EPIC = "Epic"
    UNKNOWN = "Work Item"

    @classmethod
    def from_api_value(cls, value: Optional[str]) -> "WorkItemType":
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN

    @property
    def is_board_type(self) -> bool:
        return self in (WorkItemType.PRODUCT_BACKLOG_ITEM, WorkItemType.BUG)


class ScrumState(str, Enum):
    """Scrum 流程狀態"""
    NEW = "New"
    TO_DO = "To Do"
    APPROVED = "Approved"
    COMMITTED = "Committed"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    REMOVED = "Removed"
    UNKNOWN = "Unknown"

    @classmethod
    def from_api_value(cls, value: Optional[str]) -> "ScrumState":
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class User:
    """Kimai 使用者"""
    id: int
    username: str
    display_name: str = ""
    language: str = "en"


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    visible: bool = True


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    customer: Optional[Customer] = None
    visible: bool = True


@dataclass(frozen=True)
class Activity:
    id: int
    name: str
    comment: Optional[str] = None
    visible: bool = True


@dataclass(frozen=True)
class TimeEntry:
    """Kimai 的一筆時間記錄，end 為 None 表示計時中"""
    id: int
    user: User
    activity: Activity
    project: Project
    begin: datetime
    end: Optional[datetime] = None
    description: str = ""
    exported: bool = False

    @property
    def is_running(self) -> bool:
        return self.end is None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.begin, self.end)


@dataclass(frozen=True)
class WorkItem:
    """Azure DevOps work item（工時欄位單位為小時）"""
    id: int
    title: str
    type: WorkItemType = WorkItemType.UNKNOWN
    state: ScrumState = ScrumState.UNKNOWN
    revision: int = 1
    completed_work: Optional[float] = None
    remaining_work: Optional[float] = None
    original_estimate: Optional[float] = None
    parent_id: Optional[int] = None
    iteration_path: Optional[str] = None
    backlog_priority: Optional[float] = None
    assigned_to: Optional[str] = None


@dataclass(frozen=True)
class IterationWorkItem:
    """Iteration 內的 work item 關係"""
    id: int
    parent_id: Optional[int] = None


@dataclass(frozen=True)
class Iteration:
    """Sprint，以團隊 + iteration ID 識別"""
    team_name: str
    id: str
    path: str = ""


@dataclass(frozen=True)
class PatchOperation:
    """單一欄位的 JSON patch 操作"""
    path: str
    value: Any
    op: str = "add"

    def to_dict(self) -> dict:
        return {"op": self.op, "path": self.path, "value": self.value}


@dataclass(frozen=True)
class TaskAdjustment:
    """要套用到 Completed Work 的工時調整"""
    work_item_id: int
    adjustment: timedelta

    @property
    def hours(self) -> float:
        return self.adjustment.total_seconds() / 3600


@dataclass(frozen=True)
class ReorderOperation:
    """排序請求：把 ids 依序插入 previous_id 與 next_id 之間"""
    ids: tuple[int, ...]
    previous_id: Optional[int] = None
    next_id: Optional[int] = None


@dataclass(frozen=True)
class ReorderResult:
    """排序結果：work item 的新 backlog priority"""
    id: int
    order: float


@dataclass
class TimeSheetFilter:
    """Kimai 時間記錄查詢條件"""
    begin: Optional[datetime] = None
    end: Optional[datetime] = None
    is_running: Optional[bool] = None     # True 只要計時中、False 只要已停止、None 全部
    page: int = 1
    size: int = 50
    all_users: bool = False

    def to_params(self) -> dict[str, Any]:
        """轉為 Kimai API query string 參數"""
        params: dict[str, Any] = {"full": "true"}
        if self.begin:
            params["begin"] = self.begin.strftime("%Y-%m-%dT%H:%M:%S")
        if self.end:
            params["end"] = self.end.strftime("%Y-%m-%dT%H:%M:%S")
        if self.is_running is not None:
            params["active"] = 1 if self.is_running else 0
        if self.page != 1:
            params["page"] = self.page
        if self.size != 50:
            params["size"] = self.size
        if self.all_users:
            params["user"] = "all"
        return params


@dataclass
class AdjustmentResult:
    """Completed Work 調整結果"""
    work_item: WorkItem
    changed: bool
    operations: list[PatchOperation] = field(default_factory=list)
    export_error: Optional[str] = None


@dataclass
class ExportResult:
    """
    匯出結果

    每個 Task 各自調整工時並標記記錄；某個 Task 失敗時，其記錄保持未匯出，
    其他 Task 照常匯出。
    """
    adjustments: list[AdjustmentResult] = field(default_factory=list)
    exported_ids: list[int] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)   # Task ID -> 錯誤訊息

    @property
    def succeeded(self) -> bool:
        return not self.failures
