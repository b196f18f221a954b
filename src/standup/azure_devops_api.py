"""
Azure DevOps API 整合模組

支援:
- PAT (Personal Access Token) Basic Auth
- Work item 批次查詢與 JSON patch 更新（以 /rev 做樂觀鎖）
- Sprint iteration 的 work item 關係與 backlog 排序
"""

import asyncio
import base64
import logging
from typing import Any, Iterable, Optional
from urllib.parse import quote

import requests

from .errors import ConcurrencyConflictError, NotFoundError, UpstreamFailureError
from .models import (
    Iteration,
    IterationWorkItem,
    PatchOperation,
    ReorderOperation,
    ReorderResult,
    ScrumState,
    WorkItem,
    WorkItemType,
)

logger = logging.getLogger(__name__)

# 網路請求預設 timeout（秒）
DEFAULT_TIMEOUT = 30
API_VERSION = "6.0"
# 一次查詢的 work item 上限
BATCH_SIZE = 200

BACKLOG_PRIORITY_FIELD = "Microsoft.VSTS.Common.BacklogPriority"


def _field(fields: dict, name: str) -> Optional[float]:
    value = fields.get(name)
    return float(value) if value is not None else None


def parse_work_item(data: dict) -> WorkItem:
    """把 Azure DevOps work item JSON 轉為 WorkItem"""
    fields = data.get("fields", {})
    assigned_to = fields.get("System.AssignedTo")
    if isinstance(assigned_to, dict):
        assigned_to = assigned_to.get("displayName")
    return WorkItem(
        id=data["id"],
        title=fields.get("System.Title", ""),
        type=WorkItemType.from_api_value(fields.get("System.WorkItemType")),
        state=ScrumState.from_api_value(fields.get("System.State")),
        revision=data.get("rev", 1),
        completed_work=_field(fields, "Microsoft.VSTS.Scheduling.CompletedWork"),
        remaining_work=_field(fields, "Microsoft.VSTS.Scheduling.RemainingWork"),
        original_estimate=_field(fields, "Microsoft.VSTS.Scheduling.OriginalEstimate"),
        parent_id=fields.get("System.Parent"),
        iteration_path=fields.get("System.IterationPath"),
        backlog_priority=_field(fields, BACKLOG_PRIORITY_FIELD),
        assigned_to=assigned_to,
    )


class AzureDevOpsClient:
    """Azure DevOps REST API 客戶端"""

    def __init__(self, base_url: str, token: str, project: str = ""):
        """
        初始化 Azure DevOps 客戶端

        Args:
            base_url: Collection URL (e.g., https://dev.azure.com/my-org)
            token: Personal Access Token
            project: 專案名稱（iteration 相關 API 需要）
        """
        self.base_url = base_url.rstrip('/')
        self.project = project
        self.session = requests.Session()

        # PAT: Basic auth，使用者名稱留空
        auth_string = base64.b64encode(f":{token}".encode()).decode()
        self.session.headers.update({
            "Authorization": f"Basic {auth_string}",
            "Accept": "application/json",
        })

    def _iteration_url(self, iteration: Iteration, suffix: str) -> str:
        return (
            f"{self.base_url}/{quote(self.project)}/{quote(iteration.team_name)}"
            f"/_apis/work{suffix}"
        )

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.debug(f"{method} {url}")
        try:
            resp = self.session.request(method, url, timeout=DEFAULT_TIMEOUT, **kwargs)
        except requests.exceptions.RequestException as e:
            raise UpstreamFailureError(f"Azure DevOps {method} {url} failed: {e}") from e
        return resp

    @staticmethod
    def _json(method: str, resp: requests.Response) -> Any:
        try:
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.HTTPError as e:
            raise UpstreamFailureError(f"Azure DevOps {method} {resp.url} failed: {e}") from e
        except ValueError as e:
            raise UpstreamFailureError(f"Azure DevOps {method} {resp.url} returned invalid JSON") from e

    # ------------------------------------------------------------------
    # 同步 API
    # ------------------------------------------------------------------

    def get_work_items_sync(self, ids: Iterable[int]) -> list[WorkItem]:
        """
        批次取得 work item，找不到的 ID 不會出現在結果中

        Args:
            ids: work item ID

        Returns:
            WorkItem 列表
        """
        ids = list(dict.fromkeys(ids))
        work_items = []
        for i in range(0, len(ids), BATCH_SIZE):
            batch = ids[i:i + BATCH_SIZE]
            resp = self._send(
                "GET",
                f"{self.base_url}/_apis/wit/workitems",
                params={
                    "ids": ",".join(str(x) for x in batch),
                    "$expand": "fields",
                    "errorPolicy": "omit",
                    "api-version": API_VERSION,
                },
            )
            data = self._json("GET", resp)
            # errorPolicy=omit 時找不到的項目為 null
            work_items.extend(parse_work_item(item) for item in data.get("value", []) if item)
        return work_items

    def patch_work_item_sync(self, work_item_id: int, operations: list[PatchOperation],
                             expected_revision: int) -> WorkItem:
        """
        更新 work item 欄位

        第一個操作為 test /rev，revision 不符時上游拒絕整個 patch。
        """
        body = [{"op": "test", "path": "/rev", "value": expected_revision}]
        body.extend(op.to_dict() for op in operations)

        resp = self._send(
            "PATCH",
            f"{self.base_url}/_apis/wit/workitems/{work_item_id}",
            params={"api-version": API_VERSION},
            json=body,
            headers={"Content-Type": "application/json-patch+json"},
        )
        if resp.status_code == 404:
            raise NotFoundError("Work Item", work_item_id)
        if resp.status_code in (409, 412):
            raise ConcurrencyConflictError(work_item_id, expected_revision)
        return parse_work_item(self._json("PATCH", resp))

    def get_iteration_work_items_sync(self, iteration: Iteration) -> list[IterationWorkItem]:
        """取得 iteration 內的 work item 與其父項"""
        resp = self._send(
            "GET",
            self._iteration_url(iteration, f"/teamsettings/iterations/{iteration.id}/workitems"),
            params={"api-version": "6.1-preview"},
        )
        data = self._json("GET", resp)

        members = []
        for relation in data.get("workItemRelations", []):
            target = relation.get("target")
            if not target:
                continue
            source = relation.get("source")
            members.append(IterationWorkItem(id=target["id"], parent_id=source["id"] if source else None))
        return members

    def reorder_sync(self, iteration: Iteration, operation: ReorderOperation) -> list[ReorderResult]:
        """在 sprint backlog 中移動 work item"""
        payload = {
            "parentId": 0,
            "previousId": operation.previous_id or 0,
            "nextId": operation.next_id or 0,
            "ids": list(operation.ids),
            "iterationPath": iteration.path,
        }
        resp = self._send(
            "PATCH",
            self._iteration_url(iteration, f"/iterations/{iteration.id}/workitemsorder"),
            params={"api-version": "6.0-preview.1"},
            json=payload,
        )
        data = self._json("PATCH", resp)
        return [ReorderResult(id=item["id"], order=float(item["order"])) for item in data.get("value", [])]

    # ------------------------------------------------------------------
    # IssueTracker (async)
    # ------------------------------------------------------------------

    async def get_work_items(self, ids: Iterable[int]) -> list[WorkItem]:
        return await asyncio.to_thread(self.get_work_items_sync, list(ids))

    async def patch_work_item(self, work_item_id: int, operations: list[PatchOperation],
                              expected_revision: int) -> WorkItem:
        return await asyncio.to_thread(self.patch_work_item_sync, work_item_id, operations, expected_revision)

    async def get_iteration_work_items(self, iteration: Iteration) -> list[IterationWorkItem]:
        return await asyncio.to_thread(self.get_iteration_work_items_sync, iteration)

    async def reorder(self, iteration: Iteration, operation: ReorderOperation) -> list[ReorderResult]:
        return await asyncio.to_thread(self.reorder_sync, iteration, operation)
