"""
Kimai API 整合模組

支援:
- API Token (Bearer) 認證
- 時間記錄查詢、停止計時、標記匯出、更新描述
- 目前使用者
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

import requests

from .errors import NotFoundError, UpstreamFailureError
from .models import Activity, Customer, Project, TimeEntry, TimeSheetFilter, User

logger = logging.getLogger(__name__)

# 網路請求預設 timeout（秒）
DEFAULT_TIMEOUT = 30


def parse_kimai_datetime(value: Optional[str]) -> Optional[datetime]:
    """解析 Kimai 的時間格式，例如 2024-05-01T08:00:00-0500"""
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z")


def _parse_user(data: Any) -> User:
    if isinstance(data, int):
        return User(id=data, username="")
    return User(
        id=data["id"],
        username=data.get("username", ""),
        display_name=data.get("alias") or data.get("username", ""),
        language=data.get("language") or "en",
    )


def _parse_customer(data: Any) -> Optional[Customer]:
    if not isinstance(data, dict):
        return None
    return Customer(id=data["id"], name=data.get("name", ""), visible=data.get("visible", True))


def _parse_project(data: Any) -> Project:
    if isinstance(data, int):
        return Project(id=data, name=f"Project {data}")
    return Project(
        id=data["id"],
        name=data.get("name", ""),
        customer=_parse_customer(data.get("customer")),
        visible=data.get("visible", True),
    )


def _parse_activity(data: Any) -> Activity:
    if isinstance(data, int):
        return Activity(id=data, name=f"Activity {data}")
    return Activity(
        id=data["id"],
        name=data.get("name", ""),
        comment=data.get("comment"),
        visible=data.get("visible", True),
    )


def parse_time_entry(data: dict) -> TimeEntry:
    """把 Kimai timesheet JSON 轉為 TimeEntry"""
    return TimeEntry(
        id=data["id"],
        user=_parse_user(data["user"]),
        activity=_parse_activity(data["activity"]),
        project=_parse_project(data["project"]),
        begin=parse_kimai_datetime(data["begin"]),
        end=parse_kimai_datetime(data.get("end")),
        description=data.get("description") or "",
        exported=bool(data.get("exported", False)),
    )


class KimaiClient:
    """Kimai REST API 客戶端"""

    def __init__(self, base_url: str, token: str):
        """
        初始化 Kimai 客戶端

        Args:
            base_url: Kimai URL (e.g., https://kimai.example.com)
            token: API Token
        """
        self.base_url = base_url.rstrip('/')
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _request(self, method: str, path: str, resource: str = "Time Entry",
                 identifier: Any = None, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            resp = self.session.request(method, url, timeout=DEFAULT_TIMEOUT, **kwargs)
            resp.raise_for_status()
            return resp.json() if resp.content else None
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404 and identifier is not None:
                raise NotFoundError(resource, identifier) from e
            raise UpstreamFailureError(f"Kimai {method} {path} failed: {e}") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            raise UpstreamFailureError(f"Kimai {method} {path} failed: {e}") from e

    # ------------------------------------------------------------------
    # 同步 API
    # ------------------------------------------------------------------

    def get_my_user_sync(self) -> User:
        """獲取當前用戶資訊"""
        return _parse_user(self._request("GET", "/api/users/me"))

    def list_entries_sync(self, filter: TimeSheetFilter) -> list[TimeEntry]:
        """查詢時間記錄（單頁）"""
        data = self._request("GET", "/api/timesheets", params=filter.to_params())
        return [parse_time_entry(item) for item in data or []]

    def get_entry_sync(self, entry_id: int) -> TimeEntry:
        data = self._request("GET", f"/api/timesheets/{entry_id}", identifier=entry_id)
        return parse_time_entry(data)

    def stop_sync(self, entry_id: int) -> None:
        self._request("PATCH", f"/api/timesheets/{entry_id}/stop", identifier=entry_id)

    def export_sync(self, entry_id: int) -> None:
        """標記為已匯出"""
        self._request("PATCH", f"/api/timesheets/{entry_id}/export", identifier=entry_id)

    def set_description_sync(self, entry_id: int, text: str) -> None:
        self._request(
            "PATCH", f"/api/timesheets/{entry_id}",
            identifier=entry_id,
            json={"description": text},
        )

    # ------------------------------------------------------------------
    # TimeTracker (async)
    # ------------------------------------------------------------------

    async def get_my_user(self) -> User:
        return await asyncio.to_thread(self.get_my_user_sync)

    async def list_entries(self, filter: TimeSheetFilter) -> list[TimeEntry]:
        return await asyncio.to_thread(self.list_entries_sync, filter)

    async def get_entry(self, entry_id: int) -> TimeEntry:
        return await asyncio.to_thread(self.get_entry_sync, entry_id)

    async def stop(self, entry_id: int) -> None:
        await asyncio.to_thread(self.stop_sync, entry_id)

    async def export(self, entry_id: int) -> None:
        await asyncio.to_thread(self.export_sync, entry_id)

    async def set_description(self, entry_id: int, text: str) -> None:
        await asyncio.to_thread(self.set_description_sync, entry_id, text)
