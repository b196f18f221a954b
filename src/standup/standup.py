"""
Daily Stand-Up 彙整

把 Kimai 時間記錄與 Azure DevOps work item 組合成
Period → Day → Project → Activity → Task → Entry 的樹狀彙總。

每個節點的彙總值（總時數、是否全部匯出、是否可匯出、是否計時中）
在建樹時由下而上計算一次，之後不再變動。
"""

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from .cache import DEFAULT_MAX_AGE, Cache, CacheMap, CachingAlgorithm, utc_now
from .collaborators import IssueTracker, TimeTracker
from .comments import SCRUM_TYPES, Comment, CommentType, compose_description, join, parse
from .completed_work import CompletedWorkService
from .errors import InvalidOperationError, NotFoundError, StandUpError
from .models import ExportResult, ScrumState, TimeEntry, TimeSheetFilter, WorkItem, WorkItemType
from .time_range import overlaps

logger = logging.getLogger(__name__)

DEFAULT_MAX_REPORT_DAYS = 7
TIME_SHEET_PAGE_SIZE = 250

# 尚未決定歸屬的活動或專案名稱，這類記錄不能匯出
PLACEHOLDER_NAME = "TBD"


class SummaryLevel(Enum):
    PERIOD = "period"
    DAY = "day"
    PROJECT = "project"
    ACTIVITY = "activity"
    TASK = "task"


@dataclass(frozen=True)
class Narrative:
    """從描述中重組的 stand-up 文字欄位"""
    accomplishments: Optional[str] = None
    impediments: Optional[str] = None
    learnings: Optional[str] = None
    other_comments: Optional[str] = None

    @classmethod
    def from_comments(cls, comments: Iterable[Comment]) -> "Narrative":
        # 相同類型、相同內容的行只保留一次
        unique = list(dict.fromkeys(comments))
        return cls(
            accomplishments=join(unique, lambda t: t is CommentType.ACCOMPLISHMENT),
            impediments=join(unique, lambda t: t is CommentType.IMPEDIMENT),
            learnings=join(unique, lambda t: t is CommentType.LEARNING),
            other_comments=join(unique, lambda t: t not in SCRUM_TYPES),
        )


@dataclass(frozen=True)
class StandUpEntry:
    """彙總樹的葉節點：一筆時間記錄與其推導欄位"""
    entry: TimeEntry
    total_time: timedelta
    is_overlapping: bool = False
    task: Optional[WorkItem] = None
    comments: tuple[Comment, ...] = ()

    @property
    def id(self) -> int:
        return self.entry.id

    @property
    def begin(self) -> datetime:
        return self.entry.begin

    @property
    def end(self) -> Optional[datetime]:
        return self.entry.end

    @property
    def exported(self) -> bool:
        return self.entry.exported

    @property
    def is_running(self) -> bool:
        return self.entry.end is None

    @property
    def can_export(self) -> bool:
        """
        是否可以匯出

        已停止、尚未匯出、沒有時間重疊，且活動、專案、客戶都仍可見
        （活動與專案名稱不是 TBD）的記錄才能匯出。
        """
        if self.is_running or self.exported or self.is_overlapping:
            return False
        activity, project = self.entry.activity, self.entry.project
        if not activity.visible or not project.visible:
            return False
        if project.customer is not None and not project.customer.visible:
            return False
        return activity.name != PLACEHOLDER_NAME and project.name != PLACEHOLDER_NAME

    @property
    def narrative(self) -> Narrative:
        return Narrative.from_comments(self.comments)


@dataclass(frozen=True)
class Summary:
    """
    彙總節點

    level 決定 key 的型別：
    PERIOD -> (begin, end)、DAY -> date、PROJECT -> Project、
    ACTIVITY -> Activity、TASK -> WorkItem（未指定 Task 時為 None）
    """
    level: SummaryLevel
    key: Any
    children: tuple["Summary", ...]
    entries: tuple[StandUpEntry, ...]
    total_time: timedelta
    all_exported: bool
    can_export: bool
    is_running: bool
    narrative: Optional[Narrative] = None
    needs_estimate: bool = False
    time_remaining: Optional[float] = None
    parent: Optional[WorkItem] = None

    @property
    def total_hours(self) -> float:
        return self.total_time.total_seconds() / 3600

    @property
    def label(self) -> str:
        if self.level is SummaryLevel.PERIOD:
            begin, end = self.key
            return f"{begin.isoformat()} ~ {end.isoformat()}"
        if self.level is SummaryLevel.DAY:
            return self.key.isoformat()
        if self.level is SummaryLevel.TASK:
            return f"D#{self.key.id} {self.key.title}" if self.key else "Unassigned"
        return self.key.name

    def walk(self) -> Iterable["Summary"]:
        """前序走訪所有節點"""
        yield self
        for child in self.children:
            yield from child.walk()


def _summarize(level: SummaryLevel, key: Any, children: Iterable[Summary],
               entries: Iterable[StandUpEntry], **extra) -> Summary:
    entries = tuple(entries)
    return Summary(
        level=level,
        key=key,
        children=tuple(children),
        entries=entries,
        total_time=sum((e.total_time for e in entries), timedelta(0)),
        all_exported=all(e.exported for e in entries),
        can_export=bool(entries) and all(e.can_export for e in entries),
        is_running=any(e.is_running for e in entries),
        **extra,
    )


def _group(entries: Iterable[StandUpEntry], key: Callable[[StandUpEntry], Any]) -> list[list[StandUpEntry]]:
    """依 key 分組；組內與組間都依開始時間遞增"""
    groups: dict[Any, list[StandUpEntry]] = {}
    for entry in sorted(entries, key=lambda e: (e.begin, e.id)):
        groups.setdefault(key(entry), []).append(entry)
    return list(groups.values())


def find_overlapping(time_sheet: Iterable[TimeEntry], tz: tzinfo) -> set[int]:
    """
    找出重疊的時間記錄

    只比較同一使用者、同一天的記錄；計時中的記錄不會被標記。

    Returns:
        有參與任一重疊組合的記錄 ID
    """
    by_user_day: dict[tuple, list[TimeEntry]] = defaultdict(list)
    for entry in time_sheet:
        entry.time_range.validate()
        by_user_day[(entry.user.id, entry.begin.astimezone(tz).date())].append(entry)

    flagged: set[int] = set()
    for entries in by_user_day.values():
        for a, b in itertools.combinations(entries, 2):
            if overlaps(a.time_range, b.time_range):
                flagged.update((a.id, b.id))
    return flagged


def _task_priority(work_item: WorkItem) -> tuple:
    """同一筆記錄參照多個 work item 時，優先選 Task，其次 PBI/Bug、Feature、Epic"""
    return (
        work_item.type is not WorkItemType.TASK,
        not work_item.type.is_board_type,
        work_item.type is not WorkItemType.FEATURE,
        work_item.type is not WorkItemType.EPIC,
        work_item.id,
    )


def resolve_task(reference: Optional[Comment], work_items: dict[int, WorkItem]) -> Optional[WorkItem]:
    if reference is None:
        return None
    candidates = [work_items[i] for i, _ in reference.work_items if i in work_items]
    if not candidates:
        return None
    return min(candidates, key=_task_priority)


class StandUpService:
    """Daily Stand-Up 服務"""

    def __init__(
        self,
        time_tracker: TimeTracker,
        issue_tracker: IssueTracker,
        completed_work: Optional[CompletedWorkService] = None,
        tz: Optional[tzinfo] = None,
        max_report_days: int = DEFAULT_MAX_REPORT_DAYS,
        cache_max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        初始化 Stand-Up 服務

        Args:
            time_tracker: 時間記錄服務
            issue_tracker: Issue 追蹤服務
            completed_work: 匯出時用來調整 Task 工時（None 時匯出不調整工時）
            tz: 使用者所在時區，決定記錄屬於哪一天（預設為系統時區）
            max_report_days: 單次報表最多天數
            cache_max_age: 上游資料快取時間
            clock: 取得目前時間的函式
        """
        self.time_tracker = time_tracker
        self.issue_tracker = issue_tracker
        self.completed_work = completed_work
        self.tz = tz or datetime.now().astimezone().tzinfo
        self.max_report_days = max_report_days
        self.clock = clock
        self._time_sheets: CacheMap[list[TimeEntry]] = CacheMap(cache_max_age, clock)
        self._work_items: CacheMap[list[WorkItem]] = CacheMap(cache_max_age, clock)
        self._active_work_items: Cache[list[int]] = Cache(
            self._fetch_actively_timed_work_item_ids, cache_max_age, clock
        )

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    def invalidate(self) -> None:
        """清除所有快取"""
        self._time_sheets.invalidate()
        self._work_items.invalidate()
        self._active_work_items.invalidate()

    # ------------------------------------------------------------------
    # 上游資料
    # ------------------------------------------------------------------

    async def get_time_sheet(self, begin: date, end: date,
                             algorithm: CachingAlgorithm = CachingAlgorithm.USE_CACHE) -> list[TimeEntry]:
        """取得日期範圍內（含頭尾，使用者時區）的時間記錄"""
        cache = self._time_sheets.get((begin, end), lambda: self._fetch_time_sheet(begin, end))
        return await cache.get_value(algorithm)

    async def _fetch_time_sheet(self, begin: date, end: date) -> list[TimeEntry]:
        time_filter = TimeSheetFilter(
            begin=datetime.combine(begin, time.min, tzinfo=self.tz),
            end=datetime.combine(end, time.max, tzinfo=self.tz),
            page=1,
            size=TIME_SHEET_PAGE_SIZE,
        )
        time_sheet: list[TimeEntry] = []
        while True:
            page = await self.time_tracker.list_entries(time_filter)
            time_sheet.extend(page)
            if len(page) < time_filter.size:
                break
            time_filter.page += 1

        logger.info(f"Fetched {len(time_sheet)} time entries for {begin} ~ {end}")
        return time_sheet

    async def get_work_items(self, ids: Iterable[int],
                             algorithm: CachingAlgorithm = CachingAlgorithm.USE_CACHE,
                             required: bool = True) -> dict[int, WorkItem]:
        """
        批次取得 work item

        Args:
            ids: work item ID
            algorithm: 快取策略
            required: True 時任何 ID 找不到都會拋出 NotFoundError
        """
        key = tuple(sorted(set(ids)))
        if not key:
            return {}

        cache = self._work_items.get(key, lambda: self.issue_tracker.get_work_items(list(key)))
        work_items = {wi.id: wi for wi in await cache.get_value(algorithm)}

        missing = [i for i in key if i not in work_items]
        if missing:
            if required:
                raise NotFoundError("Work Item", ", ".join(str(i) for i in missing))
            logger.warning(f"Work items not found: {missing}")
        return work_items

    # ------------------------------------------------------------------
    # 彙總
    # ------------------------------------------------------------------

    async def get_period(self, begin: date, end: date,
                         algorithm: CachingAlgorithm = CachingAlgorithm.USE_CACHE) -> Summary:
        """
        產生 stand-up 彙總

        Args:
            begin: 開始日期（含）
            end: 結束日期（含），晚於今天時以今天為準
            algorithm: 快取策略

        Returns:
            PERIOD 層級的 Summary，範圍內每一天都有 DAY 節點
        """
        end = min(end, self.today())
        if end < begin:
            raise InvalidOperationError(f"Start date {begin.isoformat()} must be before or equal to end date {end.isoformat()}")
        days_in_range = (end - begin).days + 1
        if days_in_range > self.max_report_days:
            raise InvalidOperationError(
                f"There are too many days requested in this report ({days_in_range} > {self.max_report_days}). "
                "Please use a smaller date range"
            )

        time_sheet = await self.get_time_sheet(begin, end, algorithm)

        comments = {entry.id: parse(entry.description) for entry in time_sheet}
        references = {
            entry_id: next((c for c in entry_comments if c.type is CommentType.WORK_ITEM), None)
            for entry_id, entry_comments in comments.items()
        }
        referenced_ids = {i for ref in references.values() if ref for i, _ in ref.work_items}
        work_items = await self.get_work_items(referenced_ids, algorithm)

        parent_ids = {
            wi.parent_id for wi in work_items.values()
            if wi.type is WorkItemType.TASK and wi.parent_id and wi.parent_id not in work_items
        }
        if parent_ids:
            work_items.update(await self.get_work_items(parent_ids, algorithm, required=False))

        overlapping = find_overlapping(time_sheet, self.tz)
        now = self.clock()

        entries = []
        for entry in time_sheet:
            reference = references[entry.id]
            entries.append(StandUpEntry(
                entry=entry,
                total_time=entry.time_range.duration(now),
                is_overlapping=entry.id in overlapping,
                task=resolve_task(reference, work_items),
                comments=tuple(c for c in comments[entry.id] if c is not reference),
            ))

        days = [begin + timedelta(days=i) for i in range(days_in_range)]
        return self._build_period(begin, end, days, entries, work_items)

    def _build_period(self, begin: date, end: date, days: list[date],
                      entries: list[StandUpEntry], work_items: dict[int, WorkItem]) -> Summary:
        by_day: dict[date, list[StandUpEntry]] = defaultdict(list)
        for entry in entries:
            by_day[entry.begin.astimezone(self.tz).date()].append(entry)

        remaining = self._time_remaining(entries)
        day_summaries = [self._build_day(day, by_day.get(day, []), remaining, work_items) for day in days]
        return _summarize(
            SummaryLevel.PERIOD,
            (begin, end),
            day_summaries,
            itertools.chain.from_iterable(d.entries for d in day_summaries),
        )

    def _build_day(self, day: date, entries: list[StandUpEntry],
                   remaining: dict[int, Optional[float]], work_items: dict[int, WorkItem]) -> Summary:
        projects = []
        for project_entries in _group(entries, lambda e: e.entry.project.id):
            activities = []
            for activity_entries in _group(project_entries, lambda e: e.entry.activity.id):
                tasks = [
                    self._build_task(task_entries, remaining, work_items)
                    for task_entries in _group(activity_entries, lambda e: e.task.id if e.task else None)
                ]
                activities.append(_summarize(
                    SummaryLevel.ACTIVITY,
                    activity_entries[0].entry.activity,
                    tasks,
                    itertools.chain.from_iterable(t.entries for t in tasks),
                    narrative=Narrative.from_comments(c for e in activity_entries for c in e.comments),
                ))
            projects.append(_summarize(
                SummaryLevel.PROJECT,
                project_entries[0].entry.project,
                activities,
                itertools.chain.from_iterable(a.entries for a in activities),
            ))

        return _summarize(
            SummaryLevel.DAY,
            day,
            projects,
            itertools.chain.from_iterable(p.entries for p in projects),
        )

    @staticmethod
    def _build_task(entries: list[StandUpEntry], remaining: dict[int, Optional[float]],
                    work_items: dict[int, WorkItem]) -> Summary:
        task = entries[0].task
        return _summarize(
            SummaryLevel.TASK,
            task,
            (),
            entries,
            narrative=Narrative.from_comments(c for e in entries for c in e.comments),
            needs_estimate=task is not None and task.original_estimate is None,
            time_remaining=remaining.get(task.id) if task else None,
            parent=work_items.get(task.parent_id) if task and task.parent_id else None,
        )

    @staticmethod
    def _time_remaining(entries: list[StandUpEntry]) -> dict[int, Optional[float]]:
        """Remaining Work（或 Original Estimate）扣除尚未匯出的時數"""
        unexported: dict[int, float] = defaultdict(float)
        tasks: dict[int, WorkItem] = {}
        for entry in entries:
            if entry.task is None:
                continue
            tasks[entry.task.id] = entry.task
            if not entry.exported:
                unexported[entry.task.id] += entry.total_time.total_seconds() / 3600

        remaining: dict[int, Optional[float]] = {}
        for task_id, task in tasks.items():
            estimate = task.remaining_work if task.remaining_work is not None else task.original_estimate
            if task.state is ScrumState.DONE or estimate is None:
                remaining[task_id] = None
            else:
                remaining[task_id] = round(estimate - unexported[task_id], 2)
        return remaining

    # ------------------------------------------------------------------
    # 寫回
    # ------------------------------------------------------------------

    async def export(self, entries: Iterable[StandUpEntry]) -> ExportResult:
        """
        匯出時間記錄

        可匯出的記錄依 Task 合計後調整 Completed Work，調整成功後立即在 Kimai
        把該 Task 的記錄標記為已匯出。調整失敗的 Task 記在 failures，
        其記錄維持未匯出，之後重新匯出不會重複累加其他 Task 的工時。
        沒有連結 Task 的記錄直接標記為已匯出。
        """
        result = ExportResult()
        exportable = [e for e in entries if e.can_export]
        if not exportable:
            return result

        by_task: dict[int, list[StandUpEntry]] = defaultdict(list)
        untracked: list[StandUpEntry] = []
        for entry in exportable:
            if self.completed_work is not None and entry.task is not None \
                    and entry.task.type is WorkItemType.TASK:
                by_task[entry.task.id].append(entry)
            else:
                untracked.append(entry)

        try:
            for task_id, task_entries in sorted(by_task.items()):
                total = sum((e.total_time for e in task_entries), timedelta(0))
                try:
                    adjustment = await self.completed_work.adjust(task_id, total)
                except StandUpError as e:
                    logger.error(f"Failed to adjust Work Item {task_id}, its time entries stay unexported: {e}")
                    result.failures[task_id] = str(e)
                    continue
                result.adjustments.append(adjustment)
                await self._mark_exported(task_entries, result)

            await self._mark_exported(untracked, result)
        finally:
            self.invalidate()

        logger.info(f"Exported {len(result.exported_ids)} of {len(exportable)} time entries")
        return result

    async def _mark_exported(self, entries: Iterable[StandUpEntry], result: ExportResult) -> None:
        for entry in entries:
            await self.time_tracker.export(entry.id)
            result.exported_ids.append(entry.id)

    async def update_description(self, entry_id: int, comments: Iterable[Comment]) -> str:
        """把 comment 組回描述並寫入 Kimai"""
        description = compose_description(comments)
        await self.time_tracker.set_description(entry_id, description)
        self._time_sheets.invalidate()
        return description

    async def stop_timer(self, entry_id: Optional[int] = None) -> Optional[int]:
        """
        停止計時中的記錄

        Args:
            entry_id: 要停止的記錄；None 時停止目前使用者正在計時的記錄

        Returns:
            被停止的記錄 ID；沒有計時中的記錄時為 None
        """
        if entry_id is None:
            running = await self.get_running_entries()
            if not running:
                logger.info("No running time entry to stop")
                return None
            if len(running) > 1:
                ids = ", ".join(str(e.id) for e in running)
                raise InvalidOperationError(f"More than one time entry is running ({ids}). Please choose one")
            entry_id = running[0].id
        else:
            entry = await self.time_tracker.get_entry(entry_id)
            if not entry.is_running:
                raise InvalidOperationError(f"Time entry {entry_id} is not running")

        await self.time_tracker.stop(entry_id)
        self._time_sheets.invalidate()
        self._active_work_items.invalidate()
        return entry_id

    # ------------------------------------------------------------------
    # 計時中
    # ------------------------------------------------------------------

    async def get_running_entries(self, all_users: bool = False) -> list[TimeEntry]:
        """計時中的記錄，預設只有目前使用者"""
        return await self.time_tracker.list_entries(TimeSheetFilter(is_running=True, all_users=all_users))

    async def get_actively_timed_work_item_ids(
            self, algorithm: CachingAlgorithm = CachingAlgorithm.USE_CACHE) -> list[int]:
        """
        所有使用者正在計時的 work item ID

        Kimai 使用者沒有檢視他人時間表的權限時，只會包含自己的記錄。
        """
        return await self._active_work_items.get_value(algorithm)

    async def _fetch_actively_timed_work_item_ids(self) -> list[int]:
        running = await self.get_running_entries(all_users=True)
        ids = [
            work_item_id
            for entry in running
            for comment in parse(entry.description)
            if comment.type is CommentType.WORK_ITEM
            for work_item_id, _ in comment.work_items
        ]
        return list(dict.fromkeys(ids))
