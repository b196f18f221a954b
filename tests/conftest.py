"""Pytest configuration and fixtures."""

import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from standup.errors import ConcurrencyConflictError, NotFoundError
from standup.models import (
    COMPLETED_WORK_PATH,
    ORIGINAL_ESTIMATE_PATH,
    REMAINING_WORK_PATH,
    Activity,
    Customer,
    Iteration,
    IterationWorkItem,
    Project,
    ReorderResult,
    ScrumState,
    TimeEntry,
    User,
    WorkItem,
    WorkItemType,
)
from standup.reorder import plan_reorder

# Friday afternoon
NOW = datetime(2024, 5, 3, 17, 0, tzinfo=timezone.utc)

ALICE = User(id=1, username="alice", display_name="Alice")
BOB = User(id=2, username="bob", display_name="Bob")
CUSTOMER = Customer(id=1, name="Contoso")
PROJECT = Project(id=10, name="Website", customer=CUSTOMER)
OTHER_PROJECT = Project(id=11, name="Mobile App", customer=CUSTOMER)
DEVELOPMENT = Activity(id=100, name="Development")
MEETINGS = Activity(id=101, name="Meetings")


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """May 2024 at the given UTC time"""
    return datetime(2024, 5, day, hour, minute, tzinfo=timezone.utc)


def make_entry(
    entry_id: int,
    begin: datetime,
    end: Optional[datetime],
    description: str = "",
    user: User = ALICE,
    project: Project = PROJECT,
    activity: Activity = DEVELOPMENT,
    exported: bool = False,
) -> TimeEntry:
    return TimeEntry(
        id=entry_id,
        user=user,
        activity=activity,
        project=project,
        begin=begin,
        end=end,
        description=description,
        exported=exported,
    )


def make_task(work_item_id: int, title: str = "Task", **kwargs) -> WorkItem:
    kwargs.setdefault("type", WorkItemType.TASK)
    kwargs.setdefault("state", ScrumState.IN_PROGRESS)
    return WorkItem(id=work_item_id, title=title, **kwargs)


class FakeTimeTracker:
    """In-memory Kimai"""

    def __init__(self, entries=()):
        self.entries: dict[int, TimeEntry] = {e.id: e for e in entries}
        self.list_calls = []
        self.exported_ids = []
        self.stopped_ids = []
        self.user = ALICE
        self.error: Optional[Exception] = None

    def add(self, *entries: TimeEntry):
        for entry in entries:
            self.entries[entry.id] = entry

    async def list_entries(self, filter):
        self.list_calls.append(dataclasses.replace(filter))
        if self.error:
            raise self.error
        matches = sorted(
            (
                e for e in self.entries.values()
                if (filter.begin is None or e.begin >= filter.begin)
                and (filter.end is None or e.begin <= filter.end)
                and (filter.is_running is None or e.is_running == filter.is_running)
            ),
            key=lambda e: e.id,
        )
        start = (filter.page - 1) * filter.size
        return matches[start:start + filter.size]

    async def get_entry(self, entry_id):
        if entry_id not in self.entries:
            raise NotFoundError("Time Entry", entry_id)
        return self.entries[entry_id]

    async def stop(self, entry_id):
        entry = await self.get_entry(entry_id)
        self.entries[entry_id] = dataclasses.replace(entry, end=NOW)
        self.stopped_ids.append(entry_id)

    async def set_description(self, entry_id, text):
        entry = await self.get_entry(entry_id)
        self.entries[entry_id] = dataclasses.replace(entry, description=text)

    async def export(self, entry_id):
        entry = await self.get_entry(entry_id)
        self.entries[entry_id] = dataclasses.replace(entry, exported=True)
        self.exported_ids.append(entry_id)

    async def get_my_user(self):
        return self.user


_FIELDS_BY_PATH = {
    COMPLETED_WORK_PATH: "completed_work",
    REMAINING_WORK_PATH: "remaining_work",
    ORIGINAL_ESTIMATE_PATH: "original_estimate",
}


class FakeIssueTracker:
    """In-memory Azure DevOps"""

    def __init__(self, work_items=()):
        self.work_items: dict[int, WorkItem] = {wi.id: wi for wi in work_items}
        self.get_calls = []
        self.patches = []
        self.reorders = []
        self.iteration_members: list[IterationWorkItem] = []
        self.conflict_on_patch = False
        self.conflict_ids: set[int] = set()

    def add(self, *work_items: WorkItem):
        for work_item in work_items:
            self.work_items[work_item.id] = work_item

    async def get_work_items(self, ids):
        ids = list(ids)
        self.get_calls.append(ids)
        return [self.work_items[i] for i in ids if i in self.work_items]

    async def patch_work_item(self, work_item_id, operations, expected_revision):
        work_item = self.work_items[work_item_id]
        if self.conflict_on_patch or work_item_id in self.conflict_ids \
                or work_item.revision != expected_revision:
            raise ConcurrencyConflictError(work_item_id, expected_revision)
        changes = {_FIELDS_BY_PATH[op.path]: op.value for op in operations}
        updated = dataclasses.replace(work_item, revision=work_item.revision + 1, **changes)
        self.work_items[work_item_id] = updated
        self.patches.append((work_item_id, list(operations), expected_revision))
        return updated

    async def get_iteration_work_items(self, iteration: Iteration):
        return list(self.iteration_members)

    async def reorder(self, iteration, operation):
        self.reorders.append((iteration, operation))
        positions = {
            wi.id: wi.backlog_priority
            for wi in self.work_items.values()
            if wi.backlog_priority is not None
        }
        results = plan_reorder(positions, operation)
        for result in results:
            self.work_items[result.id] = dataclasses.replace(
                self.work_items[result.id], backlog_priority=result.order
            )
        return [ReorderResult(r.id, r.order) for r in results]


class FakeSink:
    """Collects task adjustments"""

    def __init__(self, error: Optional[Exception] = None):
        self.adjustments = []
        self.error = error

    async def send(self, adjustment):
        if self.error:
            raise self.error
        self.adjustments.append(adjustment)


class FakeClock:
    """Controllable clock"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta):
        self.now += delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def time_tracker():
    return FakeTimeTracker()


@pytest.fixture
def issue_tracker():
    return FakeIssueTracker()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / ".standup"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def services(time_tracker, issue_tracker, clock, sink):
    """Services wired to the in-memory fakes, viewing days in UTC"""
    from standup.config import Config
    from standup.services import build_services

    built = build_services(Config(), time_tracker, issue_tracker, sink)
    built.standup.tz = timezone.utc
    built.standup.clock = clock
    return built
