"""
Pydantic schemas for the Stand-Up API
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ============================================================
# Stand-Up Schemas
# ============================================================

class NarrativeResponse(BaseModel):
    """Stand-up text reassembled from entry descriptions"""
    accomplishments: Optional[str] = None
    impediments: Optional[str] = None
    learnings: Optional[str] = None
    other_comments: Optional[str] = None


class TimeEntryResponse(BaseModel):
    """A single time entry leaf"""
    id: int
    begin: datetime
    end: Optional[datetime] = None
    total_hours: float
    exported: bool
    is_running: bool
    is_overlapping: bool
    can_export: bool
    task_id: Optional[int] = None
    narrative: NarrativeResponse


class SummaryResponse(BaseModel):
    """A node of the stand-up summary tree"""
    level: str
    key: Any = None
    label: str
    total_hours: float
    all_exported: bool
    can_export: bool
    is_running: bool
    narrative: Optional[NarrativeResponse] = None
    needs_estimate: bool = False
    time_remaining: Optional[float] = None
    parent_id: Optional[int] = None
    children: list["SummaryResponse"] = Field(default_factory=list)
    entries: list[TimeEntryResponse] = Field(default_factory=list)


SummaryResponse.model_rebuild()


# ============================================================
# Work Item Schemas
# ============================================================

class AdjustRequest(BaseModel):
    """Completed work adjustment request"""
    hours: float  # may be negative


class PatchOperationResponse(BaseModel):
    op: str
    path: str
    value: Any


class ActiveWorkItemsResponse(BaseModel):
    """Work items currently being timed by any user"""
    ids: list[int]


class AdjustResponse(BaseModel):
    """Completed work adjustment result"""
    work_item_id: int
    changed: bool
    revision: int
    completed_work: Optional[float] = None
    remaining_work: Optional[float] = None
    original_estimate: Optional[float] = None
    operations: list[PatchOperationResponse] = Field(default_factory=list)
    export_error: Optional[str] = None


# ============================================================
# Iteration Schemas
# ============================================================

class ReorderRequest(BaseModel):
    """Backlog reorder request"""
    ids: list[int]
    previous_id: Optional[int] = None
    next_id: Optional[int] = None
    iteration_path: str = ""


class ReorderResultResponse(BaseModel):
    id: int
    order: float


class ReorderResponse(BaseModel):
    results: list[ReorderResultResponse]
