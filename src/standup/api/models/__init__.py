"""
API Models - Pydantic schemas for the API
"""

from .schemas import (
    # Stand-Up
    NarrativeResponse,
    TimeEntryResponse,
    SummaryResponse,
    # Work Items
    ActiveWorkItemsResponse,
    AdjustRequest,
    AdjustResponse,
    PatchOperationResponse,
    # Iterations
    ReorderRequest,
    ReorderResponse,
    ReorderResultResponse,
)

__all__ = [
    "NarrativeResponse",
    "TimeEntryResponse",
    "SummaryResponse",
    "ActiveWorkItemsResponse",
    "AdjustRequest",
    "AdjustResponse",
    "PatchOperationResponse",
    "ReorderRequest",
    "ReorderResponse",
    "ReorderResultResponse",
]
