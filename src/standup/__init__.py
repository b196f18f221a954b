"""Stand-Up - Reconcile Kimai time entries with Azure DevOps work items."""

__version__ = "1.0.0"

from .cache import Cache, CacheMap, CachingAlgorithm
from .comments import Comment, CommentType, parse
from .completed_work import CompletedWorkService
from .config import Config
from .errors import (
    ConcurrencyConflictError,
    InvalidIntervalError,
    InvalidOperationError,
    NotFoundError,
    StandUpError,
    UpstreamFailureError,
)
from .reorder import ReorderService, plan_reorder
from .standup import StandUpService, Summary, SummaryLevel
from .time_range import TimeRange, overlaps

__all__ = [
    "Cache",
    "CacheMap",
    "CachingAlgorithm",
    "Comment",
    "CommentType",
    "parse",
    "CompletedWorkService",
    "Config",
    "ConcurrencyConflictError",
    "InvalidIntervalError",
    "InvalidOperationError",
    "NotFoundError",
    "StandUpError",
    "UpstreamFailureError",
    "ReorderService",
    "plan_reorder",
    "StandUpService",
    "Summary",
    "SummaryLevel",
    "TimeRange",
    "overlaps",
]
