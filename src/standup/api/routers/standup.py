"""
Stand-Up Router - Daily stand-up summaries
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from ...cache import CachingAlgorithm
from ...services import Services
from ...standup import Narrative, StandUpEntry, Summary, SummaryLevel
from ..dependencies import get_services
from ..models.schemas import NarrativeResponse, SummaryResponse, TimeEntryResponse

router = APIRouter()


def _narrative(narrative: Optional[Narrative]) -> Optional[NarrativeResponse]:
    if narrative is None:
        return None
    return NarrativeResponse(
        accomplishments=narrative.accomplishments,
        impediments=narrative.impediments,
        learnings=narrative.learnings,
        other_comments=narrative.other_comments,
    )


def _entry(entry: StandUpEntry) -> TimeEntryResponse:
    return TimeEntryResponse(
        id=entry.id,
        begin=entry.begin,
        end=entry.end,
        total_hours=round(entry.total_time.total_seconds() / 3600, 4),
        exported=entry.exported,
        is_running=entry.is_running,
        is_overlapping=entry.is_overlapping,
        can_export=entry.can_export,
        task_id=entry.task.id if entry.task else None,
        narrative=_narrative(entry.narrative),
    )


def _key(summary: Summary):
    if summary.level is SummaryLevel.PERIOD:
        begin, end = summary.key
        return {"begin": begin.isoformat(), "end": end.isoformat()}
    if summary.level is SummaryLevel.DAY:
        return summary.key.isoformat()
    return summary.key.id if summary.key is not None else None


def summary_to_response(summary: Summary) -> SummaryResponse:
    """Convert a summary tree into its response schema"""
    return SummaryResponse(
        level=summary.level.value,
        key=_key(summary),
        label=summary.label,
        total_hours=round(summary.total_hours, 4),
        all_exported=summary.all_exported,
        can_export=summary.can_export,
        is_running=summary.is_running,
        narrative=_narrative(summary.narrative),
        needs_estimate=summary.needs_estimate,
        time_remaining=summary.time_remaining,
        parent_id=summary.parent.id if summary.parent else None,
        children=[summary_to_response(child) for child in summary.children],
        entries=[_entry(e) for e in summary.entries] if summary.level is SummaryLevel.TASK else [],
    )


@router.get("", response_model=SummaryResponse)
async def get_standup(
    begin: date,
    end: Optional[date] = None,
    refresh: bool = False,
    services: Services = Depends(get_services),
):
    """Stand-up summary for an inclusive date range"""
    algorithm = CachingAlgorithm.FORCE_REFRESH if refresh else CachingAlgorithm.USE_CACHE
    summary = await services.standup.get_period(begin, end or begin, algorithm)
    return summary_to_response(summary)
