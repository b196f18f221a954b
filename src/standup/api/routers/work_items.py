"""
Work Items Router - Completed work adjustments and active timers
"""

from datetime import timedelta

from fastapi import APIRouter, Depends

from ...cache import CachingAlgorithm
from ...services import Services
from ..dependencies import get_services
from ..models.schemas import ActiveWorkItemsResponse, AdjustRequest, AdjustResponse, PatchOperationResponse

router = APIRouter()


@router.get("/active", response_model=ActiveWorkItemsResponse)
async def get_active_work_items(
    refresh: bool = False,
    services: Services = Depends(get_services),
):
    """Work items referenced by running time entries of any user"""
    algorithm = CachingAlgorithm.FORCE_REFRESH if refresh else CachingAlgorithm.USE_CACHE
    ids = await services.standup.get_actively_timed_work_item_ids(algorithm)
    return ActiveWorkItemsResponse(ids=ids)


@router.post("/{work_item_id}/adjust", response_model=AdjustResponse)
async def adjust_completed_work(
    work_item_id: int,
    request: AdjustRequest,
    services: Services = Depends(get_services),
):
    """Add hours to a task's completed work"""
    result = await services.completed_work.adjust(work_item_id, timedelta(hours=request.hours))
    work_item = result.work_item
    return AdjustResponse(
        work_item_id=work_item.id,
        changed=result.changed,
        revision=work_item.revision,
        completed_work=work_item.completed_work,
        remaining_work=work_item.remaining_work,
        original_estimate=work_item.original_estimate,
        operations=[PatchOperationResponse(**op.to_dict()) for op in result.operations],
        export_error=result.export_error,
    )
