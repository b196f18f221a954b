"""
Iterations Router - Sprint backlog ordering
"""

from fastapi import APIRouter, Depends

from ...models import Iteration
from ...services import Services
from ..dependencies import get_services
from ..models.schemas import ReorderRequest, ReorderResponse, ReorderResultResponse

router = APIRouter()


@router.post("/{team}/{iteration_id}/reorder", response_model=ReorderResponse)
async def reorder_backlog(
    team: str,
    iteration_id: str,
    request: ReorderRequest,
    services: Services = Depends(get_services),
):
    """Move work items between two neighbours in the sprint backlog"""
    iteration = Iteration(team_name=team, id=iteration_id, path=request.iteration_path)
    results = await services.reorder.reorder(
        iteration,
        request.ids,
        previous_id=request.previous_id,
        next_id=request.next_id,
    )
    return ReorderResponse(results=[ReorderResultResponse(id=r.id, order=r.order) for r in results])
