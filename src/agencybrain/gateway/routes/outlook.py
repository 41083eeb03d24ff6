"""Outlook 路由

GET /api/outlook/week: 周一至周五工作周视图，week_offset 为空时使用默认偏移（周末为 +1）。
GET /api/outlook/month: 月历视图（周日开始）。
"""

from agencybrain.core.exceptions import EngineError
from fastapi import APIRouter, Depends, Query

from ..deps import get_sequence_service
from ..services.sequence_service import SequenceService
from .errors import error_response
from .tasks import TaskFilterParams

router = APIRouter()


@router.get("/api/outlook/week")
async def week_outlook(
    week_offset: int | None = Query(default=None, description="相对本周的偏移周数"),
    params: TaskFilterParams = Depends(),
    service: SequenceService = Depends(get_sequence_service),
):
    try:
        outlook = await service.week_outlook(params.to_query(), week_offset)
    except EngineError as e:
        return error_response(e)
    return outlook.model_dump(mode="json")


@router.get("/api/outlook/month")
async def month_calendar(
    month_offset: int = Query(default=0, description="相对本月的偏移月数"),
    params: TaskFilterParams = Depends(),
    service: SequenceService = Depends(get_sequence_service),
):
    try:
        month = await service.month_calendar(params.to_query(), month_offset)
    except EngineError as e:
        return error_response(e)
    return month.model_dump(mode="json")
