"""负责人目录路由

POST /api/assignees: 写入 / 更新目录条目（由外部账号系统同步）。
"""

from agencybrain.core.exceptions import EngineError
from agencybrain.core.models import DirectoryEntry
from fastapi import APIRouter, Depends

from ..deps import get_sequence_service
from ..services.sequence_service import SequenceService
from .errors import error_response

router = APIRouter()


@router.post("/api/assignees", status_code=201)
async def register_assignee(
    body: DirectoryEntry,
    service: SequenceService = Depends(get_sequence_service),
):
    try:
        entry = await service.register_assignee(body)
    except EngineError as e:
        return error_response(e)
    return entry.model_dump(mode="json")
