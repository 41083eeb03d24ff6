"""实例路由

GET /api/instances/{instance_id}: 实例详情（含任务与审计事件）。
POST /api/instances/{instance_id}/reassign: 将实例及其未完成任务转给新负责人。
GET /api/instances/{instance_id}/reassign-candidates: 可选的新负责人。
"""

from agencybrain.core.exceptions import EngineError
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..deps import get_sequence_service
from ..services.sequence_service import SequenceService, resolve_assignee
from .errors import error_response
from .tasks import task_item

router = APIRouter()


class ReassignRequest(BaseModel):
    """重新分配请求 -- staff_id 与 user_id 二选一"""

    staff_id: str | None = None
    user_id: str | None = None


@router.get("/api/instances/{instance_id}")
async def get_instance(
    instance_id: str,
    service: SequenceService = Depends(get_sequence_service),
):
    try:
        detail = await service.get_instance_detail(instance_id)
    except EngineError as e:
        return error_response(e)

    return {
        "instance": detail.instance.model_dump(mode="json"),
        "tasks": [task_item(v) for v in detail.tasks],
        "events": [e.model_dump(mode="json") for e in detail.events],
    }


@router.post("/api/instances/{instance_id}/reassign")
async def reassign_instance(
    instance_id: str,
    body: ReassignRequest,
    service: SequenceService = Depends(get_sequence_service),
):
    """重新分配

    - 200: {moved_count, new_assignee_display_name}
    - 404: 实例或负责人不存在
    - 409: 重新分配过程中实例被删除
    - 422: 新负责人与当前相同 / 已停用 / 不属于同一机构
    """
    try:
        result = await service.reassign_sequence(
            instance_id,
            resolve_assignee(body.staff_id, body.user_id),
        )
    except EngineError as e:
        return error_response(e)
    return result.model_dump()


@router.get("/api/instances/{instance_id}/reassign-candidates")
async def reassign_candidates(
    instance_id: str,
    service: SequenceService = Depends(get_sequence_service),
):
    try:
        entries = await service.list_reassign_candidates(instance_id)
    except EngineError as e:
        return error_response(e)
    return {"candidates": [e.model_dump(mode="json") for e in entries]}
