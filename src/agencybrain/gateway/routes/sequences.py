"""序列应用路由

POST /api/sequences/apply: 将模板应用到客户，生成实例与全部任务。
- 201: 创建成功
- 404: 模板或负责人不存在
- 422: 输入校验失败
"""

from datetime import date

from agencybrain.core.exceptions import EngineError
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_sequence_service
from ..services.sequence_service import SequenceService, resolve_assignee, resolve_subject
from .errors import error_response

router = APIRouter()


class ApplySequenceRequest(BaseModel):
    """序列应用请求 -- staff_id 与 user_id 二选一"""

    template_id: str
    start_date: date
    customer_name: str
    staff_id: str | None = None
    user_id: str | None = None
    contact_id: str | None = None
    sale_id: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None


class ApplySequenceResponse(BaseModel):
    instance_id: str
    tasks_created: int = Field(description="生成的任务数（等于模板步骤数）")
    template_name: str


@router.post("/api/sequences/apply", status_code=201)
async def apply_sequence(
    body: ApplySequenceRequest,
    service: SequenceService = Depends(get_sequence_service),
):
    """应用序列模板"""
    try:
        result = await service.apply_sequence(
            template_id=body.template_id,
            start_date=body.start_date,
            assignee=resolve_assignee(body.staff_id, body.user_id),
            customer_name=body.customer_name,
            subject=resolve_subject(body.contact_id, body.sale_id),
            customer_phone=body.customer_phone,
            customer_email=body.customer_email,
        )
    except EngineError as e:
        return error_response(e)

    return JSONResponse(
        status_code=201,
        content=ApplySequenceResponse(**result.model_dump()).model_dump(),
    )
