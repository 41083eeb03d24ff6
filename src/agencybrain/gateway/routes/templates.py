"""序列模板路由

POST /api/templates: 创建模板（含初始步骤）
GET /api/templates?agency_id=: 模板列表
GET /api/templates/{template_id}: 模板详情
POST /api/templates/{template_id}/steps: 追加步骤
POST /api/templates/{template_id}/duplicate: 复制模板（副本默认停用）
POST /api/templates/{template_id}/active: 启用 / 停用
"""

from agencybrain.core.exceptions import EngineError
from agencybrain.core.models import TargetType
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_template_service
from ..services.template_service import StepSpec, TemplateService
from .errors import error_response

router = APIRouter()


class CreateTemplateRequest(BaseModel):
    agency_id: str
    name: str
    description: str = ""
    target_type: TargetType = TargetType.ONBOARDING
    is_active: bool = True
    steps: list[StepSpec] = Field(default_factory=list)


class SetActiveRequest(BaseModel):
    is_active: bool


@router.post("/api/templates", status_code=201)
async def create_template(
    body: CreateTemplateRequest,
    service: TemplateService = Depends(get_template_service),
):
    try:
        template = await service.create_template(
            agency_id=body.agency_id,
            name=body.name,
            steps=body.steps,
            description=body.description,
            target_type=body.target_type,
            is_active=body.is_active,
        )
    except EngineError as e:
        return error_response(e)
    return JSONResponse(status_code=201, content=template.model_dump(mode="json"))


@router.get("/api/templates")
async def list_templates(
    agency_id: str = Query(description="机构 ID"),
    active_only: bool = Query(default=False),
    service: TemplateService = Depends(get_template_service),
):
    templates = await service.list_templates(agency_id, active_only)
    return {"templates": [t.model_dump(mode="json") for t in templates]}


@router.get("/api/templates/{template_id}")
async def get_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    try:
        template = await service.get_template(template_id)
    except EngineError as e:
        return error_response(e)
    return template.model_dump(mode="json")


@router.post("/api/templates/{template_id}/steps", status_code=201)
async def add_step(
    template_id: str,
    body: StepSpec,
    service: TemplateService = Depends(get_template_service),
):
    try:
        step = await service.add_step(template_id, body)
    except EngineError as e:
        return error_response(e)
    return JSONResponse(status_code=201, content=step.model_dump(mode="json"))


@router.post("/api/templates/{template_id}/duplicate", status_code=201)
async def duplicate_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    try:
        template = await service.duplicate(template_id)
    except EngineError as e:
        return error_response(e)
    return JSONResponse(status_code=201, content=template.model_dump(mode="json"))


@router.post("/api/templates/{template_id}/active")
async def set_template_active(
    template_id: str,
    body: SetActiveRequest,
    service: TemplateService = Depends(get_template_service),
):
    try:
        template = await service.set_active(template_id, body.is_active)
    except EngineError as e:
        return error_response(e)
    return template.model_dump(mode="json")
