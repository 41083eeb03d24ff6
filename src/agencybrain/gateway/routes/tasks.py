"""任务路由

GET /api/tasks: 按范围筛选任务，返回任务 + 实例展示字段 + 派生状态。
GET /api/tasks/dashboard: 客户分组看板 + 今日已完成 + 统计。
GET /api/tasks/overdue-digest: 逾期任务按负责人汇总。
POST /api/tasks/{task_id}/complete: 完成任务（幂等）。
"""

from datetime import date
from typing import Any

from agencybrain.core.exceptions import EngineError
from agencybrain.core.models import TaskQuery, TaskStatus, TaskView
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_sequence_service
from ..services.sequence_service import FollowUpSpec, SequenceService, resolve_assignee
from .errors import error_response

router = APIRouter()


class TaskFilterParams:
    """ListTasks 查询参数（所有条件为 AND 关系）"""

    def __init__(
        self,
        agency_id: str | None = Query(default=None),
        staff_id: str | None = Query(default=None, description="按实例当前负责人（员工）筛选"),
        user_id: str | None = Query(default=None, description="按实例当前负责人（用户）筛选"),
        instance_id: str | None = Query(default=None),
        template_id: str | None = Query(default=None),
        status: TaskStatus | None = Query(default=None, description="按派生状态筛选"),
        due_date: date | None = Query(default=None),
        include_completed: bool = Query(default=True),
    ) -> None:
        self.agency_id = agency_id
        self.staff_id = staff_id
        self.user_id = user_id
        self.instance_id = instance_id
        self.template_id = template_id
        self.status = status
        self.due_date = due_date
        self.include_completed = include_completed

    def to_query(self) -> TaskQuery:
        """转换为 TaskQuery

        Raises:
            ValidationError: 同时提供 staff_id 与 user_id
        """
        assignee = None
        if self.staff_id or self.user_id:
            assignee = resolve_assignee(self.staff_id, self.user_id)
        return TaskQuery(
            agency_id=self.agency_id,
            assignee=assignee,
            instance_id=self.instance_id,
            template_id=self.template_id,
            status=self.status,
            due_date=self.due_date,
            include_completed=self.include_completed,
        )


class CompleteTaskRequest(BaseModel):
    notes: str | None = Field(default=None, description="完成备注，电话任务必填")
    follow_up: FollowUpSpec | None = Field(default=None, description="可选随访任务")
    staff_id: str | None = Field(default=None, description="显式指定完成人（员工）")
    user_id: str | None = Field(default=None, description="显式指定完成人（用户）")


class CompleteTaskResponse(BaseModel):
    task_id: str
    status: str
    completed_at: str | None


def task_item(view: TaskView) -> dict[str, Any]:
    """任务 + 实例展示字段 + 派生状态，扁平化为一个列表项"""
    item = view.task.model_dump(mode="json")
    item.update(
        status=view.status.value,
        customer_name=view.customer_name,
        customer_phone=view.customer_phone,
        customer_email=view.customer_email,
        template_id=view.template_id,
        template_name=view.template_name,
        assignee=view.assignee.model_dump(mode="json") if view.assignee else None,
    )
    return item


@router.get("/api/tasks")
async def list_tasks(
    params: TaskFilterParams = Depends(),
    service: SequenceService = Depends(get_sequence_service),
):
    """查询任务列表，按 due_date, sort_order 正序"""
    try:
        views = await service.list_tasks(params.to_query())
    except EngineError as e:
        return error_response(e)
    return {"tasks": [task_item(v) for v in views]}


@router.get("/api/tasks/dashboard")
async def task_dashboard(
    params: TaskFilterParams = Depends(),
    service: SequenceService = Depends(get_sequence_service),
):
    """客户分组看板"""
    try:
        dashboard = await service.dashboard(params.to_query())
    except EngineError as e:
        return error_response(e)

    return {
        "today": dashboard.today.isoformat(),
        "groups": [
            {
                "customer_name": g.customer_name,
                "instance_ids": g.instance_ids,
                "overdue_count": g.overdue_count,
                "due_count": g.due_count,
                "pending_count": g.pending_count,
                "completed_count": g.completed_count,
                "tasks": [task_item(v) for v in g.tasks],
            }
            for g in dashboard.groups
        ],
        "completed_today": [task_item(v) for v in dashboard.completed_today],
        "stats": dashboard.stats.model_dump(),
        "templates": [t.model_dump() for t in dashboard.templates],
    }


@router.get("/api/tasks/overdue-digest")
async def overdue_digest(
    params: TaskFilterParams = Depends(),
    service: SequenceService = Depends(get_sequence_service),
):
    """逾期任务按负责人汇总（仅数据，不发送通知）"""
    try:
        entries = await service.overdue_digest(params.to_query())
    except EngineError as e:
        return error_response(e)

    return {
        "entries": [
            {
                "assignee": e.assignee.model_dump(mode="json"),
                "display_name": e.display_name,
                "overdue_count": e.overdue_count,
                "tasks": [task_item(v) for v in e.tasks],
            }
            for e in entries
        ]
    }


@router.post("/api/tasks/{task_id}/complete")
async def complete_task(
    task_id: str,
    body: CompleteTaskRequest | None = None,
    service: SequenceService = Depends(get_sequence_service),
):
    """完成任务

    - 已完成的任务返回 200 + 原 completed_at（幂等）
    - 电话任务缺少备注返回 422
    - 不存在的任务返回 404
    """
    body = body or CompleteTaskRequest()
    try:
        actor = None
        if body.staff_id or body.user_id:
            actor = resolve_assignee(body.staff_id, body.user_id)
        task = await service.complete_task(
            task_id,
            notes=body.notes,
            follow_up=body.follow_up,
            actor=actor,
        )
    except EngineError as e:
        return error_response(e)

    return CompleteTaskResponse(
        task_id=task.task_id,
        status=task.status(service.today()).value,
        completed_at=task.completed_at.isoformat() if task.completed_at else None,
    )
