"""Event Payload 子类型

所有实例审计事件的结构化 payload 定义。
"""

from datetime import date

from pydantic import BaseModel, Field

from .assignee import Assignee
from .enums import ActionType


class InstanceCreatedPayload(BaseModel):
    """INSTANCE_CREATED 事件 payload"""

    template_id: str
    template_name: str
    customer_name: str
    start_date: date
    assignee: Assignee
    tasks_created: int


class TaskCompletedPayload(BaseModel):
    """TASK_COMPLETED 事件 payload"""

    action_type: ActionType
    due_date: date
    completed_by: Assignee | None = None
    has_notes: bool = Field(default=False, description="是否填写了备注（不落盘备注正文）")


class FollowUpScheduledPayload(BaseModel):
    """FOLLOW_UP_SCHEDULED 事件 payload"""

    source_task_id: str
    action_type: ActionType
    due_date: date
    title: str


class InstanceReassignedPayload(BaseModel):
    """INSTANCE_REASSIGNED 事件 payload"""

    from_assignee: Assignee
    to_assignee: Assignee
    moved_count: int = Field(description="转移的未完成任务数")


class InstanceCompletedPayload(BaseModel):
    """INSTANCE_COMPLETED 事件 payload"""

    task_count: int
