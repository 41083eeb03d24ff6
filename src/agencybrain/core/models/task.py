"""序列任务 Domain Model

任务由模板步骤生成：due_date = start_date + day_number（日历日）。
唯一存储的事实是 completed_at；pending / due / overdue 均在读取时派生，
不存在可变的 status 列。
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from .assignee import Assignee
from .enums import ActionType, TaskStatus


class SequenceTask(BaseModel):
    """序列任务"""

    task_id: str = Field(description="唯一标识，ULID 格式")
    instance_id: str = Field(description="所属实例 ID")
    step_id: str | None = Field(default=None, description="来源步骤 ID，随访任务为空")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务说明")
    script_template: str = Field(default="", description="话术模板")
    action_type: ActionType = Field(description="动作类型")
    day_number: int = Field(ge=0, description="相对实例开始日期的天数偏移")
    due_date: date = Field(description="到期日期")
    sort_order: int = Field(default=0, description="同一实例内的展示顺序")
    completed_at: datetime | None = Field(default=None, description="完成时间（UTC）")
    completed_by: Assignee | None = Field(default=None, description="完成时的负责人")
    notes: str | None = Field(default=None, description="完成备注")

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def status(self, today: date) -> TaskStatus:
        """派生当前状态"""
        from ..status import derive_status

        return derive_status(self.due_date, self.completed_at, today)


class TaskView(BaseModel):
    """任务 + 实例展示字段（ListTasks 的返回项）

    instance 缺失时（如实例已被外部删除）展示字段为 None。
    """

    task: SequenceTask
    status: TaskStatus = Field(description="查询时派生的状态")
    customer_name: str | None = Field(default=None)
    customer_phone: str | None = Field(default=None)
    customer_email: str | None = Field(default=None)
    template_id: str | None = Field(default=None)
    template_name: str | None = Field(default=None)
    assignee: Assignee | None = Field(default=None, description="实例当前负责人")


class TaskQuery(BaseModel):
    """ListTasks 范围筛选条件，所有条件为 AND 关系"""

    agency_id: str | None = None
    assignee: Assignee | None = Field(default=None, description="按实例当前负责人筛选")
    instance_id: str | None = None
    template_id: str | None = None
    status: TaskStatus | None = Field(default=None, description="按派生状态筛选")
    due_date: date | None = Field(default=None, description="按到期日精确筛选")
    include_completed: bool = Field(default=True, description="是否包含已完成任务")
