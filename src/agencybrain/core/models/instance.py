"""序列实例 Domain Model

实例是模板在某个客户上的一次应用：具体开始日期 + 唯一负责人。
实例自带客户名称 / 电话 / 邮箱，可在没有关联联系人或销售记录时独立展示。
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from .assignee import Assignee, SubjectRef
from .enums import InstanceStatus


class SequenceInstance(BaseModel):
    """序列实例"""

    instance_id: str = Field(description="唯一标识，ULID 格式")
    agency_id: str = Field(description="所属机构 ID")
    template_id: str = Field(description="来源模板 ID")
    template_name: str = Field(default="", description="应用时的模板名称快照")
    subject: SubjectRef | None = Field(default=None, description="关联联系人或销售记录")
    customer_name: str = Field(description="客户名称")
    customer_phone: str | None = Field(default=None, description="客户电话")
    customer_email: str | None = Field(default=None, description="客户邮箱")
    assignee: Assignee = Field(description="当前负责人")
    start_date: date = Field(description="序列开始日期")
    status: InstanceStatus = Field(default=InstanceStatus.ACTIVE, description="实例状态")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    completed_at: datetime | None = Field(default=None, description="全部任务完成时间")
