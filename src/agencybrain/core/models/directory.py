"""负责人目录 Domain Model

员工账号与平台用户由外部系统维护，引擎只保留解析显示名称、
校验负责人所需的最小只读信息。
"""

from pydantic import BaseModel, Field

from .assignee import StaffAssignee, UserAssignee, make_assignee
from .enums import AssigneeKind


class DirectoryEntry(BaseModel):
    """负责人目录条目"""

    kind: AssigneeKind = Field(description="负责人类型")
    assignee_id: str = Field(description="员工账号 ID 或平台用户 ID")
    agency_id: str = Field(description="所属机构 ID")
    display_name: str = Field(description="显示名称")
    is_active: bool = Field(default=True, description="是否在职 / 可分配")

    def as_assignee(self) -> StaffAssignee | UserAssignee:
        return make_assignee(self.kind, self.assignee_id)
