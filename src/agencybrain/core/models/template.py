"""序列模板 Domain Model

模板是可复用、按相对天数定义的跟进步骤列表，与具体客户无关。
模板对引擎只读：修改模板不会影响已生成的实例和任务。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import ActionType, TargetType


class SequenceStep(BaseModel):
    """模板步骤 -- 一个相对天数偏移 + 动作类型 + 话术"""

    step_id: str = Field(description="唯一标识，ULID 格式")
    template_id: str = Field(description="所属模板 ID")
    day_number: int = Field(ge=0, description="相对开始日期的天数偏移")
    action_type: ActionType = Field(description="动作类型")
    title: str = Field(description="步骤标题")
    description: str = Field(default="", description="步骤说明")
    script_template: str = Field(default="", description="话术模板")
    sort_order: int = Field(default=0, description="同一天内的排序")


class SequenceTemplate(BaseModel):
    """序列模板"""

    template_id: str = Field(description="唯一标识，ULID 格式")
    agency_id: str = Field(description="所属机构 ID")
    name: str = Field(description="模板名称")
    description: str = Field(default="", description="模板说明")
    target_type: TargetType = Field(default=TargetType.ONBOARDING, description="适用场景")
    is_active: bool = Field(default=True, description="是否启用")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    steps: list[SequenceStep] = Field(default_factory=list, description="步骤列表")

    @property
    def ordered_steps(self) -> list[SequenceStep]:
        """按 (day_number, sort_order) 排序的步骤"""
        return sorted(self.steps, key=lambda s: (s.day_number, s.sort_order))

    @property
    def is_applicable(self) -> bool:
        """至少有一个步骤才能应用"""
        return len(self.steps) > 0
