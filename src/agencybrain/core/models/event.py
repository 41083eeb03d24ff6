"""SequenceEvent Domain Model -- 实例审计事件

事件表 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序。
instance_seq 同一实例内严格单调递增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import EventType


class SequenceEvent(BaseModel):
    """实例审计事件"""

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    instance_id: str = Field(description="关联的实例 ID")
    instance_seq: int = Field(description="实例内序号，严格单调递增")
    ts: datetime = Field(description="事件时间戳")
    type: EventType = Field(description="事件类型")
    task_id: str | None = Field(default=None, description="关联的任务 ID（任务级事件）")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
