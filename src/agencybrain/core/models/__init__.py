"""Agency Brain Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .assignee import (
    Assignee,
    ContactRef,
    SaleRef,
    StaffAssignee,
    SubjectRef,
    UserAssignee,
    assignee_from_columns,
    assignee_to_columns,
    make_assignee,
    parse_assignee,
    subject_from_columns,
    subject_to_columns,
)
from .directory import DirectoryEntry
from .enums import (
    ACTION_LABELS,
    OPEN_STATES,
    VALID_TRANSITIONS,
    ActionType,
    AssigneeKind,
    DayState,
    EventType,
    InstanceStatus,
    TargetType,
    TaskStatus,
    notes_required,
    validate_transition,
)
from .event import SequenceEvent
from .instance import SequenceInstance
from .payloads import (
    FollowUpScheduledPayload,
    InstanceCompletedPayload,
    InstanceCreatedPayload,
    InstanceReassignedPayload,
    TaskCompletedPayload,
)
from .task import SequenceTask, TaskQuery, TaskView
from .template import SequenceStep, SequenceTemplate

__all__ = [
    # 枚举
    "TargetType",
    "ActionType",
    "TaskStatus",
    "InstanceStatus",
    "AssigneeKind",
    "EventType",
    "DayState",
    "ACTION_LABELS",
    # 状态机
    "OPEN_STATES",
    "VALID_TRANSITIONS",
    "validate_transition",
    "notes_required",
    # 负责人 / 关联对象
    "Assignee",
    "StaffAssignee",
    "UserAssignee",
    "make_assignee",
    "parse_assignee",
    "assignee_from_columns",
    "assignee_to_columns",
    "SubjectRef",
    "ContactRef",
    "SaleRef",
    "subject_from_columns",
    "subject_to_columns",
    "DirectoryEntry",
    # 模板 / 实例 / 任务
    "SequenceTemplate",
    "SequenceStep",
    "SequenceInstance",
    "SequenceTask",
    "TaskView",
    "TaskQuery",
    # Event
    "SequenceEvent",
    # Payloads
    "InstanceCreatedPayload",
    "TaskCompletedPayload",
    "FollowUpScheduledPayload",
    "InstanceReassignedPayload",
    "InstanceCompletedPayload",
]
