"""枚举定义 -- 序列模板、任务状态、实例状态、事件类型

TaskStatus 是派生值（见 core.status），数据库中只保存 completed_at。
VALID_TRANSITIONS 描述唯一合法的流转：任何未完成状态 -> completed。
"""

from enum import StrEnum


class TargetType(StrEnum):
    """序列模板适用场景"""

    ONBOARDING = "onboarding"
    LEAD_NURTURING = "lead_nurturing"
    REQUOTE = "requote"
    RETENTION = "retention"
    OTHER = "other"


class ActionType(StrEnum):
    """任务交互渠道"""

    CALL = "call"
    TEXT = "text"
    EMAIL = "email"
    OTHER = "other"


class TaskStatus(StrEnum):
    """任务生命周期状态（派生，不存储）"""

    PENDING = "pending"
    DUE = "due"
    OVERDUE = "overdue"

    # 终态
    COMPLETED = "completed"


class InstanceStatus(StrEnum):
    """序列实例状态"""

    ACTIVE = "active"
    COMPLETED = "completed"


class AssigneeKind(StrEnum):
    """负责人类型 -- 员工账号或平台用户，二选一"""

    STAFF = "staff"
    USER = "user"


class EventType(StrEnum):
    """实例审计事件类型"""

    INSTANCE_CREATED = "INSTANCE_CREATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    FOLLOW_UP_SCHEDULED = "FOLLOW_UP_SCHEDULED"
    INSTANCE_REASSIGNED = "INSTANCE_REASSIGNED"
    INSTANCE_COMPLETED = "INSTANCE_COMPLETED"


class DayState(StrEnum):
    """周视图单元格状态"""

    MISSED = "missed"
    TODAY_WITH_TASKS = "today_with_tasks"
    TODAY_CLEAR = "today_clear"
    PAST_DONE = "past_done"
    FUTURE = "future"


OPEN_STATES: set[TaskStatus] = {
    TaskStatus.PENDING,
    TaskStatus.DUE,
    TaskStatus.OVERDUE,
}

# 合法流转：仅允许通过“完成”动作进入终态，不支持撤销
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.COMPLETED},
    TaskStatus.DUE: {TaskStatus.COMPLETED},
    TaskStatus.OVERDUE: {TaskStatus.COMPLETED},
    TaskStatus.COMPLETED: set(),
}

# 完成时必须填写备注的任务类型
NOTES_REQUIRED_ACTIONS: set[ActionType] = {ActionType.CALL}

ACTION_LABELS: dict[ActionType, str] = {
    ActionType.CALL: "Call",
    ActionType.TEXT: "Text",
    ActionType.EMAIL: "Email",
    ActionType.OTHER: "Task",
}


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def notes_required(action_type: ActionType) -> bool:
    """该类型任务完成时是否必须填写备注"""
    return action_type in NOTES_REQUIRED_ACTIONS
