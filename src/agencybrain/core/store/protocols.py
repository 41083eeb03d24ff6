"""Store Protocol 接口定义

定义 TemplateStore、InstanceStore、TaskStore、EventStore、AssigneeStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import date
from typing import Protocol

from ..models.assignee import StaffAssignee, UserAssignee
from ..models.directory import DirectoryEntry
from ..models.enums import AssigneeKind
from ..models.event import SequenceEvent
from ..models.instance import SequenceInstance
from ..models.task import SequenceTask, TaskQuery, TaskView
from ..models.template import SequenceStep, SequenceTemplate


class TemplateStore(Protocol):
    """模板存储接口（序列应用只读）"""

    async def create_template(self, template: SequenceTemplate) -> None: ...

    async def add_step(self, step: SequenceStep) -> None: ...

    async def get_template(self, template_id: str) -> SequenceTemplate | None:
        """根据 template_id 查询模板（含有序步骤）"""
        ...

    async def list_templates(
        self,
        agency_id: str,
        active_only: bool = False,
    ) -> list[SequenceTemplate]: ...

    async def set_active(self, template_id: str, is_active: bool, updated_at: str) -> bool: ...


class InstanceStore(Protocol):
    """序列实例存储接口"""

    async def create_instance(self, instance: SequenceInstance) -> None: ...

    async def get_instance(self, instance_id: str) -> SequenceInstance | None: ...

    async def find_active_for_subject(
        self,
        contact_id: str | None,
        sale_id: str | None,
    ) -> str | None:
        """查询关联对象上进行中的实例"""
        ...

    async def update_assignee(
        self,
        instance_id: str,
        assignee: StaffAssignee | UserAssignee,
        updated_at: str,
    ) -> bool: ...

    async def mark_completed(self, instance_id: str, completed_at: str) -> bool: ...


class TaskStore(Protocol):
    """序列任务存储接口

    状态不落盘：唯一可写的状态字段是 completed_at。
    """

    async def create_task(self, task: SequenceTask) -> None: ...

    async def get_task(self, task_id: str) -> SequenceTask | None: ...

    async def list_tasks_for_instance(self, instance_id: str) -> list[SequenceTask]: ...

    async def count_open_tasks(self, instance_id: str) -> int: ...

    async def mark_completed(
        self,
        task_id: str,
        completed_at: str,
        notes: str | None,
        completed_by: StaffAssignee | UserAssignee | None,
    ) -> bool:
        """完成任务，已完成时返回 False 且不改写任何字段"""
        ...

    async def list_task_views(self, query: TaskQuery, today: date) -> list[TaskView]: ...


class EventStore(Protocol):
    """实例审计事件存储接口

    事件表 append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: SequenceEvent) -> None: ...

    async def get_events_for_instance(self, instance_id: str) -> list[SequenceEvent]: ...

    async def get_next_instance_seq(self, instance_id: str) -> int: ...


class AssigneeStore(Protocol):
    """负责人目录接口"""

    async def upsert_entry(self, entry: DirectoryEntry) -> None: ...

    async def get_entry(
        self,
        kind: AssigneeKind | str,
        assignee_id: str,
    ) -> DirectoryEntry | None: ...

    async def list_entries(
        self,
        agency_id: str,
        active_only: bool = True,
    ) -> list[DirectoryEntry]: ...
