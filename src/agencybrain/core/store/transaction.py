"""多行原子写入封装

序列应用、任务完成、重新分配、模板复制都涉及多张表，
每个操作在同一 SQLite 事务内提交；任何一步失败整体回滚，
不会留下没有任务的实例、半完成的随访等中间状态。

所有 Store 共享同一个连接，commit / rollback 作用于整个连接，
因此写事务之间通过连接级写锁串行：从第一条写入到提交或回滚都持有该锁。
"""

import asyncio
import weakref
from datetime import datetime
from typing import Any

import aiosqlite
from pydantic import BaseModel, Field
from ulid import ULID

from ..exceptions import ConflictError, ValidationError
from ..models.assignee import StaffAssignee, UserAssignee
from ..models.enums import EventType
from ..models.event import SequenceEvent
from ..models.instance import SequenceInstance
from ..models.payloads import (
    FollowUpScheduledPayload,
    InstanceCompletedPayload,
    InstanceReassignedPayload,
    TaskCompletedPayload,
)
from ..models.task import SequenceTask
from ..models.template import SequenceStep, SequenceTemplate
from .protocols import EventStore, InstanceStore, TaskStore, TemplateStore

_write_locks: weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock] = (
    weakref.WeakKeyDictionary()
)


def write_lock(conn: aiosqlite.Connection) -> asyncio.Lock:
    """获取连接级写锁（同一连接始终返回同一把锁，不可重入）"""
    lock = _write_locks.get(conn)
    if lock is None:
        lock = asyncio.Lock()
        _write_locks[conn] = lock
    return lock


class CompletionOutcome(BaseModel):
    """完成事务的结果"""

    changed: bool = Field(description="本次调用是否完成了任务（False 表示任务早已完成）")
    follow_up_task_id: str | None = Field(default=None)
    instance_completed: bool = Field(default=False, description="实例是否因此自动完成")


async def _append(
    event_store: EventStore,
    instance_id: str,
    event_type: EventType,
    ts: datetime,
    payload: dict[str, Any],
    task_id: str | None = None,
) -> SequenceEvent:
    """在当前事务内分配 instance_seq 并追加事件"""
    event = SequenceEvent(
        event_id=str(ULID()),
        instance_id=instance_id,
        instance_seq=await event_store.get_next_instance_seq(instance_id),
        ts=ts,
        type=event_type,
        task_id=task_id,
        payload=payload,
    )
    await event_store.append_event(event)
    return event


async def create_instance_with_tasks(
    conn: aiosqlite.Connection,
    instance_store: InstanceStore,
    task_store: TaskStore,
    event_store: EventStore,
    instance: SequenceInstance,
    tasks: list[SequenceTask],
    created_payload: dict[str, Any],
) -> None:
    """在同一事务内创建实例、全部任务和 INSTANCE_CREATED 事件

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        instance: 新实例
        tasks: 按步骤顺序生成的任务
        created_payload: INSTANCE_CREATED 事件 payload（已序列化为 JSON 兼容 dict）

    Raises:
        Exception: 任意写入失败时回滚并原样抛出
    """
    async with write_lock(conn):
        try:
            await instance_store.create_instance(instance)
            for task in tasks:
                await task_store.create_task(task)
            await _append(
                event_store,
                instance.instance_id,
                EventType.INSTANCE_CREATED,
                instance.created_at,
                created_payload,
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise


async def complete_task_atomically(
    conn: aiosqlite.Connection,
    instance_store: InstanceStore,
    task_store: TaskStore,
    event_store: EventStore,
    task: SequenceTask,
    completed_at: datetime,
    notes: str | None,
    completed_by: StaffAssignee | UserAssignee | None,
    follow_up: SequenceTask | None = None,
) -> CompletionOutcome:
    """在同一事务内完成任务、创建随访任务，并在最后一个任务完成时收尾实例

    完成依赖 `WHERE completed_at IS NULL` 的条件更新：任务已完成时不写入任何内容，
    随访任务也不会重复创建。
    """
    async with write_lock(conn):
        try:
            changed = await task_store.mark_completed(
                task.task_id,
                completed_at.isoformat(),
                notes,
                completed_by,
            )
            if not changed:
                await conn.rollback()
                return CompletionOutcome(changed=False)

            await _append(
                event_store,
                task.instance_id,
                EventType.TASK_COMPLETED,
                completed_at,
                TaskCompletedPayload(
                    action_type=task.action_type,
                    due_date=task.due_date,
                    completed_by=completed_by,
                    has_notes=bool(notes),
                ).model_dump(mode="json"),
                task_id=task.task_id,
            )

            follow_up_task_id = None
            if follow_up is not None:
                await task_store.create_task(follow_up)
                follow_up_task_id = follow_up.task_id
                await _append(
                    event_store,
                    task.instance_id,
                    EventType.FOLLOW_UP_SCHEDULED,
                    completed_at,
                    FollowUpScheduledPayload(
                        source_task_id=task.task_id,
                        action_type=follow_up.action_type,
                        due_date=follow_up.due_date,
                        title=follow_up.title,
                    ).model_dump(mode="json"),
                    task_id=follow_up.task_id,
                )

            instance_completed = False
            if await task_store.count_open_tasks(task.instance_id) == 0:
                instance_completed = await instance_store.mark_completed(
                    task.instance_id,
                    completed_at.isoformat(),
                )
                if instance_completed:
                    tasks = await task_store.list_tasks_for_instance(task.instance_id)
                    await _append(
                        event_store,
                        task.instance_id,
                        EventType.INSTANCE_COMPLETED,
                        completed_at,
                        InstanceCompletedPayload(task_count=len(tasks)).model_dump(mode="json"),
                    )

            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    return CompletionOutcome(
        changed=True,
        follow_up_task_id=follow_up_task_id,
        instance_completed=instance_completed,
    )


async def reassign_instance(
    conn: aiosqlite.Connection,
    instance_store: InstanceStore,
    task_store: TaskStore,
    event_store: EventStore,
    instance_id: str,
    new_assignee: StaffAssignee | UserAssignee,
    ts: datetime,
) -> int:
    """在同一事务内转移实例负责人

    未完成任务随实例负责人一起转移（任务的负责人始终解析自实例），
    已完成任务保留 completed_by，不受影响。

    Returns:
        转移的未完成任务数

    Raises:
        ConflictError: 事务内重新读取时实例已不存在
        ValidationError: 事务内重新读取时实例已属于新负责人
    """
    async with write_lock(conn):
        try:
            instance = await instance_store.get_instance(instance_id)
            if instance is None:
                raise ConflictError(f"Instance {instance_id} disappeared during reassignment")
            if instance.assignee == new_assignee:
                raise ValidationError(
                    "Sequence is already assigned to this person",
                    field="assignee",
                )

            moved_count = await task_store.count_open_tasks(instance_id)
            await instance_store.update_assignee(instance_id, new_assignee, ts.isoformat())
            await _append(
                event_store,
                instance_id,
                EventType.INSTANCE_REASSIGNED,
                ts,
                InstanceReassignedPayload(
                    from_assignee=instance.assignee,
                    to_assignee=new_assignee,
                    moved_count=moved_count,
                ).model_dump(mode="json"),
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
    return moved_count


async def create_template_with_steps(
    conn: aiosqlite.Connection,
    template_store: TemplateStore,
    template: SequenceTemplate,
) -> None:
    """在同一事务内创建模板及其全部步骤"""
    async with write_lock(conn):
        try:
            await template_store.create_template(template)
            for step in template.steps:
                await template_store.add_step(step)
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise


async def duplicate_template(
    conn: aiosqlite.Connection,
    template_store: TemplateStore,
    source: SequenceTemplate,
    ts: datetime,
) -> SequenceTemplate:
    """复制模板：新模板名称追加 "(Copy)"，默认停用，步骤逐条复制

    Returns:
        新模板（含步骤）
    """
    new_id = str(ULID())
    copy = SequenceTemplate(
        template_id=new_id,
        agency_id=source.agency_id,
        name=f"{source.name} (Copy)",
        description=source.description,
        target_type=source.target_type,
        is_active=False,
        created_at=ts,
        updated_at=ts,
        steps=[
            SequenceStep(
                step_id=str(ULID()),
                template_id=new_id,
                day_number=step.day_number,
                action_type=step.action_type,
                title=step.title,
                description=step.description,
                script_template=step.script_template,
                sort_order=step.sort_order,
            )
            for step in source.ordered_steps
        ],
    )
    await create_template_with_steps(conn, template_store, copy)
    return copy
