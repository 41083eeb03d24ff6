"""Store 与事务一致性测试

测试内容：
1. 实例 + 任务 + 事件单事务写入；中途失败整体回滚
2. 条件更新保证完成幂等
3. 最后一个任务完成时实例自动完成
4. 重新分配统计未完成任务并记录事件
5. ListTasks 筛选与派生状态
6. 共享连接上并发写事务互不丢失写入
"""

import asyncio
from datetime import UTC, date, datetime, timedelta

import pytest
from agencybrain.core.exceptions import ConflictError, ValidationError
from agencybrain.core.models import (
    EventType,
    InstanceStatus,
    SequenceInstance,
    SequenceTask,
    StaffAssignee,
    TaskQuery,
    TaskStatus,
    UserAssignee,
)
from agencybrain.core.store import (
    complete_task_atomically,
    create_instance_with_tasks,
    duplicate_template,
    reassign_instance,
    write_lock,
)

NOW = datetime(2024, 1, 10, 15, 0, tzinfo=UTC)
START = date(2024, 1, 10)


def _instance(instance_id: str = "01HZZZZZZZZZZZZZZZZZZZINS1", contact_id: str | None = None):
    from agencybrain.core.models import ContactRef

    return SequenceInstance(
        instance_id=instance_id,
        agency_id="agency-1",
        template_id="tpl-1",
        template_name="Onboarding",
        subject=ContactRef(contact_id=contact_id) if contact_id else None,
        customer_name="Pat Customer",
        assignee=StaffAssignee(staff_id="staff-alice"),
        start_date=START,
        created_at=NOW,
        updated_at=NOW,
    )


def _tasks(instance_id: str, offsets: list[int], action: str = "text") -> list[SequenceTask]:
    return [
        SequenceTask(
            task_id=f"{instance_id}-T{i}",
            instance_id=instance_id,
            title=f"Step {i}",
            action_type=action,
            day_number=offset,
            due_date=START + timedelta(days=offset),
            sort_order=i,
        )
        for i, offset in enumerate(offsets)
    ]


async def _seed(store_group, offsets=(0, 3, 7), instance_id="01HZZZZZZZZZZZZZZZZZZZINS1"):
    instance = _instance(instance_id)
    tasks = _tasks(instance_id, list(offsets))
    await create_instance_with_tasks(
        store_group.conn,
        store_group.instance_store,
        store_group.task_store,
        store_group.event_store,
        instance,
        tasks,
        {"tasks_created": len(tasks)},
    )
    return instance, tasks


async def _complete(store_group, task, when=NOW, follow_up=None):
    return await complete_task_atomically(
        store_group.conn,
        store_group.instance_store,
        store_group.task_store,
        store_group.event_store,
        task,
        when,
        None,
        StaffAssignee(staff_id="staff-alice"),
        follow_up,
    )


class TestCreateInstanceWithTasks:
    """序列应用事务"""

    async def test_instance_tasks_and_event_committed(self, store_group):
        instance, _ = await _seed(store_group)

        stored = await store_group.instance_store.get_instance(instance.instance_id)
        assert stored is not None
        assert stored.assignee == StaffAssignee(staff_id="staff-alice")

        tasks = await store_group.task_store.list_tasks_for_instance(instance.instance_id)
        assert [t.due_date for t in tasks] == [
            date(2024, 1, 10),
            date(2024, 1, 13),
            date(2024, 1, 17),
        ]

        events = await store_group.event_store.get_events_for_instance(instance.instance_id)
        assert [e.type for e in events] == [EventType.INSTANCE_CREATED]
        assert events[0].instance_seq == 1

    async def test_failure_midway_rolls_back_everything(self, store_group, monkeypatch):
        """第二个任务写入失败时，实例和第一个任务都不应落盘"""
        original = store_group.task_store.create_task
        calls = {"n": 0}

        async def flaky_create(task):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk full")
            await original(task)

        monkeypatch.setattr(store_group.task_store, "create_task", flaky_create)

        with pytest.raises(RuntimeError):
            await _seed(store_group)

        assert await store_group.instance_store.get_instance("01HZZZZZZZZZZZZZZZZZZZINS1") is None
        assert await store_group.task_store.get_task("01HZZZZZZZZZZZZZZZZZZZINS1-T0") is None
        events = await store_group.event_store.get_events_for_instance("01HZZZZZZZZZZZZZZZZZZZINS1")
        assert events == []

    async def test_one_active_instance_per_contact(self, store_group):
        import aiosqlite

        first = _instance("01HZZZZZZZZZZZZZZZZZZZINS1", contact_id="contact-1")
        await create_instance_with_tasks(
            store_group.conn, store_group.instance_store, store_group.task_store,
            store_group.event_store, first, _tasks(first.instance_id, [0]), {},
        )
        second = _instance("01HZZZZZZZZZZZZZZZZZZZINS2", contact_id="contact-1")
        with pytest.raises(aiosqlite.IntegrityError):
            await create_instance_with_tasks(
                store_group.conn, store_group.instance_store, store_group.task_store,
                store_group.event_store, second, _tasks(second.instance_id, [0]), {},
            )
        assert await store_group.instance_store.get_instance(second.instance_id) is None


class TestCompleteTaskAtomically:
    """完成事务"""

    async def test_second_completion_is_noop(self, store_group):
        _, tasks = await _seed(store_group)

        first = await _complete(store_group, tasks[0], when=NOW)
        assert first.changed
        stored = await store_group.task_store.get_task(tasks[0].task_id)
        completed_at = stored.completed_at

        later = NOW + timedelta(hours=2)
        second = await _complete(store_group, tasks[0], when=later)
        assert not second.changed
        again = await store_group.task_store.get_task(tasks[0].task_id)
        assert again.completed_at == completed_at

    async def test_completion_records_completed_by(self, store_group):
        _, tasks = await _seed(store_group)
        await _complete(store_group, tasks[1])
        stored = await store_group.task_store.get_task(tasks[1].task_id)
        assert stored.completed_by == StaffAssignee(staff_id="staff-alice")
        assert stored.status(START) == TaskStatus.COMPLETED

    async def test_last_task_completes_instance(self, store_group):
        instance, tasks = await _seed(store_group, offsets=(0, 1))

        outcome = await _complete(store_group, tasks[0])
        assert not outcome.instance_completed
        outcome = await _complete(store_group, tasks[1])
        assert outcome.instance_completed

        stored = await store_group.instance_store.get_instance(instance.instance_id)
        assert stored.status == InstanceStatus.COMPLETED
        assert stored.completed_at is not None

        events = await store_group.event_store.get_events_for_instance(instance.instance_id)
        assert [e.type for e in events] == [
            EventType.INSTANCE_CREATED,
            EventType.TASK_COMPLETED,
            EventType.TASK_COMPLETED,
            EventType.INSTANCE_COMPLETED,
        ]
        assert [e.instance_seq for e in events] == [1, 2, 3, 4]
        assert events[-1].payload == {"task_count": 2}

    async def test_follow_up_keeps_instance_open(self, store_group):
        instance, tasks = await _seed(store_group, offsets=(0,))
        follow_up = SequenceTask(
            task_id="follow-up-1",
            instance_id=instance.instance_id,
            title="Call follow-up",
            action_type="call",
            day_number=5,
            due_date=START + timedelta(days=5),
            sort_order=1,
        )
        outcome = await _complete(store_group, tasks[0], follow_up=follow_up)
        assert outcome.follow_up_task_id == "follow-up-1"
        assert not outcome.instance_completed
        assert await store_group.task_store.count_open_tasks(instance.instance_id) == 1


class TestReassignInstance:
    """重新分配事务"""

    async def test_moved_count_excludes_completed(self, store_group):
        """2 个未到期 + 1 个逾期 + 1 个已完成 -> moved_count = 3"""
        instance, tasks = await _seed(store_group, offsets=(0, 1, 5, 9))
        await _complete(store_group, tasks[0])

        new_owner = UserAssignee(user_id="user-owner")
        moved = await reassign_instance(
            store_group.conn,
            store_group.instance_store,
            store_group.task_store,
            store_group.event_store,
            instance.instance_id,
            new_owner,
            NOW,
        )
        assert moved == 3

        stored = await store_group.instance_store.get_instance(instance.instance_id)
        assert stored.assignee == new_owner
        done = await store_group.task_store.get_task(tasks[0].task_id)
        assert done.completed_by == StaffAssignee(staff_id="staff-alice")

        events = await store_group.event_store.get_events_for_instance(instance.instance_id)
        assert events[-1].type == EventType.INSTANCE_REASSIGNED
        assert events[-1].payload["moved_count"] == 3
        assert events[-1].payload["to_assignee"] == {"kind": "user", "user_id": "user-owner"}

    async def test_vanished_instance_conflicts(self, store_group):
        with pytest.raises(ConflictError):
            await reassign_instance(
                store_group.conn,
                store_group.instance_store,
                store_group.task_store,
                store_group.event_store,
                "01HZZZZZZZZZZZZZZZZZZMISSING",
                UserAssignee(user_id="user-owner"),
                NOW,
            )


    async def test_current_assignee_rejected_inside_transaction(self, store_group):
        """事务内重新读取后发现负责人已相同：拒绝且不写事件"""
        instance, _ = await _seed(store_group)
        with pytest.raises(ValidationError):
            await reassign_instance(
                store_group.conn,
                store_group.instance_store,
                store_group.task_store,
                store_group.event_store,
                instance.instance_id,
                StaffAssignee(staff_id="staff-alice"),
                NOW,
            )
        events = await store_group.event_store.get_events_for_instance(instance.instance_id)
        assert [e.type for e in events] == [EventType.INSTANCE_CREATED]


class TestConnectionWriteLock:
    """共享连接上的写事务串行执行"""

    async def test_lock_shared_per_connection(self, store_group):
        assert write_lock(store_group.conn) is store_group.write_lock

    async def test_noop_completion_keeps_concurrent_apply(self, store_group):
        """重复完成触发的回滚不影响并发序列应用尚未提交的写入"""
        _, tasks = await _seed(store_group, offsets=(0,))
        big = _instance("01HZZZZZZZZZZZZZZZZZZZINS2")
        big_tasks = _tasks(big.instance_id, list(range(40)))

        _, first, second = await asyncio.gather(
            create_instance_with_tasks(
                store_group.conn,
                store_group.instance_store,
                store_group.task_store,
                store_group.event_store,
                big,
                big_tasks,
                {"tasks_created": len(big_tasks)},
            ),
            _complete(store_group, tasks[0]),
            _complete(store_group, tasks[0]),
        )

        assert [first.changed, second.changed].count(True) == 1
        stored = await store_group.task_store.list_tasks_for_instance(big.instance_id)
        assert len(stored) == 40
        events = await store_group.event_store.get_events_for_instance(big.instance_id)
        assert [e.type for e in events] == [EventType.INSTANCE_CREATED]


class TestListTaskViews:
    """ListTasks 查询"""

    async def test_status_filter_uses_today(self, store_group):
        instance, _ = await _seed(store_group, offsets=(0, 3, 7))
        today = date(2024, 1, 13)

        due = await store_group.task_store.list_task_views(TaskQuery(status=TaskStatus.DUE), today)
        assert [v.task.due_date for v in due] == [date(2024, 1, 13)]
        assert due[0].customer_name == "Pat Customer"
        assert due[0].assignee == StaffAssignee(staff_id="staff-alice")

        overdue = await store_group.task_store.list_task_views(
            TaskQuery(status=TaskStatus.OVERDUE), today
        )
        assert [v.status for v in overdue] == [TaskStatus.OVERDUE]

    async def test_assignee_and_completion_filters(self, store_group):
        instance, tasks = await _seed(store_group)
        await _complete(store_group, tasks[0])

        mine = await store_group.task_store.list_task_views(
            TaskQuery(assignee=StaffAssignee(staff_id="staff-alice"), include_completed=False),
            START,
        )
        assert len(mine) == 2
        others = await store_group.task_store.list_task_views(
            TaskQuery(assignee=UserAssignee(user_id="user-owner")), START
        )
        assert others == []


class TestDuplicateTemplate:
    async def test_copy_is_inactive_with_steps(self, store_group, make_template):
        source = await make_template(name="Welcome")
        copy = await duplicate_template(store_group.conn, store_group.template_store, source, NOW)

        stored = await store_group.template_store.get_template(copy.template_id)
        assert stored.name == "Welcome (Copy)"
        assert not stored.is_active
        assert [(s.day_number, s.title) for s in stored.steps] == [
            (s.day_number, s.title) for s in source.ordered_steps
        ]
