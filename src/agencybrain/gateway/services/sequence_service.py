"""SequenceService -- 序列应用 / 任务完成 / 重新分配 / 看板查询业务逻辑

序列应用流程：
1. 本地校验（负责人、客户名称）
2. 读取模板与步骤，校验负责人目录与关联对象
3. 单事务写入实例 + 全部任务 + INSTANCE_CREATED 事件

所有写操作按实例加锁串行化，写事务之间再由连接级写锁串行；
正确性由 SQLite 事务与条件更新保证。
"""

import asyncio
import weakref
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, timedelta, tzinfo

import aiosqlite
import structlog
from agencybrain.core.aggregation import (
    OverdueDigestEntry,
    TaskDashboard,
    build_dashboard,
    build_overdue_digest,
)
from agencybrain.core.config import FOLLOW_UP_TITLE_SUFFIX, get_timezone
from agencybrain.core.exceptions import NotFoundError, TransportError, ValidationError
from agencybrain.core.models import (
    ACTION_LABELS,
    ActionType,
    ContactRef,
    DirectoryEntry,
    InstanceCreatedPayload,
    SaleRef,
    SequenceEvent,
    SequenceInstance,
    SequenceTask,
    StaffAssignee,
    TaskQuery,
    TaskView,
    UserAssignee,
    notes_required,
)
from agencybrain.core.outlook import (
    MonthCalendar,
    WeekOutlook,
    build_month_calendar,
    build_week_outlook,
)
from agencybrain.core.status import local_today
from agencybrain.core.store import (
    StoreGroup,
    complete_task_atomically,
    create_instance_with_tasks,
    reassign_instance,
)
from pydantic import BaseModel, Field
from ulid import ULID

log = structlog.get_logger()


class ApplyResult(BaseModel):
    """序列应用结果"""

    instance_id: str
    tasks_created: int
    template_name: str


class ReassignResult(BaseModel):
    """重新分配结果"""

    moved_count: int = Field(description="转移的未完成任务数")
    new_assignee_display_name: str


class FollowUpSpec(BaseModel):
    """完成任务时顺带安排的随访任务"""

    due_date: date
    action_type: ActionType = ActionType.CALL
    title: str | None = Field(default=None, description="为空时使用 '<动作> follow-up'")


class InstanceDetail(BaseModel):
    """实例详情：实例 + 任务（含派生状态）+ 审计事件"""

    instance: SequenceInstance
    tasks: list[TaskView]
    events: list[SequenceEvent]


def resolve_assignee(
    staff_id: str | None,
    user_id: str | None,
) -> StaffAssignee | UserAssignee:
    """将请求中的 staff_id / user_id 二选一转换为负责人

    Raises:
        ValidationError: 两者都为空或同时提供
    """
    staff_id = (staff_id or "").strip() or None
    user_id = (user_id or "").strip() or None
    if staff_id and user_id:
        raise ValidationError("Choose either a staff member or a user, not both", field="assignee")
    if staff_id:
        return StaffAssignee(staff_id=staff_id)
    if user_id:
        return UserAssignee(user_id=user_id)
    raise ValidationError("Please select who to assign this sequence to", field="assignee")


def resolve_subject(
    contact_id: str | None,
    sale_id: str | None,
) -> ContactRef | SaleRef | None:
    """关联联系人或销售记录，最多一个"""
    if contact_id and sale_id:
        raise ValidationError("A sequence links to a contact or a sale, not both", field="subject")
    if contact_id:
        return ContactRef(contact_id=contact_id)
    if sale_id:
        return SaleRef(sale_id=sale_id)
    return None


class SequenceService:
    """序列任务业务服务"""

    # 无协程持有时条目自动回收
    _instance_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def __init__(
        self,
        store_group: StoreGroup,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._stores = store_group
        self._tz = tz or get_timezone()
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        """机构时区下的今天"""
        return local_today(self._tz, self._clock())

    # ------------------------------------------------------------------
    # 序列应用
    # ------------------------------------------------------------------

    async def apply_sequence(
        self,
        template_id: str,
        start_date: date,
        assignee: StaffAssignee | UserAssignee,
        customer_name: str,
        subject: ContactRef | SaleRef | None = None,
        customer_phone: str | None = None,
        customer_email: str | None = None,
    ) -> ApplyResult:
        """将模板应用到客户，生成实例与全部任务

        Raises:
            ValidationError: 客户名称为空、模板没有步骤、负责人不可分配、关联对象已有进行中的序列
            NotFoundError: 模板或负责人不存在
            TransportError: 存储调用失败
        """
        customer_name = customer_name.strip()
        if not customer_name:
            raise ValidationError("Customer name is required", field="customer_name")

        async with self._storage("apply_sequence"):
            template = await self._stores.template_store.get_template(template_id)
            if template is None:
                raise NotFoundError("template", template_id)
            # 停用的模板仍可应用；没有步骤的模板不可应用
            if not template.is_applicable:
                raise ValidationError("This sequence has no steps", field="template_id")

            await self._validate_assignee(assignee, template.agency_id)

            contact_id = subject.contact_id if isinstance(subject, ContactRef) else None
            sale_id = subject.sale_id if isinstance(subject, SaleRef) else None
            existing = await self._stores.instance_store.find_active_for_subject(
                contact_id, sale_id
            )
            if existing:
                raise ValidationError(
                    "This customer already has an active sequence",
                    field="subject",
                )

            now = self.now()
            instance_id = str(ULID())
            instance = SequenceInstance(
                instance_id=instance_id,
                agency_id=template.agency_id,
                template_id=template.template_id,
                template_name=template.name,
                subject=subject,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                assignee=assignee,
                start_date=start_date,
                created_at=now,
                updated_at=now,
            )
            tasks = [
                SequenceTask(
                    task_id=str(ULID()),
                    instance_id=instance_id,
                    step_id=step.step_id,
                    title=step.title,
                    description=step.description,
                    script_template=step.script_template,
                    action_type=step.action_type,
                    day_number=step.day_number,
                    due_date=start_date + timedelta(days=step.day_number),
                    sort_order=index,
                )
                for index, step in enumerate(template.ordered_steps)
            ]
            payload = InstanceCreatedPayload(
                template_id=template.template_id,
                template_name=template.name,
                customer_name=customer_name,
                start_date=start_date,
                assignee=assignee,
                tasks_created=len(tasks),
            ).model_dump(mode="json")

            try:
                await create_instance_with_tasks(
                    self._stores.conn,
                    self._stores.instance_store,
                    self._stores.task_store,
                    self._stores.event_store,
                    instance,
                    tasks,
                    payload,
                )
            except aiosqlite.IntegrityError as e:
                # 并发应用到同一联系人 / 销售记录：由部分唯一索引拦截
                if self._is_active_subject_conflict(e):
                    raise ValidationError(
                        "This customer already has an active sequence",
                        field="subject",
                    ) from e
                raise

        log.info(
            "sequence_applied",
            instance_id=instance_id,
            template_id=template.template_id,
            tasks_created=len(tasks),
            start_date=start_date.isoformat(),
        )
        return ApplyResult(
            instance_id=instance_id,
            tasks_created=len(tasks),
            template_name=template.name,
        )

    # ------------------------------------------------------------------
    # 任务完成
    # ------------------------------------------------------------------

    async def complete_task(
        self,
        task_id: str,
        notes: str | None = None,
        follow_up: FollowUpSpec | None = None,
        actor: StaffAssignee | UserAssignee | None = None,
    ) -> SequenceTask:
        """完成任务（幂等）

        已完成的任务原样返回，不报错也不改写 completed_at。

        Args:
            task_id: 任务 ID
            notes: 完成备注，电话任务必填
            follow_up: 可选随访任务
            actor: 显式指定的完成人，默认取实例当前负责人

        Raises:
            NotFoundError: 任务不存在
            ValidationError: 电话任务缺少备注、随访日期早于序列开始日期
        """
        notes = (notes or "").strip() or None

        async with self._storage("complete_task"):
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)

            if task.is_completed:
                log.info("task_completion_noop", task_id=task_id, instance_id=task.instance_id)
                return task

            if notes_required(task.action_type) and notes is None:
                raise ValidationError("Notes are required for call tasks", field="notes")

            instance = await self._stores.instance_store.get_instance(task.instance_id)
            completed_by = actor or (instance.assignee if instance else None)

            follow_up_task = None
            if follow_up is not None:
                follow_up_task = await self._build_follow_up(task, instance, follow_up)

            lock = self._get_instance_lock(task.instance_id)
            async with lock:
                outcome = await complete_task_atomically(
                    self._stores.conn,
                    self._stores.instance_store,
                    self._stores.task_store,
                    self._stores.event_store,
                    task,
                    self.now(),
                    notes,
                    completed_by,
                    follow_up_task,
                )

            if not outcome.changed:
                log.info("task_completion_noop", task_id=task_id, instance_id=task.instance_id)
            else:
                log.info(
                    "task_completed",
                    task_id=task_id,
                    instance_id=task.instance_id,
                    action_type=task.action_type.value,
                    follow_up_task_id=outcome.follow_up_task_id,
                )
                if outcome.instance_completed:
                    log.info("instance_completed", instance_id=task.instance_id)

            updated = await self._stores.task_store.get_task(task_id)
        if updated is None:
            raise NotFoundError("task", task_id)
        return updated

    async def _build_follow_up(
        self,
        task: SequenceTask,
        instance: SequenceInstance | None,
        follow_up: FollowUpSpec,
    ) -> SequenceTask:
        if instance is None:
            raise ValidationError(
                "Cannot schedule a follow-up for a task without a sequence",
                field="follow_up",
            )
        if follow_up.due_date < instance.start_date:
            raise ValidationError(
                "Follow-up date cannot be before the sequence start date",
                field="follow_up.due_date",
            )
        title = (follow_up.title or "").strip() or (
            f"{ACTION_LABELS[follow_up.action_type]} {FOLLOW_UP_TITLE_SUFFIX}"
        )
        return SequenceTask(
            task_id=str(ULID()),
            instance_id=task.instance_id,
            step_id=None,
            title=title,
            action_type=follow_up.action_type,
            day_number=(follow_up.due_date - instance.start_date).days,
            due_date=follow_up.due_date,
            sort_order=await self._stores.task_store.next_sort_order(task.instance_id),
        )

    # ------------------------------------------------------------------
    # 重新分配
    # ------------------------------------------------------------------

    async def reassign_sequence(
        self,
        instance_id: str,
        new_assignee: StaffAssignee | UserAssignee,
    ) -> ReassignResult:
        """将实例（及其全部未完成任务）转给新负责人

        Raises:
            NotFoundError: 实例或新负责人不存在
            ValidationError: 新负责人与当前相同、已停用或不属于同一机构
            ConflictError: 重新分配过程中实例被删除
        """
        async with self._storage("reassign_sequence"):
            instance = await self._stores.instance_store.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("instance", instance_id)
            if new_assignee == instance.assignee:
                raise ValidationError(
                    "Sequence is already assigned to this person",
                    field="assignee",
                )

            entry = await self._validate_assignee(new_assignee, instance.agency_id)

            lock = self._get_instance_lock(instance_id)
            async with lock:
                moved_count = await reassign_instance(
                    self._stores.conn,
                    self._stores.instance_store,
                    self._stores.task_store,
                    self._stores.event_store,
                    instance_id,
                    new_assignee,
                    self.now(),
                )

        log.info(
            "sequence_reassigned",
            instance_id=instance_id,
            from_assignee=instance.assignee.assignee_id,
            to_assignee=new_assignee.assignee_id,
            moved_count=moved_count,
        )
        return ReassignResult(
            moved_count=moved_count,
            new_assignee_display_name=entry.display_name,
        )

    async def list_reassign_candidates(self, instance_id: str) -> list[DirectoryEntry]:
        """实例所属机构内可分配的负责人（排除当前负责人）"""
        async with self._storage("list_reassign_candidates"):
            instance = await self._stores.instance_store.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("instance", instance_id)
            entries = await self._stores.assignee_store.list_entries(instance.agency_id)
        return [e for e in entries if e.as_assignee() != instance.assignee]

    # ------------------------------------------------------------------
    # 负责人目录
    # ------------------------------------------------------------------

    async def register_assignee(self, entry: DirectoryEntry) -> DirectoryEntry:
        """写入负责人目录（员工 / 用户由外部系统同步）"""
        async with self._storage("register_assignee"), self._stores.write_lock:
            try:
                await self._stores.assignee_store.upsert_entry(entry)
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise
        return entry

    async def _validate_assignee(
        self,
        assignee: StaffAssignee | UserAssignee,
        agency_id: str,
    ) -> DirectoryEntry:
        entry = await self._stores.assignee_store.get_entry(assignee.kind, assignee.assignee_id)
        if entry is None:
            raise NotFoundError(assignee.kind, assignee.assignee_id)
        if entry.agency_id != agency_id:
            raise ValidationError("Assignee belongs to a different agency", field="assignee")
        if not entry.is_active:
            raise ValidationError("Assignee is not active", field="assignee")
        return entry

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def list_tasks(self, query: TaskQuery) -> list[TaskView]:
        """按范围筛选任务，附带实例展示字段与派生状态"""
        async with self._storage("list_tasks"):
            return await self._stores.task_store.list_task_views(query, self.today())

    async def get_instance_detail(self, instance_id: str) -> InstanceDetail:
        async with self._storage("get_instance_detail"):
            instance = await self._stores.instance_store.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("instance", instance_id)
            tasks = await self._stores.task_store.list_task_views(
                TaskQuery(instance_id=instance_id),
                self.today(),
            )
            events = await self._stores.event_store.get_events_for_instance(instance_id)
        return InstanceDetail(instance=instance, tasks=tasks, events=events)

    async def dashboard(self, query: TaskQuery) -> TaskDashboard:
        views = await self.list_tasks(query)
        return build_dashboard(views, self.today(), self._tz)

    async def overdue_digest(self, query: TaskQuery) -> list[OverdueDigestEntry]:
        """逾期任务按负责人汇总，并从目录解析显示名称"""
        today = self.today()
        views = await self.list_tasks(query.model_copy(update={"include_completed": False}))
        entries = build_overdue_digest(views, today)
        async with self._storage("overdue_digest"):
            for entry in entries:
                directory_entry = await self._stores.assignee_store.get_entry(
                    entry.assignee.kind,
                    entry.assignee.assignee_id,
                )
                if directory_entry is not None:
                    entry.display_name = directory_entry.display_name
        return entries

    async def week_outlook(self, query: TaskQuery, week_offset: int | None = None) -> WeekOutlook:
        views = await self.list_tasks(query.model_copy(update={"include_completed": False}))
        return build_week_outlook([v.task for v in views], self.today(), week_offset)

    async def month_calendar(self, query: TaskQuery, month_offset: int = 0) -> MonthCalendar:
        views = await self.list_tasks(query.model_copy(update={"include_completed": False}))
        return build_month_calendar([v.task for v in views], self.today(), month_offset)

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _storage(self, operation: str) -> AsyncIterator[None]:
        """将存储层的连接 / 锁定错误统一转换为 TransportError"""
        try:
            yield
        except aiosqlite.OperationalError as e:
            log.error(
                "storage_call_failed",
                operation=operation,
                error_type=type(e).__name__,
            )
            raise TransportError(operation, e) from e

    @staticmethod
    def _is_active_subject_conflict(error: Exception) -> bool:
        text = str(error)
        return (
            "idx_instances_active_contact" in text
            or "idx_instances_active_sale" in text
            or "instances.contact_id" in text
            or "instances.sale_id" in text
        )

    @classmethod
    def _get_instance_lock(cls, instance_id: str) -> asyncio.Lock:
        """获取实例级别锁，序列化同一实例的写操作。

        调用方在等待和持有期间保留引用；全部释放后条目随之回收。
        """
        lock = cls._instance_locks.get(instance_id)
        if lock is None:
            lock = asyncio.Lock()
            cls._instance_locks[instance_id] = lock
        return lock
