"""任务聚合与优先级排序 -- 看板分组、统计、逾期汇总

纯函数：输入 ListTasks 的结果（TaskView 列表）与“今天”，输出展示结构。
状态一律使用 TaskView 上查询时派生的 status，不在此处重新比较日期。
"""

from collections import defaultdict
from datetime import date, tzinfo

from pydantic import BaseModel, Field

from .config import UNKNOWN_CUSTOMER_LABEL
from .models.assignee import Assignee
from .models.enums import TaskStatus
from .models.task import TaskView
from .status import local_date_of


class CustomerGroup(BaseModel):
    """按客户名称聚合的任务组"""

    customer_name: str
    instance_ids: list[str] = Field(default_factory=list, description="组内实例 ID（首次出现顺序）")
    tasks: list[TaskView] = Field(default_factory=list, description="按 (due_date, sort_order) 排序")
    overdue_count: int = 0
    due_count: int = 0
    pending_count: int = 0
    completed_count: int = 0

    @property
    def priority(self) -> int:
        """0 = 含逾期，1 = 含今日到期，2 = 其他"""
        if self.overdue_count > 0:
            return 0
        if self.due_count > 0:
            return 1
        return 2


class DashboardStats(BaseModel):
    overdue: int = 0
    due_today: int = 0
    upcoming: int = 0
    completed_today: int = 0


class TemplateOption(BaseModel):
    """看板模板筛选项"""

    template_id: str
    template_name: str


class TaskDashboard(BaseModel):
    """看板聚合结果"""

    today: date
    groups: list[CustomerGroup] = Field(default_factory=list)
    completed_today: list[TaskView] = Field(default_factory=list)
    stats: DashboardStats = Field(default_factory=DashboardStats)
    templates: list[TemplateOption] = Field(default_factory=list)


class OverdueDigestEntry(BaseModel):
    """单个负责人的逾期任务汇总"""

    assignee: Assignee
    display_name: str | None = Field(default=None, description="由调用方从负责人目录解析")
    overdue_count: int
    tasks: list[TaskView] = Field(default_factory=list)


def _task_sort_key(view: TaskView) -> tuple[str, int]:
    return view.task.due_date.isoformat(), view.task.sort_order


def _group_sort_key(group: CustomerGroup) -> tuple[int, str]:
    return group.priority, group.customer_name.casefold()


def build_dashboard(views: list[TaskView], today: date, tz: tzinfo) -> TaskDashboard:
    """构建看板：客户分组 + 今日已完成 + 统计

    - 按实例 customer_name 分组，实例缺失时归入 "Unknown Customer"
    - 组排序三档：含逾期 → 含今日到期 → 其他；同档按客户名称（忽略大小写）
    - completed_at 在机构时区下落在今天的已完成任务单独列出，不进入分组；
      更早完成的任务仍留在所属客户组并计入 completed_count

    Args:
        views: ListTasks 结果
        today: 机构时区下的今天
        tz: 机构时区（判断“今日完成”用）
    """
    groups: dict[str, CustomerGroup] = {}
    completed_today: list[TaskView] = []
    stats = DashboardStats()
    templates: dict[str, str] = {}

    for view in views:
        if view.template_id:
            templates.setdefault(view.template_id, view.template_name or "")

        if view.status == TaskStatus.COMPLETED:
            completed_at = view.task.completed_at
            if completed_at is not None and local_date_of(completed_at, tz) == today:
                completed_today.append(view)
                stats.completed_today += 1
                continue

        name = view.customer_name or UNKNOWN_CUSTOMER_LABEL
        group = groups.get(name)
        if group is None:
            group = CustomerGroup(customer_name=name)
            groups[name] = group
        group.tasks.append(view)
        if view.task.instance_id not in group.instance_ids:
            group.instance_ids.append(view.task.instance_id)

        if view.status == TaskStatus.OVERDUE:
            group.overdue_count += 1
            stats.overdue += 1
        elif view.status == TaskStatus.DUE:
            group.due_count += 1
            stats.due_today += 1
        elif view.status == TaskStatus.PENDING:
            group.pending_count += 1
            stats.upcoming += 1
        else:
            group.completed_count += 1

    for group in groups.values():
        group.tasks.sort(key=_task_sort_key)
    completed_today.sort(
        key=lambda v: v.task.completed_at.isoformat() if v.task.completed_at else ""
    )

    return TaskDashboard(
        today=today,
        groups=sorted(groups.values(), key=_group_sort_key),
        completed_today=completed_today,
        stats=stats,
        templates=sorted(
            (TemplateOption(template_id=tid, template_name=name) for tid, name in templates.items()),
            key=lambda t: t.template_name.casefold(),
        ),
    )


def build_overdue_digest(views: list[TaskView], today: date) -> list[OverdueDigestEntry]:
    """按实例当前负责人汇总逾期任务（仅生成数据，不负责投递）

    实例缺失（无负责人）的任务无法归属，不计入汇总。
    结果按逾期数量倒序，数量相同按负责人 ID 排序。
    """
    buckets: dict[tuple[str, str], list[TaskView]] = defaultdict(list)
    owners: dict[tuple[str, str], Assignee] = {}

    for view in views:
        if view.assignee is None or view.task.is_completed:
            continue
        if view.task.status(today) != TaskStatus.OVERDUE:
            continue
        key = (view.assignee.kind, view.assignee.assignee_id)
        owners[key] = view.assignee
        buckets[key].append(view)

    entries = [
        OverdueDigestEntry(
            assignee=owners[key],
            overdue_count=len(tasks),
            tasks=sorted(tasks, key=_task_sort_key),
        )
        for key, tasks in buckets.items()
    ]
    entries.sort(key=lambda e: (-e.overdue_count, e.assignee.assignee_id))
    return entries
