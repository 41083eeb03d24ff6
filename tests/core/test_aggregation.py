"""任务聚合与排序单元测试

测试内容：
1. 三档排序：含逾期 → 含今日到期 → 其他，同档按名称忽略大小写
2. 实例缺失归入 Unknown Customer
3. 今日完成（按机构时区）单独列出，更早完成的留在分组
4. 统计与模板筛选项
5. 逾期汇总按负责人分组
"""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from agencybrain.core.aggregation import build_dashboard, build_overdue_digest
from agencybrain.core.models import (
    SequenceTask,
    StaffAssignee,
    TaskView,
    UserAssignee,
)
from agencybrain.core.status import derive_status

TODAY = date(2024, 1, 10)
UTC_TZ = ZoneInfo("UTC")

_counter = 0


def _view(
    customer: str | None,
    due: date,
    completed_at: datetime | None = None,
    instance_id: str = "inst-1",
    assignee=None,
    template: tuple[str, str] | None = ("tpl-1", "Onboarding"),
    sort_order: int = 0,
) -> TaskView:
    global _counter
    _counter += 1
    task = SequenceTask(
        task_id=f"task-{_counter}",
        instance_id=instance_id,
        title=f"Task {_counter}",
        action_type="text",
        day_number=0,
        due_date=due,
        sort_order=sort_order,
        completed_at=completed_at,
    )
    return TaskView(
        task=task,
        status=derive_status(due, completed_at, TODAY),
        customer_name=customer,
        template_id=template[0] if template else None,
        template_name=template[1] if template else None,
        assignee=assignee if customer is not None else None,
    )


class TestDashboardOrdering:
    """分组排序"""

    def test_overdue_then_due_then_rest(self):
        """A 含逾期、B 含今日到期、C 全部未到期 -> A, B, C（与字母序无关）"""
        views = [
            _view("Charlie C", TODAY + timedelta(days=3), instance_id="c"),
            _view("Zed Z (A)", TODAY - timedelta(days=1), instance_id="a"),
            _view("Mary M (B)", TODAY, instance_id="b"),
        ]
        dashboard = build_dashboard(views, TODAY, UTC_TZ)
        assert [g.customer_name for g in dashboard.groups] == ["Zed Z (A)", "Mary M (B)", "Charlie C"]

    def test_ties_sorted_case_insensitively(self):
        views = [
            _view("bravo", TODAY + timedelta(days=2)),
            _view("Alpha", TODAY + timedelta(days=2)),
            _view("charlie", TODAY + timedelta(days=2)),
        ]
        dashboard = build_dashboard(views, TODAY, UTC_TZ)
        assert [g.customer_name for g in dashboard.groups] == ["Alpha", "bravo", "charlie"]

    def test_tasks_inside_group_sorted_by_due_then_order(self):
        views = [
            _view("Dana", TODAY + timedelta(days=5), sort_order=2),
            _view("Dana", TODAY, sort_order=1),
            _view("Dana", TODAY, sort_order=0),
        ]
        group = build_dashboard(views, TODAY, UTC_TZ).groups[0]
        assert [(v.task.due_date, v.task.sort_order) for v in group.tasks] == [
            (TODAY, 0),
            (TODAY, 1),
            (TODAY + timedelta(days=5), 2),
        ]

    def test_missing_instance_grouped_as_unknown(self):
        dashboard = build_dashboard([_view(None, TODAY)], TODAY, UTC_TZ)
        assert dashboard.groups[0].customer_name == "Unknown Customer"

    def test_group_counts_and_instance_ids(self):
        earlier = datetime(2024, 1, 5, 12, 0, tzinfo=UTC)
        views = [
            _view("Erin", TODAY - timedelta(days=2), instance_id="i1"),
            _view("Erin", TODAY, instance_id="i1"),
            _view("Erin", TODAY + timedelta(days=1), instance_id="i2"),
            _view("Erin", TODAY - timedelta(days=6), completed_at=earlier, instance_id="i2"),
        ]
        group = build_dashboard(views, TODAY, UTC_TZ).groups[0]
        assert (group.overdue_count, group.due_count, group.pending_count, group.completed_count) == (
            1, 1, 1, 1,
        )
        assert group.instance_ids == ["i1", "i2"]


class TestCompletedToday:
    """今日完成分区"""

    def test_completed_today_excluded_from_groups(self):
        done_today = datetime(2024, 1, 10, 9, 0, tzinfo=UTC)
        views = [
            _view("Finn", TODAY, completed_at=done_today),
            _view("Finn", TODAY + timedelta(days=2)),
        ]
        dashboard = build_dashboard(views, TODAY, UTC_TZ)
        assert len(dashboard.completed_today) == 1
        assert dashboard.groups[0].completed_count == 0
        assert len(dashboard.groups[0].tasks) == 1
        assert dashboard.stats.completed_today == 1

    def test_completed_today_uses_agency_timezone(self):
        """UTC 1 月 11 日凌晨完成，在芝加哥仍属于 1 月 10 日"""
        late = datetime(2024, 1, 11, 2, 0, tzinfo=UTC)
        views = [_view("Gail", TODAY, completed_at=late)]
        chicago = build_dashboard(views, TODAY, ZoneInfo("America/Chicago"))
        utc = build_dashboard(views, TODAY, UTC_TZ)
        assert len(chicago.completed_today) == 1
        assert utc.completed_today == []
        assert utc.groups[0].completed_count == 1


class TestStatsAndTemplates:
    def test_stats(self):
        views = [
            _view("H", TODAY - timedelta(days=1)),
            _view("H", TODAY - timedelta(days=3)),
            _view("I", TODAY),
            _view("J", TODAY + timedelta(days=4)),
        ]
        stats = build_dashboard(views, TODAY, UTC_TZ).stats
        assert stats.model_dump() == {
            "overdue": 2,
            "due_today": 1,
            "upcoming": 1,
            "completed_today": 0,
        }

    def test_templates_unique_and_sorted(self):
        views = [
            _view("K", TODAY, template=("tpl-2", "retention")),
            _view("K", TODAY, template=("tpl-1", "Onboarding")),
            _view("L", TODAY, template=("tpl-2", "retention")),
        ]
        templates = build_dashboard(views, TODAY, UTC_TZ).templates
        assert [t.template_id for t in templates] == ["tpl-1", "tpl-2"]


class TestOverdueDigest:
    def test_grouped_by_assignee(self):
        alice = StaffAssignee(staff_id="staff-alice")
        owner = UserAssignee(user_id="user-owner")
        views = [
            _view("M", TODAY - timedelta(days=1), assignee=alice),
            _view("N", TODAY - timedelta(days=2), assignee=alice),
            _view("O", TODAY - timedelta(days=1), assignee=owner),
            _view("P", TODAY, assignee=owner),
            _view(None, TODAY - timedelta(days=1)),
        ]
        digest = build_overdue_digest(views, TODAY)
        assert [(e.assignee.assignee_id, e.overdue_count) for e in digest] == [
            ("staff-alice", 2),
            ("user-owner", 1),
        ]
        # 最早逾期的排在前面
        assert digest[0].tasks[0].task.due_date == TODAY - timedelta(days=2)
