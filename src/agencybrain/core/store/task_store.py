"""TaskStore SQLite 实现

tasks 表只存储 completed_at 这一状态事实，
pending / due / overdue 在查询时由 due_date 与“今天”比较得出。
"""

from datetime import date, datetime

import aiosqlite

from ..models.assignee import (
    StaffAssignee,
    UserAssignee,
    assignee_from_columns,
    assignee_to_columns,
)
from ..models.task import SequenceTask, TaskQuery, TaskView
from ..status import derive_status, status_predicate

_TASK_COLUMNS = (
    "task_id, instance_id, step_id, title, description, script_template, "
    "action_type, day_number, due_date, sort_order, completed_at, "
    "completed_by_staff_id, completed_by_user_id, notes"
)

_VIEW_SELECT = """
SELECT t.task_id, t.instance_id, t.step_id, t.title, t.description, t.script_template,
       t.action_type, t.day_number, t.due_date, t.sort_order, t.completed_at,
       t.completed_by_staff_id, t.completed_by_user_id, t.notes,
       i.customer_name, i.customer_phone, i.customer_email,
       i.template_id, i.template_name, i.assigned_staff_id, i.assigned_user_id
FROM tasks t
LEFT JOIN instances i ON i.instance_id = t.instance_id
"""


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: SequenceTask) -> None:
        """创建任务记录

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        staff_id, user_id = assignee_to_columns(task.completed_by)
        await self._conn.execute(
            f"""
            INSERT INTO tasks ({_TASK_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.instance_id,
                task.step_id,
                task.title,
                task.description,
                task.script_template,
                task.action_type.value,
                task.day_number,
                task.due_date.isoformat(),
                task.sort_order,
                task.completed_at.isoformat() if task.completed_at else None,
                staff_id,
                user_id,
                task.notes,
            ),
        )

    async def get_task(self, task_id: str) -> SequenceTask | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks_for_instance(self, instance_id: str) -> list[SequenceTask]:
        """查询实例下的全部任务，按 sort_order 正序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_TASK_COLUMNS} FROM tasks
            WHERE instance_id = ?
            ORDER BY sort_order ASC, due_date ASC
            """,
            (instance_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def count_open_tasks(self, instance_id: str) -> int:
        """统计实例下未完成的任务数（pending / due / overdue）"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE instance_id = ? AND completed_at IS NULL",
            (instance_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def next_sort_order(self, instance_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(sort_order), -1) FROM tasks WHERE instance_id = ?",
            (instance_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else -1) + 1

    async def mark_completed(
        self,
        task_id: str,
        completed_at: str,
        notes: str | None,
        completed_by: StaffAssignee | UserAssignee | None,
    ) -> bool:
        """完成任务（仅供完成流程事务调用）

        仅当任务尚未完成时生效，保证重复提交不会改写 completed_at。

        Returns:
            True 如果本次调用完成了任务，False 表示任务已是完成状态
        """
        staff_id, user_id = assignee_to_columns(completed_by)
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET completed_at = ?, notes = COALESCE(?, notes),
                completed_by_staff_id = ?, completed_by_user_id = ?
            WHERE task_id = ? AND completed_at IS NULL
            """,
            (completed_at, notes, staff_id, user_id, task_id),
        )
        return cursor.rowcount > 0

    async def list_task_views(self, query: TaskQuery, today: date) -> list[TaskView]:
        """ListTasks：按范围筛选任务，附带实例展示字段和派生状态

        结果按 due_date, sort_order 正序。
        """
        clauses: list[str] = []
        params: dict[str, object] = {"today": today.isoformat()}

        if query.agency_id:
            clauses.append("i.agency_id = :agency_id")
            params["agency_id"] = query.agency_id
        if query.assignee is not None:
            staff_id, user_id = assignee_to_columns(query.assignee)
            if staff_id:
                clauses.append("i.assigned_staff_id = :staff_id")
                params["staff_id"] = staff_id
            else:
                clauses.append("i.assigned_user_id = :user_id")
                params["user_id"] = user_id
        if query.instance_id:
            clauses.append("t.instance_id = :instance_id")
            params["instance_id"] = query.instance_id
        if query.template_id:
            clauses.append("i.template_id = :template_id")
            params["template_id"] = query.template_id
        if query.status is not None:
            clauses.append(f"({status_predicate(query.status)})")
        if query.due_date is not None:
            clauses.append("t.due_date = :due_date")
            params["due_date"] = query.due_date.isoformat()
        if not query.include_completed:
            clauses.append("t.completed_at IS NULL")

        sql = _VIEW_SELECT
        if clauses:
            sql += "WHERE " + " AND ".join(clauses)
        sql += " ORDER BY t.due_date ASC, t.sort_order ASC"

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_view(row, today) for row in rows]

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> SequenceTask:
        """将数据库行转换为 SequenceTask 模型"""
        completed_by = None
        if row[11] or row[12]:
            completed_by = assignee_from_columns(row[11], row[12])
        return SequenceTask(
            task_id=row[0],
            instance_id=row[1],
            step_id=row[2],
            title=row[3],
            description=row[4],
            script_template=row[5],
            action_type=row[6],
            day_number=row[7],
            due_date=date.fromisoformat(row[8]),
            sort_order=row[9],
            completed_at=datetime.fromisoformat(row[10]) if row[10] else None,
            completed_by=completed_by,
            notes=row[13],
        )

    @classmethod
    def _row_to_view(cls, row: aiosqlite.Row, today: date) -> TaskView:
        task = cls._row_to_task(row)
        assignee = None
        if row[19] or row[20]:
            assignee = assignee_from_columns(row[19], row[20])
        return TaskView(
            task=task,
            status=derive_status(task.due_date, task.completed_at, today),
            customer_name=row[14],
            customer_phone=row[15],
            customer_email=row[16],
            template_id=row[17],
            template_name=row[18],
            assignee=assignee,
        )
