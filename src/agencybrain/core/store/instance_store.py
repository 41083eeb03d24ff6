"""InstanceStore SQLite 实现

负责人在库中是两列可空字段（assigned_staff_id / assigned_user_id），
进出库时与 Assignee 联合类型互相转换。
"""

from datetime import date, datetime

import aiosqlite

from ..models.assignee import (
    StaffAssignee,
    UserAssignee,
    assignee_from_columns,
    assignee_to_columns,
    subject_from_columns,
    subject_to_columns,
)
from ..models.instance import SequenceInstance

_INSTANCE_COLUMNS = (
    "instance_id, agency_id, template_id, template_name, contact_id, sale_id, "
    "customer_name, customer_phone, customer_email, assigned_staff_id, "
    "assigned_user_id, start_date, status, created_at, updated_at, completed_at"
)


class SqliteInstanceStore:
    """InstanceStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_instance(self, instance: SequenceInstance) -> None:
        """创建实例记录

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        contact_id, sale_id = subject_to_columns(instance.subject)
        staff_id, user_id = assignee_to_columns(instance.assignee)
        await self._conn.execute(
            f"""
            INSERT INTO instances ({_INSTANCE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                instance.instance_id,
                instance.agency_id,
                instance.template_id,
                instance.template_name,
                contact_id,
                sale_id,
                instance.customer_name,
                instance.customer_phone,
                instance.customer_email,
                staff_id,
                user_id,
                instance.start_date.isoformat(),
                instance.status.value,
                instance.created_at.isoformat(),
                instance.updated_at.isoformat(),
                instance.completed_at.isoformat() if instance.completed_at else None,
            ),
        )

    async def get_instance(self, instance_id: str) -> SequenceInstance | None:
        """根据 instance_id 查询实例"""
        cursor = await self._conn.execute(
            f"SELECT {_INSTANCE_COLUMNS} FROM instances WHERE instance_id = ?",
            (instance_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_instance(row)

    async def find_active_for_subject(
        self,
        contact_id: str | None,
        sale_id: str | None,
    ) -> str | None:
        """查询关联对象上进行中的实例

        Returns:
            进行中实例的 instance_id，没有则 None
        """
        if contact_id:
            column, value = "contact_id", contact_id
        elif sale_id:
            column, value = "sale_id", sale_id
        else:
            return None
        cursor = await self._conn.execute(
            f"SELECT instance_id FROM instances WHERE {column} = ? AND status = 'active' LIMIT 1",
            (value,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def update_assignee(
        self,
        instance_id: str,
        assignee: StaffAssignee | UserAssignee,
        updated_at: str,
    ) -> bool:
        """更新实例负责人（仅供重新分配事务调用）

        Returns:
            True 如果实例存在并已更新
        """
        staff_id, user_id = assignee_to_columns(assignee)
        cursor = await self._conn.execute(
            """
            UPDATE instances
            SET assigned_staff_id = ?, assigned_user_id = ?, updated_at = ?
            WHERE instance_id = ?
            """,
            (staff_id, user_id, updated_at, instance_id),
        )
        return cursor.rowcount > 0

    async def mark_completed(self, instance_id: str, completed_at: str) -> bool:
        """将进行中的实例标记为已完成

        Returns:
            True 如果本次调用完成了实例（已完成的实例返回 False）
        """
        cursor = await self._conn.execute(
            """
            UPDATE instances
            SET status = 'completed', completed_at = ?, updated_at = ?
            WHERE instance_id = ? AND status = 'active'
            """,
            (completed_at, completed_at, instance_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_instance(row: aiosqlite.Row) -> SequenceInstance:
        """将数据库行转换为 SequenceInstance 模型"""
        return SequenceInstance(
            instance_id=row[0],
            agency_id=row[1],
            template_id=row[2],
            template_name=row[3],
            subject=subject_from_columns(row[4], row[5]),
            customer_name=row[6],
            customer_phone=row[7],
            customer_email=row[8],
            assignee=assignee_from_columns(row[9], row[10]),
            start_date=date.fromisoformat(row[11]),
            status=row[12],
            created_at=datetime.fromisoformat(row[13]),
            updated_at=datetime.fromisoformat(row[14]),
            completed_at=datetime.fromisoformat(row[15]) if row[15] else None,
        )
