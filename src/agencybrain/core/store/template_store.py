"""TemplateStore SQLite 实现

模板和步骤由外部模板编辑功能维护，对序列应用只读。
"""

from datetime import datetime

import aiosqlite

from ..models.template import SequenceStep, SequenceTemplate

_TEMPLATE_COLUMNS = (
    "template_id, agency_id, name, description, target_type, is_active, "
    "created_at, updated_at"
)
_STEP_COLUMNS = (
    "step_id, template_id, day_number, action_type, title, description, "
    "script_template, sort_order"
)


class SqliteTemplateStore:
    """TemplateStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_template(self, template: SequenceTemplate) -> None:
        """创建模板记录（不含步骤）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            f"""
            INSERT INTO templates ({_TEMPLATE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template.template_id,
                template.agency_id,
                template.name,
                template.description,
                template.target_type.value,
                int(template.is_active),
                template.created_at.isoformat(),
                template.updated_at.isoformat(),
            ),
        )

    async def add_step(self, step: SequenceStep) -> None:
        """追加模板步骤"""
        await self._conn.execute(
            f"""
            INSERT INTO template_steps ({_STEP_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                step.step_id,
                step.template_id,
                step.day_number,
                step.action_type.value,
                step.title,
                step.description,
                step.script_template,
                step.sort_order,
            ),
        )

    async def get_template(self, template_id: str) -> SequenceTemplate | None:
        """根据 template_id 查询模板（含按 day_number, sort_order 排序的步骤）"""
        cursor = await self._conn.execute(
            f"SELECT {_TEMPLATE_COLUMNS} FROM templates WHERE template_id = ?",
            (template_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        steps = await self.get_steps(template_id)
        return self._row_to_template(row, steps)

    async def get_steps(self, template_id: str) -> list[SequenceStep]:
        cursor = await self._conn.execute(
            f"""
            SELECT {_STEP_COLUMNS} FROM template_steps
            WHERE template_id = ?
            ORDER BY day_number ASC, sort_order ASC
            """,
            (template_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_step(row) for row in rows]

    async def list_templates(
        self,
        agency_id: str,
        active_only: bool = False,
    ) -> list[SequenceTemplate]:
        """查询机构的模板列表，按 created_at 倒序"""
        sql = f"SELECT {_TEMPLATE_COLUMNS} FROM templates WHERE agency_id = ?"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY created_at DESC"
        cursor = await self._conn.execute(sql, (agency_id,))
        rows = await cursor.fetchall()
        templates = []
        for row in rows:
            steps = await self.get_steps(row[0])
            templates.append(self._row_to_template(row, steps))
        return templates

    async def set_active(self, template_id: str, is_active: bool, updated_at: str) -> bool:
        """启用 / 停用模板

        Returns:
            True 如果模板存在并已更新
        """
        cursor = await self._conn.execute(
            "UPDATE templates SET is_active = ?, updated_at = ? WHERE template_id = ?",
            (int(is_active), updated_at, template_id),
        )
        return cursor.rowcount > 0

    async def next_sort_order(self, template_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(sort_order), -1) FROM template_steps WHERE template_id = ?",
            (template_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else -1) + 1

    @staticmethod
    def _row_to_template(row: aiosqlite.Row, steps: list[SequenceStep]) -> SequenceTemplate:
        return SequenceTemplate(
            template_id=row[0],
            agency_id=row[1],
            name=row[2],
            description=row[3],
            target_type=row[4],
            is_active=bool(row[5]),
            created_at=datetime.fromisoformat(row[6]),
            updated_at=datetime.fromisoformat(row[7]),
            steps=steps,
        )

    @staticmethod
    def _row_to_step(row: aiosqlite.Row) -> SequenceStep:
        return SequenceStep(
            step_id=row[0],
            template_id=row[1],
            day_number=row[2],
            action_type=row[3],
            title=row[4],
            description=row[5],
            script_template=row[6],
            sort_order=row[7],
        )
