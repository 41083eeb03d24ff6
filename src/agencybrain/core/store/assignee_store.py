"""AssigneeStore SQLite 实现 -- 负责人目录

员工账号 / 平台用户由外部系统同步，引擎仅用于解析显示名称与校验可分配性。
"""

import aiosqlite

from ..models.directory import DirectoryEntry
from ..models.enums import AssigneeKind


class SqliteAssigneeStore:
    """负责人目录的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_entry(self, entry: DirectoryEntry) -> None:
        """写入或覆盖目录条目

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO assignees (kind, assignee_id, agency_id, display_name, is_active)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (kind, assignee_id) DO UPDATE SET
                agency_id = excluded.agency_id,
                display_name = excluded.display_name,
                is_active = excluded.is_active
            """,
            (
                entry.kind.value,
                entry.assignee_id,
                entry.agency_id,
                entry.display_name,
                int(entry.is_active),
            ),
        )

    async def get_entry(
        self,
        kind: AssigneeKind | str,
        assignee_id: str,
    ) -> DirectoryEntry | None:
        cursor = await self._conn.execute(
            """
            SELECT kind, assignee_id, agency_id, display_name, is_active
            FROM assignees WHERE kind = ? AND assignee_id = ?
            """,
            (str(kind), assignee_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    async def list_entries(
        self,
        agency_id: str,
        active_only: bool = True,
    ) -> list[DirectoryEntry]:
        """查询机构的负责人目录，员工在前，同类按显示名称排序"""
        sql = (
            "SELECT kind, assignee_id, agency_id, display_name, is_active "
            "FROM assignees WHERE agency_id = ?"
        )
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY kind ASC, display_name COLLATE NOCASE ASC"
        cursor = await self._conn.execute(sql, (agency_id,))
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> DirectoryEntry:
        return DirectoryEntry(
            kind=AssigneeKind(row[0]),
            assignee_id=row[1],
            agency_id=row[2],
            display_name=row[3],
            is_active=bool(row[4]),
        )
