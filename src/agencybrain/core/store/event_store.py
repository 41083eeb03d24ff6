"""EventStore SQLite 实现

事件表 append-only：只允许插入，不允许更新或删除。
instance_seq 同一实例内严格单调递增。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import EventType
from ..models.event import SequenceEvent


class SqliteEventStore:
    """EventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: SequenceEvent) -> None:
        """追加事件（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO events (event_id, instance_id, instance_seq, ts, type,
                                task_id, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.instance_id,
                event.instance_seq,
                event.ts.isoformat(),
                event.type.value,
                event.task_id,
                json.dumps(event.payload, ensure_ascii=False),
            ),
        )

    async def get_events_for_instance(self, instance_id: str) -> list[SequenceEvent]:
        """查询指定实例的所有事件，按 instance_seq 正序"""
        cursor = await self._conn.execute(
            """
            SELECT event_id, instance_id, instance_seq, ts, type, task_id, payload
            FROM events WHERE instance_id = ? ORDER BY instance_seq ASC
            """,
            (instance_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def get_next_instance_seq(self, instance_id: str) -> int:
        """获取指定实例的下一个 instance_seq（MAX+1）

        在事务内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(instance_seq), 0) FROM events WHERE instance_id = ?",
            (instance_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> SequenceEvent:
        """将数据库行转换为 SequenceEvent 模型"""
        payload = json.loads(row[6]) if row[6] else {}
        return SequenceEvent(
            event_id=row[0],
            instance_id=row[1],
            instance_seq=row[2],
            ts=datetime.fromisoformat(row[3]),
            type=EventType(row[4]),
            task_id=row[5],
            payload=payload,
        )
