"""Agency Brain Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .assignee_store import SqliteAssigneeStore
from .event_store import SqliteEventStore
from .instance_store import SqliteInstanceStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .template_store import SqliteTemplateStore
from .transaction import (
    CompletionOutcome,
    complete_task_atomically,
    create_instance_with_tasks,
    create_template_with_steps,
    duplicate_template,
    reassign_instance,
    write_lock,
)


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.template_store = SqliteTemplateStore(conn)
        self.instance_store = SqliteInstanceStore(conn)
        self.task_store = SqliteTaskStore(conn)
        self.event_store = SqliteEventStore(conn)
        self.assignee_store = SqliteAssigneeStore(conn)
        # 写事务（含单条 upsert）都须在此锁内完成 commit / rollback
        self.write_lock = write_lock(conn)


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTemplateStore",
    "SqliteInstanceStore",
    "SqliteTaskStore",
    "SqliteEventStore",
    "SqliteAssigneeStore",
    "init_db",
    "CompletionOutcome",
    "create_instance_with_tasks",
    "complete_task_atomically",
    "reassign_instance",
    "create_template_with_steps",
    "duplicate_template",
    "write_lock",
]
