"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# 负责人目录（员工账号 / 平台用户的只读镜像）
_ASSIGNEES_DDL = """
CREATE TABLE IF NOT EXISTS assignees (
    kind          TEXT NOT NULL CHECK (kind IN ('staff', 'user')),
    assignee_id   TEXT NOT NULL,
    agency_id     TEXT NOT NULL,
    display_name  TEXT NOT NULL DEFAULT '',
    is_active     INTEGER NOT NULL DEFAULT 1,

    PRIMARY KEY (kind, assignee_id)
);
"""

_TEMPLATES_DDL = """
CREATE TABLE IF NOT EXISTS templates (
    template_id  TEXT PRIMARY KEY,
    agency_id    TEXT NOT NULL,
    name         TEXT NOT NULL,
    description  TEXT NOT NULL DEFAULT '',
    target_type  TEXT NOT NULL DEFAULT 'onboarding',
    is_active    INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
"""

_TEMPLATE_STEPS_DDL = """
CREATE TABLE IF NOT EXISTS template_steps (
    step_id          TEXT PRIMARY KEY,
    template_id      TEXT NOT NULL,
    day_number       INTEGER NOT NULL CHECK (day_number >= 0),
    action_type      TEXT NOT NULL,
    title            TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    script_template  TEXT NOT NULL DEFAULT '',
    sort_order       INTEGER NOT NULL DEFAULT 0,

    FOREIGN KEY (template_id) REFERENCES templates(template_id) ON DELETE CASCADE
);
"""

# 实例不引用 templates 外键：模板后续的编辑 / 删除不影响已有实例
_INSTANCES_DDL = """
CREATE TABLE IF NOT EXISTS instances (
    instance_id        TEXT PRIMARY KEY,
    agency_id          TEXT NOT NULL,
    template_id        TEXT NOT NULL,
    template_name      TEXT NOT NULL DEFAULT '',
    contact_id         TEXT,
    sale_id            TEXT,
    customer_name      TEXT NOT NULL,
    customer_phone     TEXT,
    customer_email     TEXT,
    assigned_staff_id  TEXT,
    assigned_user_id   TEXT,
    start_date         TEXT NOT NULL,
    status             TEXT NOT NULL DEFAULT 'active',
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL,
    completed_at       TEXT,

    CHECK ((assigned_staff_id IS NULL) <> (assigned_user_id IS NULL)),
    CHECK (contact_id IS NULL OR sale_id IS NULL)
);
"""

# tasks 表没有 status 列：状态由 due_date + completed_at 在查询时派生
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id               TEXT PRIMARY KEY,
    instance_id           TEXT NOT NULL,
    step_id               TEXT,
    title                 TEXT NOT NULL,
    description           TEXT NOT NULL DEFAULT '',
    script_template       TEXT NOT NULL DEFAULT '',
    action_type           TEXT NOT NULL,
    day_number            INTEGER NOT NULL DEFAULT 0,
    due_date              TEXT NOT NULL,
    sort_order            INTEGER NOT NULL DEFAULT 0,
    completed_at          TEXT,
    completed_by_staff_id TEXT,
    completed_by_user_id  TEXT,
    notes                 TEXT,

    FOREIGN KEY (instance_id) REFERENCES instances(instance_id)
);
"""

_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    event_id      TEXT PRIMARY KEY,
    instance_id   TEXT NOT NULL,
    instance_seq  INTEGER NOT NULL,
    ts            TEXT NOT NULL,
    type          TEXT NOT NULL,
    task_id       TEXT,
    payload       TEXT NOT NULL DEFAULT '{}',

    FOREIGN KEY (instance_id) REFERENCES instances(instance_id)
);
"""

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_assignees_agency ON assignees(agency_id, is_active);",
    "CREATE INDEX IF NOT EXISTS idx_templates_agency ON templates(agency_id, created_at DESC);",
    (
        "CREATE INDEX IF NOT EXISTS idx_template_steps_order "
        "ON template_steps(template_id, day_number, sort_order);"
    ),
    "CREATE INDEX IF NOT EXISTS idx_instances_agency_status ON instances(agency_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_instances_staff ON instances(assigned_staff_id);",
    "CREATE INDEX IF NOT EXISTS idx_instances_user ON instances(assigned_user_id);",
    # 同一联系人 / 销售记录同时只能有一个进行中的实例
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_instances_active_contact "
        "ON instances(contact_id) WHERE contact_id IS NOT NULL AND status = 'active';"
    ),
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_instances_active_sale "
        "ON instances(sale_id) WHERE sale_id IS NOT NULL AND status = 'active';"
    ),
    "CREATE INDEX IF NOT EXISTS idx_tasks_instance ON tasks(instance_id, sort_order);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(due_date, completed_at);",
    # 实例内事件序号唯一约束（确保 instance_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_events_instance_seq ON events(instance_id, instance_seq);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    for ddl in (
        _ASSIGNEES_DDL,
        _TEMPLATES_DDL,
        _TEMPLATE_STEPS_DDL,
        _INSTANCES_DDL,
        _TASKS_DDL,
        _EVENTS_DDL,
    ):
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in _INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
