"""全局 pytest 配置 -- 临时 SQLite 数据库 + 种子数据 fixture"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest_asyncio

AGENCY_ID = "agency-1"
FIXED_NOW = datetime(2024, 1, 10, 15, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator:
    """提供已初始化的 StoreGroup（共享同一连接）"""
    from agencybrain.core.store import create_store_group

    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.conn.close()


@pytest_asyncio.fixture
async def directory(store_group) -> dict:
    """写入负责人目录：两名在职员工、一名平台用户、一名离职员工、一名外机构员工"""
    from agencybrain.core.models import AssigneeKind, DirectoryEntry

    entries = {
        "alice": DirectoryEntry(
            kind=AssigneeKind.STAFF, assignee_id="staff-alice", agency_id=AGENCY_ID,
            display_name="Alice Adams",
        ),
        "bob": DirectoryEntry(
            kind=AssigneeKind.STAFF, assignee_id="staff-bob", agency_id=AGENCY_ID,
            display_name="Bob Brown",
        ),
        "owner": DirectoryEntry(
            kind=AssigneeKind.USER, assignee_id="user-owner", agency_id=AGENCY_ID,
            display_name="Olivia Owner",
        ),
        "gone": DirectoryEntry(
            kind=AssigneeKind.STAFF, assignee_id="staff-gone", agency_id=AGENCY_ID,
            display_name="Gary Gone", is_active=False,
        ),
        "outsider": DirectoryEntry(
            kind=AssigneeKind.STAFF, assignee_id="staff-outsider", agency_id="agency-2",
            display_name="Oscar Outsider",
        ),
    }
    for entry in entries.values():
        await store_group.assignee_store.upsert_entry(entry)
    await store_group.conn.commit()
    return entries


@pytest_asyncio.fixture
async def make_template(store_group) -> Callable[..., Awaitable]:
    """模板工厂：steps 为 (day_number, action_type, title) 列表"""
    from agencybrain.core.models import ActionType, SequenceStep, SequenceTemplate
    from agencybrain.core.store import create_template_with_steps
    from ulid import ULID

    async def _make(
        steps: list[tuple[int, str, str]] | None = None,
        name: str = "New Client Onboarding",
        is_active: bool = True,
        agency_id: str = AGENCY_ID,
    ) -> SequenceTemplate:
        if steps is None:
            steps = [(0, "call", "Welcome call"), (3, "text", "Check-in text"), (7, "email", "Review email")]
        template_id = str(ULID())
        template = SequenceTemplate(
            template_id=template_id,
            agency_id=agency_id,
            name=name,
            is_active=is_active,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
            steps=[
                SequenceStep(
                    step_id=str(ULID()),
                    template_id=template_id,
                    day_number=day,
                    action_type=ActionType(action),
                    title=title,
                    sort_order=index,
                )
                for index, (day, action, title) in enumerate(steps)
            ],
        )
        await create_template_with_steps(store_group.conn, store_group.template_store, template)
        return template

    return _make
