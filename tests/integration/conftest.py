"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest_asyncio
from agencybrain.core.store import create_store_group
from httpx import ASGITransport, AsyncClient


class MutableClock:
    """可推进的测试时钟"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest_asyncio.fixture
async def clock() -> MutableClock:
    # 2024-01-08 是周一
    return MutableClock(datetime(2024, 1, 8, 14, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path, clock: MutableClock):
    """集成测试用 FastAPI app"""
    os.environ["AGENCYBRAIN_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from agencybrain.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    app.state.store_group = store_group
    app.state.timezone = ZoneInfo("America/New_York")
    app.state.clock = clock

    yield app

    await store_group.conn.close()
    os.environ.pop("AGENCYBRAIN_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
