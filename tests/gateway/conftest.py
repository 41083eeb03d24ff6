"""gateway 测试配置 -- FastAPI app + httpx AsyncClient + 固定时钟"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# 2024-01-10 是周三
FIXED_NOW = datetime(2024, 1, 10, 15, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def service(store_group):
    """固定时钟的 SequenceService"""
    from agencybrain.gateway.services.sequence_service import SequenceService

    return SequenceService(store_group, tz=ZoneInfo("UTC"), clock=lambda: FIXED_NOW)


@pytest_asyncio.fixture
async def app(store_group, tmp_db_path):
    """创建测试用 FastAPI app 实例（手动初始化，绕过 lifespan）"""
    os.environ["AGENCYBRAIN_DB_PATH"] = str(tmp_db_path)
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from agencybrain.gateway.main import create_app

    application = create_app()
    application.state.store_group = store_group
    application.state.timezone = ZoneInfo("UTC")
    application.state.clock = lambda: FIXED_NOW
    yield application

    for key in ["AGENCYBRAIN_DB_PATH", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
