"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from agencybrain.core.config import get_db_path, get_timezone
from agencybrain.core.store import create_store_group
from fastapi import FastAPI

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import assignees, health, instances, outlook, sequences, tasks, templates

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group

    # 机构时区在启动时解析一次；测试可预先写入 app.state.timezone 覆盖
    if getattr(app.state, "timezone", None) is None:
        app.state.timezone = get_timezone()
    log.info("store_initialized", db_path=db_path, timezone=str(app.state.timezone))

    yield

    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Agency Brain Sequence Engine",
        version="0.1.0",
        description="Onboarding 序列任务引擎 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging，Logging 在最外层）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire()

    app.include_router(sequences.router, tags=["sequences"])
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(instances.router, tags=["instances"])
    app.include_router(outlook.router, tags=["outlook"])
    app.include_router(templates.router, tags=["templates"])
    app.include_router(assignees.router, tags=["assignees"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
