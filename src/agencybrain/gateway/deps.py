"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与服务实例

StoreGroup 通过 app.state 管理，在 lifespan 中初始化/清理；
服务按请求构造，时区与时钟可由测试通过 app.state 覆盖。
"""

from agencybrain.core.store import StoreGroup
from fastapi import Depends, Request

from .services.sequence_service import SequenceService
from .services.template_service import TemplateService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_sequence_service(
    request: Request,
    store_group: StoreGroup = Depends(get_store_group),
) -> SequenceService:
    return SequenceService(
        store_group,
        tz=getattr(request.app.state, "timezone", None),
        clock=getattr(request.app.state, "clock", None),
    )


def get_template_service(
    store_group: StoreGroup = Depends(get_store_group),
) -> TemplateService:
    return TemplateService(store_group)
