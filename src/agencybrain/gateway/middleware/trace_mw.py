"""TraceMiddleware -- 从路径提取实例 / 任务 ID 绑定到日志上下文

/api/instances/{instance_id}/... 绑定 instance_id，
/api/tasks/{task_id}/... 绑定 task_id（排除 dashboard 等固定子路由）。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 字符串长度
_ID_LENGTH = 26

_PATH_KEYS = {
    "instances": "instance_id",
    "tasks": "task_id",
    "templates": "template_id",
}


def extract_trace_ids(path: str) -> dict[str, str]:
    """从 URL 路径中提取可识别的实体 ID"""
    ids: dict[str, str] = {}
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts[:-1]):
        key = _PATH_KEYS.get(part)
        candidate = parts[i + 1]
        if key and len(candidate) == _ID_LENGTH:
            ids[key] = candidate
    return ids


class TraceMiddleware(BaseHTTPMiddleware):
    """实体级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ids = extract_trace_ids(request.url.path)
        if ids:
            structlog.contextvars.bind_contextvars(**ids)
        return await call_next(request)
