"""引擎异常 -> HTTP 错误响应

错误体格式：{"error": {"code": "...", "message": "..."}}
"""

from agencybrain.core.exceptions import (
    ConflictError,
    EngineError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from starlette.responses import JSONResponse

_STATUS_BY_ERROR: list[tuple[type[EngineError], int]] = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (TransportError, 503),
]


def error_response(error: EngineError) -> JSONResponse:
    """将引擎异常转换为 JSON 错误响应，未映射的类型按 500 处理"""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(error, cls)),
        500,
    )
    content: dict = {"error": {"code": error.code, "message": error.message}}
    field = getattr(error, "field", None)
    if field:
        content["error"]["field"] = field
    return JSONResponse(status_code=status_code, content=content)
