"""序列任务引擎异常体系

ValidationError 可由调用方修正；NotFoundError 表示引用对象不存在；
ConflictError 表示并发修改使前提失效；TransportError 表示存储调用本身失败。
引擎不做自动重试，是否重试由调用方决定。
"""


class EngineError(Exception):
    """引擎基础异常"""

    code: str = "ENGINE_ERROR"

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 调用方是否可以通过修正输入或重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ValidationError(EngineError):
    """调用方输入不满足前置条件

    例如：未选择负责人、模板没有步骤、电话任务缺少备注、重新分配给同一负责人。
    """

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, recoverable=True)
        self.field = field


class NotFoundError(EngineError):
    """引用的模板 / 实例 / 任务 / 负责人不存在"""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity.capitalize()} with id {entity_id} does not exist",
            recoverable=False,
        )
        self.entity = entity
        self.entity_id = entity_id
        self.code = f"{entity.upper()}_NOT_FOUND"


class ConflictError(EngineError):
    """并发修改使操作前提失效（如重新分配过程中实例被删除）"""

    code = "CONFLICT"

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=True)


class TransportError(EngineError):
    """存储调用本身失败（数据库锁定、不可用等）"""

    code = "TRANSPORT_FAILED"

    def __init__(self, operation: str, original_error: Exception) -> None:
        """
        Args:
            operation: 失败的操作名称
            original_error: 原始异常
        """
        super().__init__(
            f"Storage call failed during {operation}: {type(original_error).__name__}",
            recoverable=True,
        )
        self.operation = operation
        self.original_error = original_error
