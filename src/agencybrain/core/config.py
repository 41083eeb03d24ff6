"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、机构时区、看板分组兜底标签等可配置常量。
"""

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

log = structlog.get_logger()

DEFAULT_TIMEZONE = "UTC"


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("AGENCYBRAIN_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "AGENCYBRAIN_DB_PATH",
        str(_get_base_dir() / "sqlite" / "agencybrain.db"),
    )


def get_timezone() -> ZoneInfo:
    """获取机构本地时区（用于计算“今天”的日历日期）

    时区名称无效时记录警告并回退到 UTC，不阻塞启动。
    """
    name = os.environ.get("AGENCYBRAIN_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning(
            "invalid_timezone_config",
            env_var="AGENCYBRAIN_TIMEZONE",
            value=name,
            fallback=DEFAULT_TIMEZONE,
        )
        return ZoneInfo(DEFAULT_TIMEZONE)


# 实例缺失时客户分组使用的兜底名称
UNKNOWN_CUSTOMER_LABEL: str = "Unknown Customer"

# 周视图包含的工作日数量（周一至周五）
BUSINESS_DAYS_PER_WEEK: int = 5

# 随访任务未填写标题时的默认后缀
FOLLOW_UP_TITLE_SUFFIX: str = "follow-up"
