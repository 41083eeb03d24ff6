"""任务状态派生

status = f(due_date, completed_at, today)，纯函数。
比较使用本地日历日期字符串（YYYY-MM-DD），不比较跨时区的 datetime，
否则边界上的任务会因时区偏移被错判为 due / overdue。
"""

from datetime import UTC, date, datetime, tzinfo

from .models.enums import TaskStatus


def to_date_key(value: date | datetime | str) -> str:
    """归一化为 YYYY-MM-DD 日历日期字符串

    datetime 取其自身携带的日历日期部分，不做时区换算；
    字符串只保留前 10 位（兼容 "2024-01-10T00:00:00" 形式）。
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value[:10]


def derive_status(
    due_date: date | str,
    completed_at: datetime | str | None,
    today: date | str,
) -> TaskStatus:
    """派生任务生命周期状态

    Args:
        due_date: 到期日期
        completed_at: 完成时间，None 表示未完成
        today: 机构本地时区下的“今天”

    Returns:
        completed / overdue / due / pending
    """
    if completed_at is not None:
        return TaskStatus.COMPLETED

    due_key = to_date_key(due_date)
    today_key = to_date_key(today)
    if due_key < today_key:
        return TaskStatus.OVERDUE
    if due_key == today_key:
        return TaskStatus.DUE
    return TaskStatus.PENDING


def local_today(tz: tzinfo, now: datetime | None = None) -> date:
    """机构本地时区下的今天

    Args:
        tz: 机构时区
        now: 当前时刻（测试注入用），默认取 UTC 当前时间
    """
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    return current.astimezone(tz).date()


def local_date_of(moment: datetime, tz: tzinfo) -> date:
    """时间戳在机构时区下落在哪一天（用于“今日完成”判断）"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz).date()


def status_predicate(status: TaskStatus) -> str:
    """将状态规则表达为 SQL 条件（需要绑定 :today 参数）

    due_date 列存储 YYYY-MM-DD 文本，与 :today 做字符串比较，
    与 derive_status 的规则保持一致。
    """
    if status == TaskStatus.COMPLETED:
        return "t.completed_at IS NOT NULL"
    if status == TaskStatus.OVERDUE:
        return "t.completed_at IS NULL AND t.due_date < :today"
    if status == TaskStatus.DUE:
        return "t.completed_at IS NULL AND t.due_date = :today"
    return "t.completed_at IS NULL AND t.due_date > :today"
