"""Outlook Planner -- 工作周视图与月历视图

按到期日统计未完成任务，标记错过的日子。翻页（week_offset / month_offset）
是调用方的视图状态，这里只根据偏移量计算，不保存任何状态。
"""

import calendar
from collections import Counter
from datetime import date, timedelta

from pydantic import BaseModel, Field

from .config import BUSINESS_DAYS_PER_WEEK
from .models.enums import DayState
from .models.task import SequenceTask

_SATURDAY = 5


class DayCell(BaseModel):
    """周视图中的一个工作日"""

    day: date
    count: int = Field(description="当天到期的未完成任务数")
    state: DayState
    is_today: bool = False


class WeekOutlook(BaseModel):
    week_offset: int
    default_offset: int
    is_default: bool
    title: str = Field(description="THIS WEEK / NEXT WEEK / LAST WEEK / N WEEKS AHEAD / N WEEKS AGO")
    label: str = Field(description="周一至周五日期范围，如 'Jan 8 - Jan 12'")
    week_start: date
    week_end: date
    days: list[DayCell] = Field(default_factory=list)
    missed_count: int = Field(default=0, description="错过日子上的未完成任务总数")
    total: int = Field(default=0, description="本周未完成任务总数")


class CalendarDay(BaseModel):
    """月历中的一天（包含首尾补齐的相邻月份日期）"""

    day: date
    in_month: bool
    count: int = 0
    is_today: bool = False
    is_missed: bool = False


class MonthCalendar(BaseModel):
    month_offset: int
    year: int
    month: int
    title: str
    weeks: list[list[CalendarDay]] = Field(default_factory=list, description="周日开始的 7 列网格")
    missed_count: int = 0
    total: int = Field(default=0, description="本月（不含补齐日期）未完成任务总数")


def default_week_offset(today: date) -> int:
    """周末默认展示下周，工作日展示本周"""
    return 1 if today.weekday() >= _SATURDAY else 0


def week_title(week_offset: int, today: date) -> str:
    if week_offset == 0:
        return "THIS WEEK"
    if week_offset == 1:
        # 周末时“下一周”就是即将开始的这一周
        return "THIS WEEK" if today.weekday() >= _SATURDAY else "NEXT WEEK"
    if week_offset == -1:
        return "LAST WEEK"
    if week_offset > 1:
        return f"{week_offset} WEEKS AHEAD"
    return f"{abs(week_offset)} WEEKS AGO"


def _open_counts(tasks: list[SequenceTask]) -> Counter[date]:
    """按到期日统计未完成任务"""
    return Counter(task.due_date for task in tasks if not task.is_completed)


def _day_state(day: date, count: int, today: date) -> DayState:
    if day == today:
        return DayState.TODAY_WITH_TASKS if count > 0 else DayState.TODAY_CLEAR
    if day < today:
        return DayState.MISSED if count > 0 else DayState.PAST_DONE
    return DayState.FUTURE


def build_week_outlook(
    tasks: list[SequenceTask],
    today: date,
    week_offset: int | None = None,
) -> WeekOutlook:
    """构建周一至周五的工作周视图

    Args:
        tasks: 待统计任务（已完成任务不计数）
        today: 机构时区下的今天
        week_offset: 相对本周的偏移周数，None 表示使用默认偏移
    """
    default_offset = default_week_offset(today)
    offset = default_offset if week_offset is None else week_offset

    base = today + timedelta(weeks=offset)
    monday = base - timedelta(days=base.weekday())
    counts = _open_counts(tasks)

    days = []
    for i in range(BUSINESS_DAYS_PER_WEEK):
        day = monday + timedelta(days=i)
        count = counts.get(day, 0)
        days.append(
            DayCell(
                day=day,
                count=count,
                state=_day_state(day, count, today),
                is_today=day == today,
            )
        )

    week_end = days[-1].day
    return WeekOutlook(
        week_offset=offset,
        default_offset=default_offset,
        is_default=offset == default_offset,
        title=week_title(offset, today),
        label=f"{monday:%b} {monday.day} - {week_end:%b} {week_end.day}",
        week_start=monday,
        week_end=week_end,
        days=days,
        missed_count=sum(d.count for d in days if d.state == DayState.MISSED),
        total=sum(d.count for d in days),
    )


def build_month_calendar(
    tasks: list[SequenceTask],
    today: date,
    month_offset: int = 0,
) -> MonthCalendar:
    """构建月历视图（周日开始），首尾用相邻月份日期补齐整周"""
    index = today.year * 12 + (today.month - 1) + month_offset
    year, month = divmod(index, 12)
    month += 1

    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    # date.weekday(): 周一 = 0 ... 周日 = 6
    grid_start = first - timedelta(days=(first.weekday() + 1) % 7)
    grid_end = last + timedelta(days=(_SATURDAY - last.weekday()) % 7)

    counts = _open_counts(tasks)
    weeks: list[list[CalendarDay]] = []
    missed_count = 0
    total = 0

    day = grid_start
    while day <= grid_end:
        week = []
        for _ in range(7):
            in_month = day.month == month
            count = counts.get(day, 0)
            is_missed = day < today and count > 0
            if in_month:
                total += count
                if is_missed:
                    missed_count += count
            week.append(
                CalendarDay(
                    day=day,
                    in_month=in_month,
                    count=count,
                    is_today=day == today,
                    is_missed=is_missed,
                )
            )
            day += timedelta(days=1)
        weeks.append(week)

    return MonthCalendar(
        month_offset=month_offset,
        year=year,
        month=month,
        title=f"{calendar.month_name[month]} {year}",
        weeks=weeks,
        missed_count=missed_count,
        total=total,
    )
