"""专注统计

所有结果都按请求即时计算，不做缓存。日期按会话开始时间的UTC日期分组。
"""
from collections import OrderedDict
from datetime import datetime, timedelta
from math import ceil
from typing import List, Optional, Tuple

from config import STREAK_LOOKBACK_DAYS, TOP_TASKS_LIMIT
from errors import ValidationError
from models import (
    AnalyticsReport, DailyStat, FocusSessionRecord, HeatmapDay, Overview, PeriodInfo,
    SessionType, TopTask,
)
from services.stores import FocusSessionStore, TaskStore
from timeutils import day_key, day_start, round_half_up, seconds_to_minutes, utc_now, years_ago

PERIODS = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": None,  # 按日历年
}
DEFAULT_PERIOD = "7d"


def resolve_window(
    start: Optional[datetime],
    end: Optional[datetime],
    period: Optional[str],
    now: datetime,
) -> Tuple[datetime, datetime]:
    """没有给出start时，用 end 减去 period 得到开始时间"""
    period = period or DEFAULT_PERIOD
    if period not in PERIODS:
        raise ValidationError("Period must be one of: " + ", ".join(PERIODS))
    end = end or now
    if start is None:
        delta = PERIODS[period]
        start = years_ago(end, 1) if delta is None else end - delta
    if start > end:
        raise ValidationError("Start date must not be after end date")
    return start, end


def build_overview(records: List[FocusSessionRecord]) -> Overview:
    total = len(records)
    total_time = sum(r.duration_sec for r in records)
    work = [r for r in records if r.is_work]
    interrupted = sum(1 for r in records if r.interrupted)
    average = total_time / total if total else 0
    return Overview(
        total_sessions=total,
        total_focus_time=total_time,
        work_sessions=len(work),
        work_time=sum(r.duration_sec for r in work),
        average_session_length=round_half_up(average),
        interrupted_sessions=interrupted,
        completion_rate=round_half_up((1 - interrupted / total) * 100) if total else 100,
        total_focus_hours=round_half_up(total_time / 3600 * 10) / 10,
        average_session_minutes=seconds_to_minutes(average),
    )


def build_daily_stats(records: List[FocusSessionRecord]) -> List[DailyStat]:
    days = {}
    for r in records:
        key = day_key(r.start_at)
        stat = days.setdefault(key, {"sessions": 0, "total_time": 0, "work_time": 0})
        stat["sessions"] += 1
        stat["total_time"] += r.duration_sec
        if r.is_work:
            stat["work_time"] += r.duration_sec
    return [DailyStat(date=k, **v) for k, v in sorted(days.items())]


def count_streak(work_days: set, today: datetime, lookback: int = STREAK_LOOKBACK_DAYS) -> int:
    """从昨天开始往前数，连续有work会话的天数（不含今天）"""
    streak = 0
    check = today.date()
    for _ in range(lookback):
        check -= timedelta(days=1)
        if check.isoformat() not in work_days:
            break
        streak += 1
    return streak


class AnalyticsEngine:
    def __init__(self, sessions: FocusSessionStore, tasks: TaskStore):
        self.sessions = sessions
        self.tasks = tasks

    def report(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        period: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AnalyticsReport:
        now = now or utc_now()
        start, end = resolve_window(start, end, period, now)
        records = self.sessions.in_window(user_id, start, end)

        overview = build_overview(records)
        overview.streak_days = self.streak(user_id, now)

        return AnalyticsReport(
            overview=overview,
            daily_stats=build_daily_stats(records),
            top_tasks=self.top_tasks(records),
            heatmap=self.heatmap(user_id, now),
            period=PeriodInfo(start=start, end=end, days=ceil((end - start) / timedelta(days=1))),
        )

    def top_tasks(self, records: List[FocusSessionRecord], limit: int = TOP_TASKS_LIMIT) -> List[TopTask]:
        totals = OrderedDict()
        for r in records:
            if not r.is_work or not r.task_id:
                continue
            entry = totals.setdefault(r.task_id, {"total_time": 0, "sessions": 0})
            entry["total_time"] += r.duration_sec
            entry["sessions"] += 1

        ranked = sorted(totals.items(), key=lambda item: item[1]["total_time"], reverse=True)[:limit]
        tasks = self.tasks.find_many_by_ids(task_id for task_id, _ in ranked)

        result = []
        for task_id, entry in ranked:
            task = tasks.get(task_id)
            if task is None:
                continue
            result.append(TopTask(
                task_id=task_id,
                task_title=task.get("title", ""),
                task_category=task.get("category"),
                **entry,
            ))
        return result

    def streak(self, user_id: str, now: datetime) -> int:
        today = day_start(now.date())
        since = today - timedelta(days=STREAK_LOOKBACK_DAYS)
        records = self.sessions.find(
            {
                "user_id": user_id,
                "session_type": SessionType.WORK.value,
                "start_at": {"$gte": since, "$lt": today},
            },
        )
        return count_streak({day_key(r.start_at) for r in records}, today)

    def heatmap(self, user_id: str, now: datetime) -> List[HeatmapDay]:
        """最近一年每天的work分钟数，没有记录的日期不返回"""
        records = self.sessions.in_window(
            user_id, years_ago(now, 1), now, session_type=SessionType.WORK.value
        )
        per_day = {}
        for r in records:
            key = day_key(r.start_at)
            per_day[key] = per_day.get(key, 0) + r.duration_sec
        return [HeatmapDay(date=k, value=seconds_to_minutes(v)) for k, v in sorted(per_day.items())]
