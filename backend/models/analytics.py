from typing import List, Optional

from models.common import ApiModel, UtcDatetime


class Overview(ApiModel):
    total_sessions: int = 0
    total_focus_time: int = 0  # 秒，所有类型
    work_sessions: int = 0
    work_time: int = 0  # 秒
    average_session_length: int = 0  # 秒
    interrupted_sessions: int = 0
    completion_rate: int = 100  # 百分比
    streak_days: int = 0
    total_focus_hours: float = 0.0
    average_session_minutes: int = 0


class DailyStat(ApiModel):
    date: str  # YYYY-MM-DD
    sessions: int
    total_time: int
    work_time: int


class TopTask(ApiModel):
    task_id: str
    task_title: str
    task_category: Optional[str] = None
    total_time: int
    sessions: int


class HeatmapDay(ApiModel):
    date: str
    value: int  # 分钟


class PeriodInfo(ApiModel):
    start: UtcDatetime
    end: UtcDatetime
    days: int


class AnalyticsReport(ApiModel):
    overview: Overview
    daily_stats: List[DailyStat]
    top_tasks: List[TopTask]
    heatmap: List[HeatmapDay]
    period: PeriodInfo
