from datetime import datetime, timedelta, timezone, date
from typing import Optional

from errors import ValidationError


def utc_now() -> datetime:
    """当前UTC时间（无时区），精度截断到毫秒以匹配BSON日期"""
    return to_millis(datetime.now(timezone.utc).replace(tzinfo=None))


def to_millis(dt: datetime) -> datetime:
    return dt.replace(microsecond=dt.microsecond // 1000 * 1000)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """为Mongo返回的无时区时间补上UTC，用于输出"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} must be a valid ISO8601 date")
    return to_millis(to_utc_naive(parsed))


def whole_seconds(start: datetime, end: datetime) -> int:
    """floor((end - start) / 1s)"""
    return (end - start) // timedelta(seconds=1)


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def seconds_to_minutes(seconds: int) -> int:
    return round_half_up(seconds / 60)


def day_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def day_start(d: date) -> datetime:
    return datetime(d.year, d.month, d.day)


def years_ago(dt: datetime, years: int = 1) -> datetime:
    try:
        return dt.replace(year=dt.year - years)
    except ValueError:
        # 2月29日
        return dt.replace(year=dt.year - years, day=28)
