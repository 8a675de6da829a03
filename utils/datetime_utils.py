from datetime import date, datetime, timedelta
import re
from typing import Optional, Union

import pytz

DATE_FORMAT = "%Y-%m-%d"

PERIOD_KEY_PATTERNS = {
    "daily": re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    "weekly": re.compile(r"^\d{4}-W\d{2}$"),
    "monthly": re.compile(r"^\d{4}-\d{2}$"),
    "yearly": re.compile(r"^\d{4}$"),
}

def get_timezone(name: Optional[str]):
    """Часовой пояс по имени (None - локальное время системы)"""
    if not name:
        return None
    return pytz.timezone(name)

def now_in_timezone(name: Optional[str] = None) -> datetime:
    """Текущее время в заданном поясе как naive datetime"""
    tz = get_timezone(name)
    if tz is None:
        return datetime.now()
    return datetime.now(tz).replace(tzinfo=None)

def date_key(value: Union[date, datetime]) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(DATE_FORMAT)

def period_key(frequency: str, value: Union[date, datetime]) -> str:
    """Канонический ключ периода для частоты привычки"""
    if isinstance(value, datetime):
        value = value.date()

    if frequency == "daily":
        return date_key(value)
    if frequency == "monthly":
        return f"{value.year}-{value.month:02d}"
    if frequency == "yearly":
        return f"{value.year}"
    if frequency == "weekly":
        iso_year, iso_week, _ = value.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"

    raise ValueError(f"Unknown frequency: {frequency}")

def is_canonical_period_key(key: str, frequency: str) -> bool:
    pattern = PERIOD_KEY_PATTERNS.get(frequency)
    if pattern is None or not pattern.match(key):
        return False

    try:
        if frequency == "daily":
            datetime.strptime(key, DATE_FORMAT)
        elif frequency == "monthly":
            datetime.strptime(key, "%Y-%m")
        elif frequency == "weekly":
            year, week = key.split("-W")
            # 1 = понедельник; несуществующая неделя даст ValueError
            date.fromisocalendar(int(year), int(week), 1)
    except ValueError:
        return False

    return True

def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Разбор ISO-времени; aware-время приводится к локальному naive"""
    if not value:
        return None

    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed

def to_timestamp(value: datetime) -> str:
    return value.isoformat()

def days_between(earlier: Union[date, datetime], later: Union[date, datetime]) -> int:
    """Разница в календарных днях"""
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    if isinstance(later, datetime):
        later = later.date()
    return (later - earlier).days

def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600

def start_of_day(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime(value.year, value.month, value.day)

def epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)

def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)
