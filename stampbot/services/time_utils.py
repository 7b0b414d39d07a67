from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_tz(offset_hours: float) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def local_today(offset_hours: float, now: Optional[datetime] = None) -> date:
    """Calendar date at the configured UTC offset."""
    now = now or utcnow()
    return now.astimezone(local_tz(offset_hours)).date()


def local_day_bounds(offset_hours: float, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """UTC [start, end) of the local calendar day containing now."""
    tz = local_tz(offset_hours)
    today = local_today(offset_hours, now)
    start = datetime(today.year, today.month, today.day, tzinfo=tz)
    return start.astimezone(timezone.utc), (start + timedelta(days=1)).astimezone(timezone.utc)


def parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.weekday())


def format_time_ago(value, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    then = parse_datetime(value)
    minutes = int((now - then).total_seconds() // 60)
    hours = minutes // 60
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"
