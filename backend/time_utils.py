import os
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "Asia/Kolkata")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def today_tz() -> date:
    return now_tz().date()


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def calculate_event_date(day_order: Optional[int], fest_start_date: Optional[date]) -> Optional[date]:
    """Day 1 falls on the fest start date, day N on start + (N - 1) days."""
    if not day_order or not fest_start_date:
        return None
    return fest_start_date + timedelta(days=int(day_order) - 1)


def resolve_event_date(event_date: Optional[date], day_order: Optional[int], fest_start_date: Optional[date]) -> Optional[date]:
    if event_date:
        return event_date
    return calculate_event_date(day_order, fest_start_date)


def day_label(day_order: Optional[int], fest_start_date: Optional[date]) -> str:
    resolved = calculate_event_date(day_order, fest_start_date)
    if not resolved:
        return f"Day {day_order}" if day_order else "TBA"
    return f"Day {day_order} ({resolved.strftime('%b')} {resolved.day})"
