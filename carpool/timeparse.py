# carpool/timeparse.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional, Union
from dateutil import parser as du
from zoneinfo import ZoneInfo

DEFAULT_TZ = "UTC"


def parse_deadline(value: Union[str, datetime], tz: Optional[str] = None) -> datetime:
    """
    Parse a deadline into an aware datetime.
    Naive values are localised to `tz` (default UTC); aware values are kept as given.
    """
    dt = value if isinstance(value, datetime) else du.parse(str(value).strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz or DEFAULT_TZ))
    return dt


def seconds_before(dt: datetime, seconds: float) -> datetime:
    return dt - timedelta(seconds=float(seconds))


def format_clock(dt: datetime) -> str:
    # 12-hour clock, zero padded: "09:05 AM"
    return dt.strftime("%I:%M %p")


def format_duration(seconds: float) -> str:
    total = int(max(0.0, float(seconds)))
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"
