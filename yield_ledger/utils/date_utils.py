"""Date manipulation utilities for the platform calendar"""

from datetime import date, datetime, timezone, timedelta
from typing import List
from zoneinfo import ZoneInfo


def to_platform_time(moment: datetime, tz_name: str) -> datetime:
    """Convert an aware datetime to the platform timezone (naive values are taken as UTC)"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def platform_date(moment: datetime, tz_name: str) -> date:
    """Calendar day of a moment on the platform calendar"""
    return to_platform_time(moment, tz_name).date()


def generate_date_range(start: date, end: date) -> List[date]:
    """Generate list of dates from start to end (inclusive)"""
    days = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(days)]
