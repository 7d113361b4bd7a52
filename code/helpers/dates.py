# helpers/dates.py — Week/month bucket math shared by projection and recommendations.

from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Optional, Union

GROUP_BY_CHOICES = ("week", "month")


def check_group_by(group_by: str) -> str:
    if group_by not in GROUP_BY_CHOICES:
        raise ValueError(f"group_by must be one of {GROUP_BY_CHOICES}, got {group_by!r}")
    return group_by


def as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def resolve_today(today: Optional[date] = None) -> date:
    """Return *today* when pinned, else the real current date."""
    return as_date(today) if today is not None else date.today()


def week_start(d: date) -> date:
    """Monday of the week containing *d* (Sunday belongs to the week before)."""
    d = as_date(d)
    return d - timedelta(days=d.weekday())


def month_start(d: date) -> date:
    d = as_date(d)
    return d.replace(day=1)


def bucket_start(d: date, group_by: str) -> date:
    check_group_by(group_by)
    return month_start(d) if group_by == "month" else week_start(d)


def bucket_key(d: date, group_by: str) -> str:
    """Display key for a bucket: ``2024-3`` for months, ``2024-3-4`` for weeks."""
    start = bucket_start(d, group_by)
    if group_by == "month":
        return f"{start.year}-{start.month}"
    return f"{start.year}-{start.month}-{start.day}"


def needs_by(bucket: date, lead_time_weeks: int) -> date:
    """Date an order must be placed so it lands by the start of *bucket*."""
    return as_date(bucket) - timedelta(days=int(lead_time_weeks) * 7)
