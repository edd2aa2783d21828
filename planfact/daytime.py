"""Day-boundary rules.

A logical day starts at a fixed local hour (04:00 by default) and runs until
the same hour on the next calendar date, so work logged after midnight still
belongs to the evening before.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from planfact.models import Day

DAY_START_HOUR = 4


def logical_date(now: datetime, day_start_hour: int = DAY_START_HOUR) -> date:
    """The calendar date of the logical day containing *now*."""
    if now.hour < day_start_hour:
        return (now - timedelta(days=1)).date()
    return now.date()


def day_window(day_date: date, day_start_hour: int = DAY_START_HOUR, tzinfo=None) -> tuple[datetime, datetime]:
    """[start, end) of the logical day for *day_date*."""
    start = datetime.combine(day_date, time(hour=day_start_hour), tzinfo=tzinfo)
    end = datetime.combine(day_date + timedelta(days=1), time(hour=day_start_hour), tzinfo=tzinfo)
    return start, end


def is_current(day: Day, now: datetime, day_start_hour: int = DAY_START_HOUR) -> bool:
    """Whether *day*'s window contains *now*."""
    if day.date is None:
        return False
    start, end = day_window(day.date, day_start_hour, now.tzinfo)
    return start <= now < end


def new_day(now: datetime, day_start_hour: int = DAY_START_HOUR) -> Day:
    """A fresh, empty Day for the logical date containing *now*."""
    d = logical_date(now, day_start_hour)
    return Day(id=d.isoformat(), date=d)


def ensure_current_day(day: Day | None, now: datetime, day_start_hour: int = DAY_START_HOUR) -> Day:
    """Return *day* if it is still current, otherwise a fresh Day.

    The stale day is simply dropped; archive it first if it matters.
    """
    if day is None or not is_current(day, now, day_start_hour):
        return new_day(now, day_start_hour)
    return day


def should_show_reflection(
    last_prompt: datetime | None,
    now: datetime,
    day_start_hour: int = DAY_START_HOUR,
) -> bool:
    """True at most once per calendar date, and only from the day-start hour on."""
    if now.hour < day_start_hour:
        return False
    if last_prompt is None:
        return True
    if last_prompt.tzinfo is not None and now.tzinfo is not None:
        last_prompt = last_prompt.astimezone(now.tzinfo)
    return last_prompt.date() != now.date()
