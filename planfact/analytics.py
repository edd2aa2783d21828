"""Statistics over the archived days: weekly XP comparison and XP breakdown."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta

from planfact.models import PLAN, AnalyticsSummary, Day, Progress
from planfact.xp import PLAN_BONUS, PURE_BONUS, QUALITY_POINTS

DAY_MAP = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}
WEEKDAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def week_start(today: date, week_start_day: str = "sun") -> date:
    """Most recent *week_start_day* on or before *today*."""
    start_idx = DAY_MAP.get(week_start_day.lower(), 6)
    days_since = (today.weekday() - start_idx) % 7
    return today - timedelta(days=days_since)


def _all_days(progress: Progress) -> list[Day]:
    return [progress.current_day] + list(progress.days)


def week_xp(progress: Progress, today: date, weeks_ago: int = 0, week_start_day: str = "sun") -> int:
    start = week_start(today, week_start_day) - timedelta(days=7 * weeks_ago)
    end = start + timedelta(days=7)
    return sum(
        d.stats.day_xp for d in _all_days(progress)
        if d.date is not None and start <= d.date < end
    )


def compute_summary(
    progress: Progress,
    today: date,
    week_start_day: str = "sun",
    reflection_bonus_xp: int = 2,
) -> AnalyticsSummary:
    """Build the statistics summary for *progress* as of *today*."""
    days = _all_days(progress)
    summary = AnalyticsSummary(total_xp=progress.total_xp, streak=progress.streak)

    summary.this_week_xp = week_xp(progress, today, 0, week_start_day)
    summary.last_week_xp = week_xp(progress, today, 1, week_start_day)
    if summary.last_week_xp:
        summary.week_change_pct = (
            (summary.this_week_xp - summary.last_week_xp) / summary.last_week_xp * 100
        )

    dated = [d for d in days if d.date is not None]
    summary.days_tracked = len({d.date for d in dated})
    summary.active_days = len({d.date for d in dated if d.stats.day_xp > 0})
    if dated:
        first = min(d.date for d in dated)
        summary.days_since_first = max(0, (today - first).days)

    # Breakdown of this week's points by source
    start = week_start(today, week_start_day)
    quality = {q: 0 for q in QUALITY_POINTS}
    by_weekday: dict[str, int] = defaultdict(int)
    for day in dated:
        by_weekday[WEEKDAY_NAMES[day.date.weekday()]] += day.stats.day_xp
        if not start <= day.date <= today:
            continue
        for fact in day.fact_items:
            quality[fact.task_quality] = quality.get(fact.task_quality, 0) + QUALITY_POINTS.get(fact.task_quality, 0)
            if fact.time_quality == "pure":
                summary.pure_bonus += PURE_BONUS
            if fact.column_origin == PLAN:
                summary.plan_bonus += PLAN_BONUS
        if day.reflection:
            summary.reflection_bonus += reflection_bonus_xp

    summary.quality_points = quality
    summary.xp_by_weekday = {name: by_weekday.get(name, 0) for name in WEEKDAY_NAMES}
    return summary
