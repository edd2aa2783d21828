"""Plan adherence: how much of today's pre-plan actually got done."""

from __future__ import annotations

from datetime import date

from planfact.models import PRE_PLAN, Day


def compute_plan_adherence(day: Day, today: date) -> int:
    """Percentage (0-100) of items pre-planned for *today* that were completed.

    Completing an item moves it out of the pre-plan collection, so the
    baseline is what is still pre-planned for today plus what was already
    done from the pre-plan. Returns 0 when nothing was pre-planned.
    """
    completed = sum(1 for f in day.fact_items if f.was_pre_planned)
    pending = sum(
        1 for i in day.items
        if PRE_PLAN in i.membership and i.planned_date == today
    )
    total = completed + pending
    if total == 0:
        return 0
    return min(100, round(100 * completed / total))
