"""XP scoring for completed tasks.

Additive point model: quality grade points plus bonuses for pure time,
high priority and planned origin, scaled by a per-hour time multiplier.
"""

from __future__ import annotations

from planfact.models import PLAN, XPBreakdown

QUALITY_POINTS = {"A": 8, "B": 4, "C": 2, "D": 1}
PURE_BONUS = 3
PLAN_BONUS = 2


def priority_bonus(priority: int) -> int:
    if 1 <= priority <= 3:
        return 3
    if 4 <= priority <= 6:
        return 1
    return 0


def time_multiplier(actual_minutes: int | float) -> int:
    """x1 for the first hour or less, x2 into the second hour, and so on."""
    minutes = max(0, actual_minutes or 0)
    return int(1 + minutes // 60)


def explain_task_xp(
    quality: str,
    time_quality: str | None,
    priority: int,
    origin: str,
    actual_minutes: int | float,
    estimated_minutes: int | float = 0,
) -> XPBreakdown:
    """Score a task and return every component of the result."""
    # estimated_minutes does not enter the additive model
    breakdown = XPBreakdown(
        quality_points=QUALITY_POINTS.get(quality, QUALITY_POINTS["D"]),
        pure_bonus=PURE_BONUS if time_quality == "pure" else 0,
        priority_bonus=priority_bonus(priority),
        plan_bonus=PLAN_BONUS if origin == PLAN else 0,
        time_multiplier=time_multiplier(actual_minutes),
    )
    breakdown.total = max(0, round(breakdown.base * breakdown.time_multiplier))
    return breakdown


def score_task(
    quality: str,
    time_quality: str | None,
    priority: int,
    origin: str,
    actual_minutes: int | float,
    estimated_minutes: int | float = 0,
) -> int:
    """XP earned for one completed task. Deterministic and never negative."""
    return explain_task_xp(
        quality, time_quality, priority, origin, actual_minutes, estimated_minutes
    ).total
