"""Item repository: plan, fact and pre-plan collections of a Day.

Open items live in ``Day.items`` and carry a membership set; the plan and
pre-plan columns are views over that one list, so an item pre-planned for
today is a single record that shows up in both.  Completed work is recorded
as a separate fact item, newest first.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date, datetime
from itertools import chain
from typing import Any, Iterable

from planfact.coerce import TIME_QUALITIES, to_choice, to_date, to_minutes
from planfact.models import PLAN, PRE_PLAN, Day, Item, Progress
from planfact.xp import score_task

# snake_case spellings accepted from Python callers
_INPUT_ALIASES = {
    "time_type": "timeType",
    "task_quality": "taskQuality",
    "estimated_minutes": "estimatedMinutes",
    "target_date": "date",
    "project_id": "projectId",
    "column_origin": "columnOrigin",
    "creation_column": "creationColumn",
    "created_time": "createdTime",
    "completed_time": "completedTime",
    "actual_duration": "actualDuration",
    "time_quality": "timeQuality",
    "was_pre_planned": "wasPrePlanned",
    "planned_date": "plannedDate",
    "xp_value": "xpValue",
}

EDITABLE_FIELDS = (
    "description",
    "time_type",
    "task_quality",
    "priority",
    "estimated_minutes",
    "target_date",
    "project_id",
    "planned_date",
)


def new_item_id() -> str:
    return uuid.uuid4().hex


def _input_dict(data: dict[str, Any]) -> dict[str, Any]:
    return {_INPUT_ALIASES.get(k, k): v for k, v in data.items()}


def item_from_input(data: Item | dict[str, Any]) -> Item:
    """Normalize collaborator input into a fresh Item (never aliases *data*)."""
    if isinstance(data, Item):
        return replace(data, membership=set(data.membership))
    return Item.from_dict(_input_dict(data or {}))


def _provided_fields(data: Item | dict[str, Any]) -> tuple[Item, set[str]]:
    item = item_from_input(data)
    if isinstance(data, Item):
        return item, set(EDITABLE_FIELDS)
    keys = set(_input_dict(data or {}))
    reverse = {v: k for k, v in _INPUT_ALIASES.items()}
    provided = {reverse.get(k, k) for k in keys}
    return item, provided & set(EDITABLE_FIELDS)


def _dedupe(items: Iterable[Item]) -> list[Item]:
    seen: set[str] = set()
    out = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


# ── Plan ──────────────────────────────────────────────────────


def add_plan_item(day: Day, data: Item | dict[str, Any], now: datetime) -> Item:
    """Append a new pending plan item to *day* and return it."""
    item = item_from_input(data)
    item.id = new_item_id()
    item.completed = False
    item.column_origin = PLAN
    item.creation_column = PLAN
    item.membership = {PLAN}
    item.xp_value = 0
    item.created_time = now
    item.completed_time = None
    item.actual_duration = None
    item.time_quality = None
    if item.target_date is None:
        item.target_date = day.date
    day.items.append(item)
    return item


def remove_plan_item(day: Day, item_id: str) -> bool:
    """Drop *item_id* from the plan view. Returns False if it was not there."""
    for i, item in enumerate(day.items):
        if item.id == item_id and PLAN in item.membership:
            item.membership.discard(PLAN)
            if not item.membership:
                day.items.pop(i)
            return True
    return False


def update_item(day: Day, data: Item | dict[str, Any], view: str) -> Item | None:
    """Apply editable fields of *data* to the open item with the same id."""
    updated, provided = _provided_fields(data)
    for item in day.items:
        if item.id == updated.id and view in item.membership:
            for name in provided:
                setattr(item, name, getattr(updated, name))
            return item
    return None


def update_plan_item(day: Day, data: Item | dict[str, Any]) -> Item | None:
    return update_item(day, data, PLAN)


# ── Fact ──────────────────────────────────────────────────────


def add_fact_item(
    day: Day,
    source: Item | dict[str, Any],
    actual_duration: Any,
    time_quality: str | None = "not-pure",
    now: datetime | None = None,
) -> Item:
    """Record completed work as a new fact item, scored and prepended.

    The fact gets its own id; the originating plan item is left untouched.
    """
    src = item_from_input(source)
    origin = PLAN if PLAN in src.membership else src.column_origin
    fact = replace(
        src,
        id=new_item_id(),
        column_origin=origin,
        membership=set(),
        completed=True,
        completed_time=now or datetime.now(),
        actual_duration=to_minutes(actual_duration),
        time_quality=to_choice(time_quality, TIME_QUALITIES, "not-pure"),
        was_pre_planned=(
            src.was_pre_planned or PRE_PLAN in src.membership or src.creation_column == PRE_PLAN
        ),
    )
    if fact.created_time is None:
        fact.created_time = fact.completed_time
    fact.xp_value = score_task(
        fact.task_quality,
        fact.time_quality,
        fact.priority,
        fact.column_origin,
        fact.actual_duration,
        fact.estimated_minutes,
    )
    day.fact_items.insert(0, fact)
    return fact


def repeat_failed_item(day: Day, item_id: str, actual_duration: Any, now: datetime) -> Item | None:
    """Re-queue a plan item whose timer run failed.

    The retry gets a new id and an estimate grown by the time already spent.
    """
    failed = next((i for i in day.plan_items if i.id == item_id), None)
    if failed is None:
        return None
    retry = replace(
        failed,
        id=new_item_id(),
        membership={PLAN},
        completed=False,
        estimated_minutes=failed.estimated_minutes + to_minutes(actual_duration),
        created_time=now,
    )
    day.items = [i for i in day.items if i.id != item_id]
    day.items.append(retry)
    return retry


# ── Pre-plan ──────────────────────────────────────────────────


def add_pre_plan_item(
    day: Day,
    data: Item | dict[str, Any],
    planned_date: date | str | None,
    today: date,
    now: datetime,
) -> Item:
    """Schedule an item ahead of (or behind) its execution day.

    An item planned for *today* also joins the active plan.
    """
    item = item_from_input(data)
    planned = to_date(planned_date) or item.planned_date or today
    item.id = new_item_id()
    item.completed = False
    item.column_origin = PRE_PLAN
    item.creation_column = PRE_PLAN
    item.planned_date = planned
    item.target_date = planned
    item.membership = {PRE_PLAN, PLAN} if planned == today else {PRE_PLAN}
    item.xp_value = 0
    item.created_time = now
    item.completed_time = None
    item.actual_duration = None
    item.time_quality = None
    day.items.append(item)
    return item


def remove_pre_plan_item(day: Day, item_id: str) -> bool:
    """Delete a pre-planned item from every view it appears in."""
    before = len(day.items)
    day.items = [i for i in day.items if not (i.id == item_id and PRE_PLAN in i.membership)]
    return len(day.items) != before


def update_pre_plan_item(day: Day, data: Item | dict[str, Any], today: date) -> Item | None:
    item = update_item(day, data, PRE_PLAN)
    if item is None:
        return None
    item.target_date = item.planned_date or item.target_date
    if item.planned_date == today:
        item.membership.add(PLAN)
    elif item.creation_column == PRE_PLAN:
        item.membership.discard(PLAN)
    return item


def get_pre_planned_items(progress: Progress, on_date: date, today: date) -> list[Item]:
    """Items pre-planned for *on_date*, without duplicate ids.

    Today merges the active plan with today's pre-plan; future dates read
    pre-plan items by planned date. Past dates read the open items left on
    the archived day(s) plus every item that was pre-planned for that date,
    wherever it lives now (still pending, or carried into a later plan).
    """
    current = progress.current_day
    if on_date == today:
        return _dedupe(
            i for i in current.items
            if PLAN in i.membership or (PRE_PLAN in i.membership and i.planned_date == today)
        )
    if on_date < today:
        archived = (
            i for d in progress.days if d.date == on_date for i in d.items
            if PLAN in i.membership
            or (PRE_PLAN in i.membership and i.planned_date in (None, on_date))
        )
        scheduled = (
            i for d in [current, *progress.days] for i in d.items
            if i.planned_date == on_date
            and (PRE_PLAN in i.membership or i.creation_column == PRE_PLAN)
        )
        return _dedupe(chain(archived, scheduled))
    return _dedupe(
        i for i in current.items
        if PRE_PLAN in i.membership and i.planned_date == on_date
    )


def estimated_minutes_by_date(day: Day, dates: Iterable[date]) -> dict[date, int]:
    """Planned minutes per date across the open items of *day*."""
    totals = {d: 0 for d in dates}
    for item in day.items:
        when = item.planned_date if PRE_PLAN in item.membership else item.target_date
        if when in totals:
            totals[when] += item.estimated_minutes
    return totals


# ── Rollover ──────────────────────────────────────────────────


def roll_forward(old_day: Day, new_day: Day, carry_unfinished: bool = True) -> list[Item]:
    """Move open items that still matter from *old_day* onto *new_day*.

    Future pre-plans move unchanged, pre-plans due on the new day join its
    plan, and unfinished plan items move re-dated when *carry_unfinished*.
    Anything left stays on *old_day* as history. Returns the moved items.
    """
    moved: list[Item] = []
    stay: list[Item] = []
    target = new_day.date
    for item in old_day.items:
        is_pre = PRE_PLAN in item.membership
        if is_pre and item.planned_date is not None and target is not None and item.planned_date > target:
            moved.append(item)
        elif is_pre and item.planned_date == target:
            item.membership.add(PLAN)
            item.target_date = target
            moved.append(item)
        elif PLAN in item.membership and carry_unfinished:
            # overdue: it is a plain plan item from now on
            item.membership = {PLAN}
            item.target_date = target
            moved.append(item)
        else:
            stay.append(item)
    old_day.items = stay
    new_day.items.extend(moved)
    return moved
