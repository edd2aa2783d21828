"""Typed dataclasses for the PlanFact data model.

All persisted models use from_dict/to_dict for JSON serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from planfact.coerce import (
    QUALITIES,
    TIME_QUALITIES,
    TIME_TYPES,
    iso,
    to_choice,
    to_date,
    to_datetime,
    to_count,
    to_minutes,
    to_priority,
)

PLAN = "plan"
FACT = "fact"
PRE_PLAN = "pre-plan"

ALL_PROJECTS_ID = "all-projects"
OTHER_PROJECTS_ID = "other-projects"
RESERVED_PROJECT_IDS = (ALL_PROJECTS_ID, OTHER_PROJECTS_ID)


# ── Settings ──────────────────────────────────────────────────


@dataclass
class Settings:
    timezone: str = "UTC"
    day_start_hour: int = 4
    persist_debounce_ms: int = 100
    autosave_seconds: float = 5.0
    day_check_seconds: float = 60.0
    carry_over_unfinished: bool = True
    reflection_bonus_xp: int = 2

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        defaults = cls()
        hour = d.get("day_start_hour", defaults.day_start_hour)
        try:
            hour = int(hour)
        except (TypeError, ValueError):
            hour = defaults.day_start_hour
        if not 0 <= hour <= 23:
            hour = defaults.day_start_hour
        return cls(
            timezone=str(d.get("timezone", defaults.timezone) or defaults.timezone),
            day_start_hour=hour,
            persist_debounce_ms=to_count(d.get("persist_debounce_ms", defaults.persist_debounce_ms)),
            autosave_seconds=_positive_float(d.get("autosave_seconds"), defaults.autosave_seconds),
            day_check_seconds=_positive_float(d.get("day_check_seconds"), defaults.day_check_seconds),
            carry_over_unfinished=bool(d.get("carry_over_unfinished", defaults.carry_over_unfinished)),
            reflection_bonus_xp=to_count(d.get("reflection_bonus_xp", defaults.reflection_bonus_xp)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "day_start_hour": self.day_start_hour,
            "persist_debounce_ms": self.persist_debounce_ms,
            "autosave_seconds": self.autosave_seconds,
            "day_check_seconds": self.day_check_seconds,
            "carry_over_unfinished": self.carry_over_unfinished,
            "reflection_bonus_xp": self.reflection_bonus_xp,
        }


def _positive_float(value: Any, default: float) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return f if f > 0 else default


# ── Items ─────────────────────────────────────────────────────


@dataclass
class Item:
    id: str = ""
    description: str = ""
    time_type: str = "to-goal"  # to-goal, to-time
    task_quality: str = "D"  # A, B, C, D
    priority: int = 5  # 1 (highest) .. 10
    estimated_minutes: int = 0
    target_date: date | None = None
    project_id: str = ""
    column_origin: str = PLAN  # plan, fact, pre-plan
    creation_column: str = PLAN  # plan, pre-plan
    # open items only: which views the item appears in (plan, pre-plan)
    membership: set[str] = field(default_factory=set)
    completed: bool = False
    created_time: datetime | None = None
    completed_time: datetime | None = None
    actual_duration: int | None = None
    time_quality: str | None = None  # pure, not-pure
    was_pre_planned: bool = False
    planned_date: date | None = None
    xp_value: int = 0

    @property
    def is_fact(self) -> bool:
        return self.completed

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Item:
        if not d or not isinstance(d, dict):
            return cls()
        origin = str(d.get("columnOrigin", PLAN))
        if origin not in (PLAN, FACT, PRE_PLAN):
            origin = PLAN
        membership = d.get("membership")
        completed = bool(d.get("completed", False))
        if completed:
            members = set()
        elif isinstance(membership, (list, tuple, set)):
            members = {m for m in membership if m in (PLAN, PRE_PLAN)}
        elif origin == FACT:
            members = set()
        else:
            members = {origin}
        creation = str(d.get("creationColumn", origin if origin != FACT else PLAN))
        if creation not in (PLAN, PRE_PLAN):
            creation = PLAN

        actual = d.get("actualDuration")
        completed_time = to_datetime(d.get("completedTime"))
        time_quality = d.get("timeQuality")
        return cls(
            id=str(d.get("id", "")),
            description=str(d.get("description", "")),
            time_type=to_choice(d.get("timeType"), TIME_TYPES, "to-goal"),
            task_quality=to_choice(d.get("taskQuality"), QUALITIES, "D"),
            priority=to_priority(d.get("priority")),
            estimated_minutes=to_minutes(d.get("estimatedMinutes")),
            target_date=to_date(d.get("date")),
            project_id=str(d.get("projectId", "") or ""),
            column_origin=origin,
            creation_column=creation,
            membership=members,
            completed=completed,
            created_time=to_datetime(d.get("createdTime")),
            completed_time=completed_time,
            actual_duration=to_minutes(actual) if actual is not None else None,
            time_quality=to_choice(time_quality, TIME_QUALITIES, "not-pure") if time_quality else None,
            was_pre_planned=bool(d.get("wasPrePlanned", False)),
            planned_date=to_date(d.get("plannedDate")),
            xp_value=to_count(d.get("xpValue")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "timeType": self.time_type,
            "taskQuality": self.task_quality,
            "priority": self.priority,
            "estimatedMinutes": self.estimated_minutes,
            "date": iso(self.target_date),
            "projectId": self.project_id,
            "columnOrigin": self.column_origin,
            "creationColumn": self.creation_column,
            "completed": self.completed,
            "createdTime": iso(self.created_time),
            "xpValue": self.xp_value,
        }
        if self.membership:
            d["membership"] = sorted(self.membership)
        if self.completed_time is not None:
            d["completedTime"] = iso(self.completed_time)
        if self.actual_duration is not None:
            d["actualDuration"] = self.actual_duration
        if self.time_quality:
            d["timeQuality"] = self.time_quality
        if self.was_pre_planned:
            d["wasPrePlanned"] = True
        if self.planned_date is not None:
            d["plannedDate"] = iso(self.planned_date)
        return d


# ── Days ──────────────────────────────────────────────────────


@dataclass
class DayStats:
    day_xp: int = 0
    day_minutes: int = 0
    day_pure_minutes: int = 0
    plan_adherence: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DayStats:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            day_xp=to_count(d.get("dayXP")),
            day_minutes=to_minutes(d.get("dayMinutes")),
            day_pure_minutes=to_minutes(d.get("dayPureMinutes")),
            plan_adherence=to_count(d.get("planAdherence")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dayXP": self.day_xp,
            "dayMinutes": self.day_minutes,
            "dayPureMinutes": self.day_pure_minutes,
            "planAdherence": self.plan_adherence,
        }


@dataclass
class Day:
    id: str = ""
    date: date | None = None
    items: list[Item] = field(default_factory=list)  # open plan / pre-plan items
    fact_items: list[Item] = field(default_factory=list)  # newest first
    stats: DayStats = field(default_factory=DayStats)
    reflection: str | None = None

    @property
    def plan_items(self) -> list[Item]:
        return [i for i in self.items if PLAN in i.membership]

    @property
    def pre_plan_items(self) -> list[Item]:
        return [i for i in self.items if PRE_PLAN in i.membership]

    def find_item(self, item_id: str) -> Item | None:
        for i in self.items:
            if i.id == item_id:
                return i
        return None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Day:
        if not d or not isinstance(d, dict):
            return cls()
        items: list[Item] = []
        by_id: dict[str, Item] = {}
        # Older blobs keep plan and pre-plan as separate lists with shadow copies
        for key in ("openItems", "planItems", "prePlanItems"):
            for raw in d.get(key) or []:
                item = Item.from_dict(raw)
                if item.is_fact:
                    continue
                if key == "prePlanItems":
                    item.membership.add(PRE_PLAN)
                elif key == "planItems":
                    item.membership.add(PLAN)
                if not item.membership:
                    continue
                existing = by_id.get(item.id)
                if existing is not None:
                    existing.membership |= item.membership
                    if existing.planned_date is None:
                        existing.planned_date = item.planned_date
                    continue
                by_id[item.id] = item
                items.append(item)
        day_date = to_date(d.get("date")) or to_date(d.get("id"))
        reflection = d.get("reflection")
        return cls(
            id=str(d.get("id", "") or (day_date.isoformat() if day_date else "")),
            date=day_date,
            items=items,
            fact_items=[Item.from_dict(f) for f in (d.get("factItems") or [])],
            stats=DayStats.from_dict(d.get("stats") or {}),
            reflection=str(reflection) if reflection else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "date": iso(self.date),
            "openItems": [i.to_dict() for i in self.items],
            "factItems": [f.to_dict() for f in self.fact_items],
            "stats": self.stats.to_dict(),
        }
        if self.reflection:
            d["reflection"] = self.reflection
        return d


# ── Progress ──────────────────────────────────────────────────


@dataclass
class Records:
    highest_day_xp: int = 0
    most_work_time_in_day: int = 0
    most_pure_time_in_day: int = 0
    highest_task_xp: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Records:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            highest_day_xp=to_count(d.get("highestDayXP")),
            most_work_time_in_day=to_minutes(d.get("mostWorkTimeInDay")),
            most_pure_time_in_day=to_minutes(d.get("mostPureTimeInDay")),
            highest_task_xp=to_count(d.get("highestTaskXP")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "highestDayXP": self.highest_day_xp,
            "mostWorkTimeInDay": self.most_work_time_in_day,
            "mostPureTimeInDay": self.most_pure_time_in_day,
            "highestTaskXP": self.highest_task_xp,
        }

    def absorb_day(self, stats: DayStats) -> None:
        self.highest_day_xp = max(self.highest_day_xp, stats.day_xp)
        self.most_work_time_in_day = max(self.most_work_time_in_day, stats.day_minutes)
        self.most_pure_time_in_day = max(self.most_pure_time_in_day, stats.day_pure_minutes)


@dataclass
class Progress:
    total_xp: int = 0
    current_level: int = 1
    next_level_xp: int = 100
    streak: int = 0
    current_day: Day = field(default_factory=Day)
    days: list[Day] = field(default_factory=list)  # archived, newest first
    records: Records = field(default_factory=Records)
    last_reflection_prompt: datetime | None = None
    last_streak_date: date | None = None
    selected_project_id: str = ALL_PROJECTS_ID

    def all_fact_items(self) -> list[Item]:
        facts = list(self.current_day.fact_items)
        for day in self.days:
            facts.extend(day.fact_items)
        return facts

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Progress:
        if not d or not isinstance(d, dict):
            return cls()
        level = d.get("currentLevel", 1)
        try:
            level = max(1, int(level))
        except (TypeError, ValueError):
            level = 1
        return cls(
            total_xp=to_count(d.get("totalXP")),
            current_level=level,
            next_level_xp=to_count(d.get("nextLevelXP")) or 100,
            streak=to_count(d.get("streak")),
            current_day=Day.from_dict(d.get("currentDay") or {}),
            days=[Day.from_dict(x) for x in (d.get("days") or []) if isinstance(x, dict)],
            records=Records.from_dict(d.get("records") or {}),
            last_reflection_prompt=to_datetime(d.get("lastReflectionPrompt")),
            last_streak_date=to_date(d.get("lastStreakDate")),
            selected_project_id=str(d.get("selectedProjectId") or ALL_PROJECTS_ID),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "totalXP": self.total_xp,
            "currentLevel": self.current_level,
            "nextLevelXP": self.next_level_xp,
            "streak": self.streak,
            "currentDay": self.current_day.to_dict(),
            "days": [x.to_dict() for x in self.days],
            "records": self.records.to_dict(),
        }
        if self.last_reflection_prompt is not None:
            d["lastReflectionPrompt"] = iso(self.last_reflection_prompt)
        if self.last_streak_date is not None:
            d["lastStreakDate"] = iso(self.last_streak_date)
        if self.selected_project_id != ALL_PROJECTS_ID:
            d["selectedProjectId"] = self.selected_project_id
        return d


# ── Projects ──────────────────────────────────────────────────


@dataclass
class Project:
    id: str = ""
    name: str = ""
    current_xp: int = 0
    current_level: int = 1
    next_level_xp: int = 100
    task_ids: list[str] = field(default_factory=list)

    @property
    def is_reserved(self) -> bool:
        return self.id in RESERVED_PROJECT_IDS

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Project:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            current_xp=to_count(d.get("currentXP")),
            current_level=max(1, to_count(d.get("currentLevel")) or 1),
            next_level_xp=to_count(d.get("nextLevelXP")) or 100,
            task_ids=[str(t) for t in (d.get("taskIds") or [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "currentXP": self.current_xp,
            "currentLevel": self.current_level,
            "nextLevelXP": self.next_level_xp,
            "taskIds": list(self.task_ids),
        }


# ── Derived views ─────────────────────────────────────────────


@dataclass
class XPBreakdown:
    quality_points: int = 0
    pure_bonus: int = 0
    priority_bonus: int = 0
    plan_bonus: int = 0
    time_multiplier: int = 1
    total: int = 0

    @property
    def base(self) -> int:
        return self.quality_points + self.pure_bonus + self.priority_bonus + self.plan_bonus

    def to_dict(self) -> dict[str, Any]:
        return {
            "qualityPoints": self.quality_points,
            "pureBonus": self.pure_bonus,
            "priorityBonus": self.priority_bonus,
            "planBonus": self.plan_bonus,
            "base": self.base,
            "timeMultiplier": self.time_multiplier,
            "total": self.total,
        }


@dataclass
class DashboardStats:
    current_xp: int = 0
    next_level_xp: int = 100
    current_level: int = 1
    today_xp: int = 0
    best_day_xp: int = 0
    today_minutes: int = 0
    best_minutes: int = 0
    today_pure_minutes: int = 0
    best_pure_minutes: int = 0
    streak: int = 0
    plan_adherence: int = 0
    level_progress: float = 0.0  # percent of the way to the next level

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentXP": self.current_xp,
            "nextLevelXP": self.next_level_xp,
            "currentLevel": self.current_level,
            "todayXP": self.today_xp,
            "bestDayXP": self.best_day_xp,
            "todayMinutes": self.today_minutes,
            "bestMinutes": self.best_minutes,
            "todayPureMinutes": self.today_pure_minutes,
            "bestPureMinutes": self.best_pure_minutes,
            "streak": self.streak,
            "planAdherence": self.plan_adherence,
            "levelProgress": self.level_progress,
        }


@dataclass
class AnalyticsSummary:
    total_xp: int = 0
    this_week_xp: int = 0
    last_week_xp: int = 0
    week_change_pct: float = 0.0
    active_days: int = 0
    days_tracked: int = 0
    days_since_first: int = 0
    streak: int = 0
    quality_points: dict[str, int] = field(default_factory=dict)
    pure_bonus: int = 0
    plan_bonus: int = 0
    reflection_bonus: int = 0
    xp_by_weekday: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalXP": self.total_xp,
            "thisWeekXP": self.this_week_xp,
            "lastWeekXP": self.last_week_xp,
            "weekChangePct": round(self.week_change_pct, 1),
            "activeDays": self.active_days,
            "daysTracked": self.days_tracked,
            "daysSinceFirst": self.days_since_first,
            "streak": self.streak,
            "qualityPoints": self.quality_points,
            "pureBonus": self.pure_bonus,
            "planBonus": self.plan_bonus,
            "reflectionBonus": self.reflection_bonus,
            "xpByWeekday": self.xp_by_weekday,
        }
