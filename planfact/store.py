"""The progression store: owner of all durable PlanFact state.

Holds the current day, archived history, XP/level/streak/records and the
project list. Every mutation updates memory, recomputes derived fields,
notifies subscribers and schedules a debounced write. Writes are
best-effort; memory stays authoritative.

Lifecycle::

    store = ProgressStore(root)
    store.load()
    store.start()     # debounced writes + autosave + day-boundary checks
    ...
    store.close()     # stop timers and flush
"""

from __future__ import annotations

import copy
import functools
import logging
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from apscheduler.schedulers.background import BackgroundScheduler

from planfact import items as repo
from planfact.adherence import compute_plan_adherence
from planfact.analytics import compute_summary
from planfact.coerce import to_date, to_minutes
from planfact.daytime import is_current, logical_date, new_day, should_show_reflection
from planfact.fileio import KeyValueStorage
from planfact.leveling import apply_xp_gain, apply_xp_loss, level_progress_pct
from planfact.models import (
    ALL_PROJECTS_ID,
    AnalyticsSummary,
    DashboardStats,
    Day,
    Item,
    Progress,
    Project,
    Settings,
)
from planfact.projects import (
    add_project,
    default_projects,
    delete_project,
    find_project,
    load_projects,
    recompute_projects,
    sort_projects,
)
from planfact.workspace import get_timezone, load_settings, storage_dir, workspace_root

logger = logging.getLogger(__name__)

STORAGE_KEY = "plan_tracker_data"
PROJECTS_KEY = "plan_tracker_projects"

Listener = Callable[[], None]


def mutation(method):
    """Run *method* under the store lock; on success persist and notify.

    A method signals "nothing changed" (e.g. unknown id) by returning None
    or False; subscribers are then left alone.
    """

    @functools.wraps(method)
    def wrapper(self: ProgressStore, *args, **kwargs):
        with self._lock:
            result = method(self, *args, **kwargs)
            changed = result is not None and result is not False
            if changed:
                self._touch()
        if changed:
            self._notify()
        return result

    return wrapper


class ProgressStore:
    def __init__(
        self,
        root: Path | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        storage: KeyValueStorage | None = None,
    ):
        self.root = root if root is not None else workspace_root()
        self.settings = settings if settings is not None else load_settings(self.root)
        self._tz = get_timezone(self.settings)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self.storage = storage if storage is not None else KeyValueStorage(storage_dir(self.root))

        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._dirty = False
        self._scheduler: BackgroundScheduler | None = None

        self.data = Progress(current_day=new_day(self.now(), self.day_start_hour))
        self.projects: list[Project] = default_projects()

    # ── Clock ─────────────────────────────────────────────────

    @property
    def day_start_hour(self) -> int:
        return self.settings.day_start_hour

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return logical_date(self.now(), self.day_start_hour)

    # ── Lifecycle ─────────────────────────────────────────────

    def load(self) -> Progress:
        """Read durable state, then archive the stored day if it went stale."""
        with self._lock:
            raw = self.storage.get(STORAGE_KEY)
            if raw is not None and not isinstance(raw, dict):
                logger.warning("Ignoring malformed %s blob of type %s", STORAGE_KEY, type(raw).__name__)
                raw = None
            if raw:
                self.data = Progress.from_dict(raw)
            else:
                self.data = Progress()
            if self.data.current_day.date is None:
                self.data.current_day = new_day(self.now(), self.day_start_hour)
            self.projects = load_projects(self.storage.get(PROJECTS_KEY))
            recompute_projects(self.projects, self.data.all_fact_items())
            if find_project(self.projects, self.data.selected_project_id) is None:
                self.data.selected_project_id = ALL_PROJECTS_ID
            self._dirty = False
        self.check_day_transition()
        return self.data

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        """Start the autosave and day-boundary jobs and enable debounced writes."""
        with self._lock:
            if self._scheduler is not None:
                return
            scheduler = BackgroundScheduler(timezone=self._tz, daemon=True)
            scheduler.add_job(
                self.flush, "interval", seconds=self.settings.autosave_seconds,
                id="autosave", coalesce=True, max_instances=1,
            )
            scheduler.add_job(
                self.check_day_transition, "interval", seconds=self.settings.day_check_seconds,
                id="day-check", coalesce=True, max_instances=1,
            )
            scheduler.start()
            self._scheduler = scheduler
            if self._dirty:
                self._schedule_persist()
        logger.debug("Store started (autosave every %ss)", self.settings.autosave_seconds)

    def close(self) -> None:
        """Stop background jobs and write pending state."""
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        self.flush()

    def flush(self) -> bool:
        """Write state and projects now. Returns False if storage failed."""
        with self._lock:
            payload = self.data.to_dict()
            projects = [p.to_dict() for p in self.projects]
            try:
                self.storage.set(STORAGE_KEY, payload)
                self.storage.set(PROJECTS_KEY, projects)
            except OSError:
                # stays dirty; the next debounce or autosave retries
                logger.exception("Failed to persist state to %s", self.storage.directory)
                return False
            self._dirty = False
            return True

    @property
    def dirty(self) -> bool:
        return self._dirty

    def _schedule_persist(self) -> None:
        self._dirty = True
        if self._scheduler is None:
            return
        # one pending write; each mutation pushes it back
        run_date = datetime.now(self._tz) + timedelta(milliseconds=self.settings.persist_debounce_ms)
        self._scheduler.add_job(
            self.flush, "date", run_date=run_date,
            id="persist", replace_existing=True,
        )

    # ── Change feed ───────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a no-argument callback. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener %r failed", listener)

    def _touch(self) -> None:
        day = self.data.current_day
        day.stats.plan_adherence = compute_plan_adherence(day, self.today())
        recompute_projects(self.projects, self.data.all_fact_items())
        self._schedule_persist()

    # ── Queries ───────────────────────────────────────────────

    def get_data(self) -> Progress:
        """Snapshot of the full state."""
        with self._lock:
            return copy.deepcopy(self.data)

    def get_projects(self) -> list[Project]:
        with self._lock:
            return copy.deepcopy(sort_projects(self.projects))

    def get_pre_planned_items(self, on_date: date | str) -> list[Item]:
        target = to_date(on_date)
        if target is None:
            return []
        with self._lock:
            found = repo.get_pre_planned_items(self.data, target, self.today())
            return copy.deepcopy(found)

    def get_estimated_minutes(self, dates: list[date]) -> dict[date, int]:
        with self._lock:
            return repo.estimated_minutes_by_date(self.data.current_day, dates)

    def should_show_reflection(self) -> bool:
        return should_show_reflection(
            self.data.last_reflection_prompt, self.now(), self.day_start_hour
        )

    def get_stats(self) -> DashboardStats:
        with self._lock:
            d = self.data
            s = d.current_day.stats
            return DashboardStats(
                current_xp=d.total_xp,
                next_level_xp=d.next_level_xp,
                current_level=d.current_level,
                today_xp=s.day_xp,
                best_day_xp=d.records.highest_day_xp,
                today_minutes=s.day_minutes,
                best_minutes=d.records.most_work_time_in_day,
                today_pure_minutes=s.day_pure_minutes,
                best_pure_minutes=d.records.most_pure_time_in_day,
                streak=d.streak,
                plan_adherence=s.plan_adherence,
                level_progress=level_progress_pct(d.total_xp, d.current_level),
            )

    def get_summary(self, week_start_day: str = "sun") -> AnalyticsSummary:
        with self._lock:
            return compute_summary(
                self.data, self.today(), week_start_day, self.settings.reflection_bonus_xp
            )

    # ── Plan / fact ───────────────────────────────────────────

    @mutation
    def add_plan_item(self, data: Item | dict[str, Any]) -> Item:
        item = repo.add_plan_item(self.data.current_day, data, self.now())
        self._tag_selected_project(item)
        return item

    @mutation
    def remove_plan_item(self, item_id: str) -> bool:
        return repo.remove_plan_item(self.data.current_day, item_id)

    @mutation
    def update_plan_item(self, data: Item | dict[str, Any]) -> Item | None:
        return repo.update_plan_item(self.data.current_day, data)

    @mutation
    def add_fact_item(
        self,
        item: Item | dict[str, Any],
        actual_duration: Any,
        time_quality: str | None = "not-pure",
    ) -> Item:
        return self._add_fact(item, actual_duration, time_quality)

    @mutation
    def complete_plan_item(self, item_id: str, actual_duration: Any, is_pure: bool = False) -> Item | None:
        """Timer finished: turn the plan item into a scored fact and book XP and minutes."""
        day = self.data.current_day
        source = next((i for i in day.plan_items if i.id == item_id), None)
        if source is None:
            return None
        day.items = [i for i in day.items if i.id != item_id]
        fact = self._add_fact(source, actual_duration, "pure" if is_pure else "not-pure")
        self._add_xp(fact.xp_value)
        minutes = fact.actual_duration or 0
        self._update_stats(minutes, minutes if is_pure else 0)
        return fact

    @mutation
    def repeat_failed_item(self, item_id: str, actual_duration: Any = 0) -> Item | None:
        return repo.repeat_failed_item(self.data.current_day, item_id, actual_duration, self.now())

    def _add_fact(self, item: Item | dict[str, Any], actual_duration: Any, time_quality: str | None) -> Item:
        fact = repo.add_fact_item(
            self.data.current_day, item, actual_duration, time_quality, self.now()
        )
        records = self.data.records
        records.highest_task_xp = max(records.highest_task_xp, fact.xp_value)
        return fact

    # ── Pre-plan ──────────────────────────────────────────────

    @mutation
    def add_pre_plan_item(self, data: Item | dict[str, Any], planned_date: date | str | None = None) -> Item:
        item = repo.add_pre_plan_item(
            self.data.current_day, data, planned_date, self.today(), self.now()
        )
        self._tag_selected_project(item)
        return item

    @mutation
    def remove_pre_plan_item(self, item_id: str) -> bool:
        return repo.remove_pre_plan_item(self.data.current_day, item_id)

    @mutation
    def update_pre_plan_item(self, data: Item | dict[str, Any]) -> Item | None:
        return repo.update_pre_plan_item(self.data.current_day, data, self.today())

    def _tag_selected_project(self, item: Item) -> None:
        selected = find_project(self.projects, self.data.selected_project_id)
        if not item.project_id and selected is not None and not selected.is_reserved:
            item.project_id = selected.id

    # ── XP and stats ──────────────────────────────────────────

    @mutation
    def add_xp(self, amount: Any) -> int:
        return self._add_xp(amount)

    def _add_xp(self, amount: Any) -> int:
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            amount = 0
        d = self.data
        before = d.current_level
        d.total_xp = max(0, d.total_xp + amount)
        d.current_day.stats.day_xp = max(0, d.current_day.stats.day_xp + amount)
        if amount >= 0:
            d.current_level, d.next_level_xp = apply_xp_gain(d.total_xp, d.current_level)
        else:
            d.current_level, d.next_level_xp = apply_xp_loss(d.total_xp, d.current_level)
        if d.current_level > before:
            logger.info("Level up: %d -> %d (total %d XP)", before, d.current_level, d.total_xp)
        return d.total_xp

    @mutation
    def update_stats(self, minutes: Any, pure_minutes: Any) -> Day:
        return self._update_stats(minutes, pure_minutes)

    def _update_stats(self, minutes: Any, pure_minutes: Any) -> Day:
        day = self.data.current_day
        day.stats.day_minutes += to_minutes(minutes)
        day.stats.day_pure_minutes += to_minutes(pure_minutes)
        return day

    # ── Reflection ────────────────────────────────────────────

    @mutation
    def add_reflection(self, reflection: str) -> Day:
        """Store today's reflection; every submission earns the reflection bonus."""
        day = self.data.current_day
        day.reflection = reflection
        self.data.last_reflection_prompt = self.now()
        self._add_xp(self.settings.reflection_bonus_xp)
        return day

    @mutation
    def dismiss_reflection(self) -> datetime:
        self.data.last_reflection_prompt = self.now()
        return self.data.last_reflection_prompt

    # ── Day lifecycle ─────────────────────────────────────────

    @mutation
    def transition_to_new_day(self, is_automatic: bool = False) -> Day:
        return self._transition(is_automatic)

    @mutation
    def check_day_transition(self) -> Day | None:
        """Archive the current day if the clock has left its window."""
        if is_current(self.data.current_day, self.now(), self.day_start_hour):
            return None
        return self._transition(is_automatic=True)

    def _transition(self, is_automatic: bool) -> Day:
        d = self.data
        archived = d.current_day
        archived.stats.plan_adherence = compute_plan_adherence(
            archived, archived.date or self.today()
        )
        fresh = new_day(self.now(), self.day_start_hour)
        repo.roll_forward(archived, fresh, self.settings.carry_over_unfinished)

        d.days.insert(0, archived)
        d.records.absorb_day(archived.stats)

        if is_automatic:
            self._update_streak(archived)
        else:
            # starting a day early forfeits its XP
            d.total_xp = max(0, d.total_xp - archived.stats.day_xp)
            d.current_level, d.next_level_xp = apply_xp_loss(d.total_xp, d.current_level)

        d.current_day = fresh
        logger.info(
            "Day %s archived (%s, %d XP); current day is %s, streak %d",
            archived.id, "automatic" if is_automatic else "manual",
            archived.stats.day_xp, fresh.id, d.streak,
        )
        return fresh

    def _update_streak(self, archived: Day) -> None:
        d = self.data
        if archived.stats.day_xp <= 0:
            d.streak = 0
            return
        last = d.last_streak_date
        if archived.date is None or last == archived.date:
            return
        if last is not None and (archived.date - last).days > 1:
            d.streak = 1
        else:
            d.streak += 1
        d.last_streak_date = archived.date

    @mutation
    def clear_all_data(self) -> Progress:
        """Hard reset to an empty initial state, projects included."""
        self.data = Progress(current_day=new_day(self.now(), self.day_start_hour))
        self.projects = default_projects()
        logger.info("All data cleared")
        return self.data

    # ── Projects ──────────────────────────────────────────────

    @mutation
    def add_project(self, name: str) -> Project | None:
        return add_project(self.projects, name)

    @mutation
    def delete_project(self, project_id: str) -> bool:
        deleted = delete_project(self.projects, project_id)
        if deleted and self.data.selected_project_id == project_id:
            self.data.selected_project_id = ALL_PROJECTS_ID
        return deleted

    @mutation
    def select_project(self, project_id: str) -> str | None:
        if find_project(self.projects, project_id) is None:
            return None
        self.data.selected_project_id = project_id
        return project_id

    @property
    def selected_project_id(self) -> str:
        return self.data.selected_project_id

    @mutation
    def save_projects(self, projects: list[Project | dict[str, Any]]) -> list[Project]:
        """Replace the project list; reserved projects are always kept."""
        raw = [p.to_dict() if isinstance(p, Project) else p for p in projects]
        self.projects = load_projects(raw)
        if find_project(self.projects, self.data.selected_project_id) is None:
            self.data.selected_project_id = ALL_PROJECTS_ID
        return self.projects
