"""Tests for planfact/store.py — the persistent progression store."""

import json
import time
from datetime import date
from unittest.mock import patch

from conftest import FakeClock, read_blob, task, utc, write_blob

from planfact.fileio import KeyValueStorage
from planfact.models import Settings
from planfact.store import ProgressStore


def _reopen(workspace, clock) -> ProgressStore:
    s = ProgressStore(workspace, settings=Settings(), clock=clock)
    s.load()
    return s


# ── Load / persist ────────────────────────────────────────────


def test_fresh_store_initial_state(store):
    data = store.get_data()
    assert data.total_xp == 0
    assert data.current_level == 1
    assert data.next_level_xp == 100
    assert data.streak == 0
    assert data.days == []
    assert data.current_day.date == date(2026, 2, 11)
    assert [p.id for p in store.get_projects()] == ["all-projects", "other-projects"]


def test_flush_and_reload(workspace, store, clock):
    item = store.add_plan_item(task())
    store.add_xp(30)
    assert store.dirty
    assert store.flush() is True
    assert not store.dirty

    blob = read_blob(workspace)
    assert blob["totalXP"] == 30
    assert blob["currentDay"]["openItems"][0]["id"] == item.id
    assert isinstance(read_blob(workspace, "plan_tracker_projects"), list)

    again = _reopen(workspace, clock)
    assert again.get_data().total_xp == 30
    assert again.get_data().current_day.plan_items[0].id == item.id


def test_load_archives_stale_day(workspace, clock):
    write_blob(workspace, {
        "totalXP": 50,
        "currentLevel": 1,
        "nextLevelXP": 100,
        "streak": 2,
        "currentDay": {
            "id": "2026-02-10",
            "date": "2026-02-10",
            "planItems": [{"id": "left", "description": "left over", "columnOrigin": "plan"}],
            "factItems": [],
            "stats": {"dayXP": 50, "dayMinutes": 90, "dayPureMinutes": 60},
        },
        "days": [],
        "records": {"highestDayXP": 10, "mostWorkTimeInDay": 0, "mostPureTimeInDay": 0, "highestTaskXP": 0},
    })
    s = _reopen(workspace, clock)
    data = s.get_data()

    assert data.current_day.date == date(2026, 2, 11)
    assert [d.id for d in data.days] == ["2026-02-10"]
    assert data.records.highest_day_xp == 50
    assert data.records.most_work_time_in_day == 90
    assert data.streak == 3
    # unfinished plan item rolled forward
    assert [i.id for i in data.current_day.plan_items] == ["left"]
    assert data.current_day.plan_items[0].target_date == date(2026, 2, 11)
    assert data.total_xp == 50


def test_load_keeps_current_day(workspace, clock):
    write_blob(workspace, {
        "totalXP": 5,
        "currentDay": {"id": "2026-02-11", "date": "2026-02-11", "reflection": "still today"},
    })
    s = _reopen(workspace, clock)
    assert s.get_data().current_day.reflection == "still today"
    assert s.get_data().days == []


def test_load_corrupt_blob_starts_fresh(workspace, clock):
    (workspace / "planner" / "plan_tracker_data.json").write_text("{not json", encoding="utf-8")
    s = _reopen(workspace, clock)
    assert s.get_data().total_xp == 0


def test_flush_failure_keeps_state_dirty(store):
    store.add_xp(5)
    with patch.object(KeyValueStorage, "set", side_effect=OSError("disk full")):
        assert store.flush() is False
    assert store.dirty
    assert store.get_data().total_xp == 5
    assert store.flush() is True


def test_debounced_persist_coalesces(workspace, clock):
    s = ProgressStore(workspace, settings=Settings(persist_debounce_ms=50), clock=clock)
    s.load()
    s.start()
    try:
        with patch.object(s.storage, "set", wraps=s.storage.set) as write:
            for _ in range(5):
                s.add_xp(1)
            assert write.call_count == 0
            time.sleep(0.4)
            # one flush writes the progress blob and the project list
            assert write.call_count == 2
        assert read_blob(workspace)["totalXP"] == 5
        assert not s.dirty
    finally:
        s.close()


def test_pending_write_is_a_scheduler_job(workspace, clock):
    s = ProgressStore(workspace, settings=Settings(persist_debounce_ms=60_000), clock=clock)
    s.load()
    s.start()
    try:
        s.add_xp(1)
        s.add_xp(1)
        jobs = [job.id for job in s._scheduler.get_jobs()]
        assert jobs.count("persist") == 1
        assert s.dirty
    finally:
        s.close()
    assert not s.running
    assert read_blob(workspace)["totalXP"] == 2


def test_close_flushes(workspace, clock):
    s = _reopen(workspace, clock)
    s.start()
    s.add_xp(7)
    s.close()
    assert not s.running
    assert read_blob(workspace)["totalXP"] == 7


# ── Subscriptions ─────────────────────────────────────────────


def test_subscribe_and_unsubscribe(store):
    calls = []
    unsubscribe = store.subscribe(lambda: calls.append(store.get_data().total_xp))
    store.add_xp(3)
    assert calls == [3]
    unsubscribe()
    store.add_xp(3)
    assert calls == [3]


def test_noop_mutation_does_not_notify(store):
    calls = []
    store.subscribe(lambda: calls.append(1))
    assert store.remove_plan_item("missing") is False
    assert store.update_plan_item({"id": "missing"}) is None
    assert calls == []


def test_failing_listener_does_not_block_others(store):
    calls = []

    def boom():
        raise RuntimeError("render failed")

    store.subscribe(boom)
    store.subscribe(lambda: calls.append(1))
    store.add_xp(1)
    assert calls == [1]


def test_composite_mutation_notifies_once(store):
    item = store.add_plan_item(task())
    calls = []
    store.subscribe(lambda: calls.append(1))
    store.complete_plan_item(item.id, 45, is_pure=True)
    assert calls == [1]


def test_get_data_is_a_snapshot(store):
    snapshot = store.get_data()
    snapshot.total_xp = 999
    assert store.get_data().total_xp == 0


# ── XP / levels ───────────────────────────────────────────────


def test_add_xp_levels_up(store):
    store.add_xp(499)
    data = store.get_data()
    assert (data.current_level, data.next_level_xp) == (5, 500)
    store.add_xp(2)
    data = store.get_data()
    assert data.total_xp == 501
    assert (data.current_level, data.next_level_xp) == (6, 510)


def test_repeated_add_xp_matches_single_call(workspace, store, clock):
    for amount in [40, 75, 120, 3, 300]:
        store.add_xp(amount)
    other = ProgressStore(workspace / "other", settings=Settings(), clock=clock)
    other.add_xp(538)
    a, b = store.get_data(), other.get_data()
    assert (a.total_xp, a.current_level, a.next_level_xp) == (b.total_xp, b.current_level, b.next_level_xp)


def test_complete_plan_item(store):
    item = store.add_plan_item(task())
    fact = store.complete_plan_item(item.id, 45, is_pure=True)
    data = store.get_data()
    assert fact.xp_value == 16
    assert data.current_day.plan_items == []
    assert data.current_day.fact_items[0].id == fact.id
    assert data.total_xp == 16
    assert data.current_day.stats.day_xp == 16
    assert data.current_day.stats.day_minutes == 45
    assert data.current_day.stats.day_pure_minutes == 45
    assert data.records.highest_task_xp == 16


def test_add_fact_item_does_not_book_xp(store):
    fact = store.add_fact_item(task(columnOrigin="fact", taskQuality="D", priority=9), "130")
    data = store.get_data()
    assert fact.xp_value == 3
    assert data.total_xp == 0
    assert data.records.highest_task_xp == 3


def test_update_stats_coerces(store):
    store.update_stats("30", "x")
    stats = store.get_data().current_day.stats
    assert stats.day_minutes == 30
    assert stats.day_pure_minutes == 0


def test_repeat_failed_item(store):
    item = store.add_plan_item(task(estimatedMinutes="30"))
    retry = store.repeat_failed_item(item.id, 12)
    plan = store.get_data().current_day.plan_items
    assert [i.id for i in plan] == [retry.id]
    assert plan[0].estimated_minutes == 42


# ── Day transitions ───────────────────────────────────────────


def test_manual_transition_forfeits_day_xp(store, clock):
    store.add_xp(60)
    clock.set(utc(2026, 2, 12, 5, 0))
    store.check_day_transition()
    assert store.get_data().current_day.stats.day_xp == 0
    store.add_xp(40)
    data = store.get_data()
    assert (data.total_xp, data.current_level) == (100, 2)

    store.transition_to_new_day(is_automatic=False)
    data = store.get_data()
    assert data.total_xp == 60
    assert (data.current_level, data.next_level_xp) == (1, 100)
    assert data.streak == 1
    assert len(data.days) == 2


def test_manual_transition_floors_total_at_zero(store):
    store.add_xp(30)
    store.data.total_xp = 10
    store.transition_to_new_day(is_automatic=False)
    assert store.get_data().total_xp == 0


def test_automatic_transition_builds_streak(store, clock):
    for day in range(11, 14):
        store.add_xp(10)
        clock.set(utc(2026, 2, day + 1, 4, 1))
        assert store.check_day_transition() is not None
    data = store.get_data()
    assert data.streak == 3
    assert data.last_streak_date == date(2026, 2, 13)
    assert [d.id for d in data.days] == ["2026-02-13", "2026-02-12", "2026-02-11"]


def test_day_check_is_idempotent(store, clock):
    store.add_xp(10)
    clock.set(utc(2026, 2, 12, 4, 0))
    assert store.check_day_transition() is not None
    clock.advance(minutes=1)
    assert store.check_day_transition() is None
    clock.advance(minutes=1)
    assert store.check_day_transition() is None
    data = store.get_data()
    assert len(data.days) == 1
    assert data.streak == 1


def test_no_transition_before_boundary(store, clock):
    clock.set(utc(2026, 2, 12, 3, 59))
    assert store.check_day_transition() is None


def test_zero_xp_day_resets_streak(store, clock):
    store.data.streak = 4
    clock.set(utc(2026, 2, 12, 5, 0))
    store.check_day_transition()
    assert store.get_data().streak == 0


def test_gap_restarts_streak(store, clock):
    store.data.streak = 5
    store.data.last_streak_date = date(2026, 2, 8)
    store.add_xp(10)
    clock.set(utc(2026, 2, 12, 5, 0))
    store.check_day_transition()
    assert store.get_data().streak == 1


def test_records_cover_every_archived_day(store, clock):
    for day, xp in [(11, 30), (12, 80), (13, 20)]:
        store.add_xp(xp)
        store.update_stats(xp, xp // 2)
        clock.set(utc(2026, 2, day + 1, 4, 30))
        store.check_day_transition()
    data = store.get_data()
    assert data.records.highest_day_xp == 80
    assert all(data.records.highest_day_xp >= d.stats.day_xp for d in data.days)
    assert data.records.most_work_time_in_day == 80
    assert data.records.most_pure_time_in_day == 40


def test_transition_carries_pre_plan_forward(store, clock):
    later = store.add_pre_plan_item(task(description="friday"), "2026-02-13")
    tomorrow = store.add_pre_plan_item(task(description="thursday"), "2026-02-12")
    clock.set(utc(2026, 2, 12, 6, 0))
    store.check_day_transition()
    plan_ids = [i.id for i in store.get_data().current_day.plan_items]
    assert tomorrow.id in plan_ids
    assert later.id not in plan_ids
    assert [i.id for i in store.get_pre_planned_items("2026-02-13")] == [later.id]


def test_archived_day_stores_final_adherence(store, clock):
    done = store.add_pre_plan_item(task(), "2026-02-11")
    store.add_pre_plan_item(task(), "2026-02-11")
    store.complete_plan_item(done.id, 20)
    assert store.get_stats().plan_adherence == 50
    clock.set(utc(2026, 2, 12, 6, 0))
    store.check_day_transition()
    assert store.get_data().days[0].stats.plan_adherence == 50


# ── Pre-plan queries ──────────────────────────────────────────


def test_get_pre_planned_items_never_duplicates(store):
    store.add_plan_item(task())
    store.add_pre_plan_item(task(), "2026-02-11")
    found = store.get_pre_planned_items(date(2026, 2, 11))
    ids = [i.id for i in found]
    assert len(ids) == 2
    assert len(set(ids)) == len(ids)


def test_get_pre_planned_items_bad_date(store):
    assert store.get_pre_planned_items("not a date") == []


def test_get_pre_planned_items_past_dated_pre_plan(store):
    late = store.add_pre_plan_item(task(description="backfill"), "2026-02-09")
    assert [i.id for i in store.get_pre_planned_items(date(2026, 2, 9))] == [late.id]
    assert late.id not in [i.id for i in store.get_pre_planned_items(date(2026, 2, 11))]
    assert store.get_pre_planned_items(date(2026, 2, 10)) == []


def test_get_pre_planned_items_past_dated_survives_transition(store, clock):
    late = store.add_pre_plan_item(task(), "2026-02-09")
    clock.set(utc(2026, 2, 12, 6, 0))
    store.check_day_transition()
    assert [i.id for i in store.get_pre_planned_items("2026-02-09")] == [late.id]
    # still stored on the archived 2026-02-11 day, but not planned for it
    assert store.get_pre_planned_items("2026-02-11") == []


def test_get_pre_planned_items_yesterday_after_carry_over(store, clock):
    pre = store.add_pre_plan_item(task(description="planned ahead"), "2026-02-11")
    clock.set(utc(2026, 2, 12, 6, 0))
    store.check_day_transition()

    yesterday = store.get_pre_planned_items(date(2026, 2, 11))
    assert [i.id for i in yesterday] == [pre.id]
    today = [i.id for i in store.get_pre_planned_items(date(2026, 2, 12))]
    assert today == [pre.id]


def test_get_pre_planned_items_past_reads_leftovers(workspace, clock):
    s = ProgressStore(workspace, settings=Settings(carry_over_unfinished=False), clock=clock)
    s.load()
    left = s.add_plan_item(task(description="left behind"))
    clock.set(utc(2026, 2, 12, 6, 0))
    s.check_day_transition()
    assert s.get_data().current_day.plan_items == []
    assert [i.id for i in s.get_pre_planned_items(date(2026, 2, 11))] == [left.id]
    assert [i.id for i in s.get_pre_planned_items(date(2026, 2, 10))] == []


def test_get_pre_planned_items_future_dates(store, clock):
    fri = store.add_pre_plan_item(task(description="friday"), "2026-02-13")
    sat = store.add_pre_plan_item(task(description="saturday"), date(2026, 2, 14))
    store.add_plan_item(task(description="today"))
    assert [i.id for i in store.get_pre_planned_items(date(2026, 2, 13))] == [fri.id]
    assert [i.id for i in store.get_pre_planned_items("2026-02-14")] == [sat.id]
    assert store.get_pre_planned_items(date(2026, 2, 15)) == []

    clock.set(utc(2026, 2, 12, 6, 0))
    store.check_day_transition()
    assert [i.id for i in store.get_pre_planned_items(date(2026, 2, 13))] == [fri.id]


def test_get_estimated_minutes(store):
    store.add_plan_item(task(estimatedMinutes=30))
    store.add_pre_plan_item(task(estimatedMinutes=45), "2026-02-11")
    store.add_pre_plan_item(task(estimatedMinutes="120"), "2026-02-13")
    days = [date(2026, 2, 11), date(2026, 2, 12), date(2026, 2, 13)]
    assert store.get_estimated_minutes(days) == {
        date(2026, 2, 11): 75,
        date(2026, 2, 12): 0,
        date(2026, 2, 13): 120,
    }


# ── Reflection ────────────────────────────────────────────────


def test_reflection_bonus_and_prompt(store, clock):
    clock.set(utc(2026, 2, 11, 21, 0))
    assert store.should_show_reflection() is True
    store.add_reflection("Solid day.")
    data = store.get_data()
    assert data.current_day.reflection == "Solid day."
    assert data.total_xp == 2
    assert store.should_show_reflection() is False
    store.add_reflection("Edited.")
    assert store.get_data().total_xp == 4
    clock.set(utc(2026, 2, 12, 9, 0))
    assert store.should_show_reflection() is True


def test_dismiss_reflection(store, clock):
    clock.set(utc(2026, 2, 11, 21, 0))
    store.dismiss_reflection()
    assert store.should_show_reflection() is False
    assert store.get_data().total_xp == 0


# ── Projects ──────────────────────────────────────────────────


def test_project_ledger_follows_facts(store):
    book = store.add_project("Book")
    store.select_project(book.id)
    item = store.add_plan_item(task())
    assert item.project_id == book.id
    store.complete_plan_item(item.id, 45, is_pure=True)

    store.select_project("all-projects")
    loose = store.add_plan_item(task(taskQuality="D", priority=9))
    store.complete_plan_item(loose.id, 10)

    by_id = {p.id: p for p in store.get_projects()}
    assert by_id[book.id].current_xp == 16
    assert by_id["other-projects"].current_xp == 3
    assert by_id["all-projects"].current_xp == 19


def test_delete_selected_project_falls_back(store):
    p = store.add_project("Temp")
    store.select_project(p.id)
    assert store.delete_project(p.id) is True
    assert store.selected_project_id == "all-projects"
    assert store.delete_project("all-projects") is False
    assert store.select_project("ghost") is None


def test_save_projects_keeps_reserved(workspace, store):
    store.save_projects([{"id": "a", "name": "A"}])
    assert [p.id for p in store.get_projects()] == ["all-projects", "a", "other-projects"]
    store.flush()
    saved = json.loads((workspace / "planner" / "plan_tracker_projects.json").read_text())
    assert {p["id"] for p in saved} == {"a", "all-projects", "other-projects"}


# ── Reset / stats ─────────────────────────────────────────────


def test_clear_all_data(store, clock):
    store.add_project("Book")
    store.add_xp(250)
    clock.set(utc(2026, 2, 12, 5, 0))
    store.check_day_transition()
    store.clear_all_data()
    data = store.get_data()
    assert data.total_xp == 0
    assert data.days == []
    assert data.streak == 0
    assert data.current_day.date == date(2026, 2, 12)
    assert [p.id for p in store.get_projects()] == ["all-projects", "other-projects"]


def test_get_stats(store):
    item = store.add_plan_item(task())
    store.complete_plan_item(item.id, 45, is_pure=True)
    stats = store.get_stats().to_dict()
    assert stats["currentXP"] == 16
    assert stats["todayXP"] == 16
    assert stats["todayMinutes"] == 45
    assert stats["todayPureMinutes"] == 45
    assert stats["streak"] == 0
    assert stats["levelProgress"] == 16.0


def test_get_stats_level_progress(store):
    store.add_xp(150)
    stats = store.get_stats()
    assert (stats.current_level, stats.next_level_xp) == (2, 200)
    assert stats.level_progress == 50.0


def test_clock_injection_uses_settings_timezone(workspace):
    s = ProgressStore(workspace, settings=Settings(timezone="Asia/Tokyo"))
    assert s.now().utcoffset().total_seconds() == 9 * 3600


def test_store_reads_profile_settings(workspace):
    (workspace / "planner" / "profile.yaml").write_text("day_start_hour: 6\n", encoding="utf-8")
    s = ProgressStore(workspace, clock=FakeClock(utc(2026, 2, 12, 5, 0)))
    assert s.settings.day_start_hour == 6
    assert s.today() == date(2026, 2, 11)
