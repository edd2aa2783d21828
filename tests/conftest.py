"""Shared test fixtures for PlanFact tests."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from planfact.models import Settings
from planfact.store import ProgressStore


class FakeClock:
    """Settable clock handed to the store in place of datetime.now."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with a profile."""
    root = tmp_path / "workspace"
    (root / "planner").mkdir(parents=True)

    profile = {
        "timezone": "UTC",
        "day_start_hour": 4,
        "persist_debounce_ms": 100,
        "autosave_seconds": 5,
        "day_check_seconds": 60,
        "carry_over_unfinished": True,
        "reflection_bonus_xp": 2,
    }
    (root / "planner" / "profile.yaml").write_text(
        yaml.dump(profile, default_flow_style=False), encoding="utf-8"
    )

    os.environ["PLANFACT_ROOT"] = str(root)
    yield root
    if "PLANFACT_ROOT" in os.environ:
        del os.environ["PLANFACT_ROOT"]


@pytest.fixture
def clock() -> FakeClock:
    # Wednesday afternoon
    return FakeClock(utc(2026, 2, 11, 14, 0))


@pytest.fixture
def store(workspace: Path, clock: FakeClock) -> ProgressStore:
    s = ProgressStore(workspace, settings=Settings(), clock=clock)
    s.load()
    yield s
    s.close()


def write_blob(root: Path, data: dict) -> None:
    (root / "planner" / "plan_tracker_data.json").write_text(
        json.dumps(data, indent=2), encoding="utf-8"
    )


def read_blob(root: Path, key: str = "plan_tracker_data"):
    return json.loads((root / "planner" / f"{key}.json").read_text(encoding="utf-8"))


def task(**overrides) -> dict:
    data = {
        "description": "Write report",
        "timeType": "to-goal",
        "taskQuality": "A",
        "priority": 1,
        "estimatedMinutes": 60,
    }
    data.update(overrides)
    return data
