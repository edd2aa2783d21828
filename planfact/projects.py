"""Project ledger: per-project XP and levels derived from completed work."""

from __future__ import annotations

import re
import uuid
from collections import defaultdict
from typing import Any, Iterable

from planfact.leveling import level_for_total
from planfact.models import (
    ALL_PROJECTS_ID,
    OTHER_PROJECTS_ID,
    Item,
    Project,
)

DEFAULT_NAMES = {
    ALL_PROJECTS_ID: "All projects",
    OTHER_PROJECTS_ID: "Other projects",
}


def default_projects() -> list[Project]:
    return [Project(id=pid, name=name) for pid, name in DEFAULT_NAMES.items()]


def load_projects(raw: Any) -> list[Project]:
    """Build the project list from stored data, restoring reserved entries."""
    projects = []
    seen: set[str] = set()
    for entry in raw if isinstance(raw, list) else []:
        project = Project.from_dict(entry)
        if not project.id or project.id in seen:
            continue
        seen.add(project.id)
        projects.append(project)
    for pid, name in DEFAULT_NAMES.items():
        if pid not in seen:
            projects.append(Project(id=pid, name=name))
    return projects


def find_project(projects: list[Project], project_id: str) -> Project | None:
    for p in projects:
        if p.id == project_id:
            return p
    return None


def _slug(name: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return s or "project"


def add_project(projects: list[Project], name: str) -> Project | None:
    """Append a new empty project. Blank names are ignored."""
    name = (name or "").strip()
    if not name:
        return None
    project_id = f"{_slug(name)}-{uuid.uuid4().hex[:8]}"
    project = Project(id=project_id, name=name)
    projects.append(project)
    return project


def delete_project(projects: list[Project], project_id: str) -> bool:
    """Remove a project. Reserved projects cannot be deleted."""
    for i, p in enumerate(projects):
        if p.id == project_id and not p.is_reserved:
            projects.pop(i)
            return True
    return False


def recompute_projects(projects: list[Project], fact_items: Iterable[Item]) -> list[Project]:
    """Re-derive XP, level and task ids of every project from *fact_items*.

    Items without a project, or tagged with one that no longer exists, count
    toward the catch-all bucket. The aggregate entry counts every item.
    """
    known = {p.id for p in projects}
    xp: dict[str, int] = defaultdict(int)
    task_ids: dict[str, list[str]] = defaultdict(list)
    for item in fact_items:
        pid = item.project_id
        if not pid or pid not in known or pid == ALL_PROJECTS_ID:
            pid = OTHER_PROJECTS_ID
        xp[pid] += item.xp_value
        task_ids[pid].append(item.id)
        xp[ALL_PROJECTS_ID] += item.xp_value
        task_ids[ALL_PROJECTS_ID].append(item.id)

    for project in projects:
        project.current_xp = xp.get(project.id, 0)
        project.current_level, project.next_level_xp = level_for_total(project.current_xp)
        project.task_ids = task_ids.get(project.id, [])
    return projects


def sort_projects(projects: list[Project]) -> list[Project]:
    """Aggregate first, then regular projects by level and XP, then the catch-all."""
    head = [p for p in projects if p.id == ALL_PROJECTS_ID]
    tail = [p for p in projects if p.id == OTHER_PROJECTS_ID]
    regular = sorted(
        (p for p in projects if not p.is_reserved),
        key=lambda p: (p.current_level, p.current_xp),
        reverse=True,
    )
    return head + regular + tail
