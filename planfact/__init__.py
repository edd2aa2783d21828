"""PlanFact core library: the persistent progression store and its engines.

Public API re-exports for convenient imports:
    from planfact import ProgressStore, open_store, score_task, ...
"""

# Workspace & settings
from planfact.workspace import (
    workspace_root,
    storage_dir,
    profile_path,
    load_settings,
    save_settings,
    get_timezone,
)

# File I/O
from planfact.fileio import (
    KeyValueStorage,
    read_json,
    read_yaml,
    write_json_atomic,
    write_yaml_atomic,
)

# Engines
from planfact.xp import score_task, explain_task_xp
from planfact.leveling import (
    next_level_threshold,
    previous_level_threshold,
    apply_xp_gain,
    apply_xp_loss,
    level_for_total,
)
from planfact.daytime import (
    logical_date,
    day_window,
    is_current,
    new_day,
    ensure_current_day,
    should_show_reflection,
)
from planfact.adherence import compute_plan_adherence
from planfact.projects import recompute_projects, sort_projects
from planfact.analytics import compute_summary

# Store
from planfact.store import ProgressStore, STORAGE_KEY, PROJECTS_KEY
from planfact.app import open_store, setup_logging

# Models
from planfact.models import (
    Settings,
    Item,
    Day,
    DayStats,
    Records,
    Progress,
    Project,
    XPBreakdown,
    DashboardStats,
    AnalyticsSummary,
)
