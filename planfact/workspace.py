"""Workspace root, settings, timezone and path helpers for PlanFact."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from planfact.fileio import read_yaml, write_yaml_atomic
from planfact.models import Settings

logger = logging.getLogger(__name__)


def workspace_root() -> Path:
    """Get the workspace root directory (contains planner/)."""
    return Path(
        os.environ.get("PLANFACT_ROOT", str(Path.home() / "planfact"))
    ).expanduser().resolve()


def storage_dir(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "planner"


def profile_path(root: Path | None = None) -> Path:
    return storage_dir(root) / "profile.yaml"


def load_settings(root: Path | None = None) -> Settings:
    """Load settings from planner/profile.yaml, falling back to defaults."""
    path = profile_path(root)
    try:
        return Settings.from_dict(read_yaml(path))
    except Exception:
        logger.warning("Could not read %s; using default settings", path, exc_info=True)
        return Settings()


def save_settings(settings: Settings, root: Path | None = None) -> None:
    write_yaml_atomic(profile_path(root), settings.to_dict())


def get_timezone(settings: Settings) -> ZoneInfo:
    """Resolve the configured timezone, defaulting to UTC."""
    try:
        return ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC", settings.timezone)
        return ZoneInfo("UTC")
