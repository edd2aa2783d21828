"""Level thresholds and level recomputation for cumulative XP."""

from __future__ import annotations


def next_level_threshold(level: int) -> int:
    """Total XP needed to advance past *level*.

    100 XP per level up to level 5, then +10 per level after that.
    """
    if level <= 5:
        return level * 100
    return 500 + (level - 5) * 10


def previous_level_threshold(level: int) -> int:
    """Total XP at which *level* was reached (0 for level 1)."""
    if level <= 1:
        return 0
    return next_level_threshold(level - 1)


def apply_xp_gain(total_xp: int, level: int) -> tuple[int, int]:
    """Climb levels while *total_xp* meets the threshold. Returns (level, next_level_xp)."""
    level = max(1, level)
    threshold = next_level_threshold(level)
    while total_xp >= threshold:
        level += 1
        threshold = next_level_threshold(level)
    return level, threshold


def apply_xp_loss(total_xp: int, level: int) -> tuple[int, int]:
    """Descend levels while *total_xp* is below the current level's floor."""
    level = max(1, level)
    while level > 1 and total_xp < previous_level_threshold(level):
        level -= 1
    return level, next_level_threshold(level)


def level_for_total(total_xp: int) -> tuple[int, int]:
    """Level and next threshold for *total_xp* counted from zero."""
    return apply_xp_gain(max(0, total_xp), 1)


def level_progress_pct(total_xp: int, level: int) -> float:
    """Progress from the current level's floor to the next threshold, 0-100."""
    floor = previous_level_threshold(level)
    span = next_level_threshold(level) - floor
    if span <= 0:
        return 0.0
    return round(min(100.0, max(0.0, (total_xp - floor) * 100 / span)), 1)
