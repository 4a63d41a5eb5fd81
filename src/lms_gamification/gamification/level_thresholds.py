"""Level thresholds: exponential XP curve.

``xp_threshold(n)`` is the XP a user must accumulate while at level ``n - 1``
to enter level ``n``: ``floor(base * growth ** (n - 2))``. With the default
base 100 and growth 1.5 that gives 100 (to reach level 2), 150 (level 3),
225 (level 4), 337 (level 5), ...

A user at level ``n`` therefore always carries
``xp_to_next_level == xp_threshold(n + 1)``; new users start with
``xp_threshold(2)``.
"""

from __future__ import annotations

import math

DEFAULT_BASE_XP = 100
DEFAULT_GROWTH = 1.5


def xp_threshold(level: int, base: int = DEFAULT_BASE_XP, growth: float = DEFAULT_GROWTH) -> int:
    """XP required to enter ``level`` from the level below it. Always >= 1."""
    if level < 1:
        msg = f"Level must be >= 1, got {level}"
        raise ValueError(msg)
    return max(1, math.floor(base * growth ** (level - 2)))


def level_progress(current_xp: int, xp_to_next_level: int) -> float:
    """Percent progress toward the next level, rounded to two decimals."""
    if xp_to_next_level <= 0:
        return 0.0
    return round(min(current_xp / xp_to_next_level, 1.0) * 100, 2)


def level_table(max_level: int = 50, base: int = DEFAULT_BASE_XP, growth: float = DEFAULT_GROWTH) -> list[dict]:
    """Levels 1..max_level with the XP each one needs and the cumulative XP to reach it."""
    rows = [{"level": 1, "xp_required": 0, "cumulative": 0}]
    cumulative = 0
    for level in range(2, max_level + 1):
        required = xp_threshold(level, base, growth)
        cumulative += required
        rows.append({"level": level, "xp_required": required, "cumulative": cumulative})
    return rows
