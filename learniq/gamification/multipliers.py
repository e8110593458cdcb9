"""
Multiplier and level curves.

Step tables are plain data so deployments and tests can substitute their own.
"""

import bisect
import math
from typing import Iterable, Tuple

MAX_LEVEL = 100
POINTS_PER_LEVEL_UNIT = 100


class StepTable:
    """
    Monotonic step lookup: value of the highest threshold <= key.

    >>> StepTable([(0, 1.0), (3, 1.1)]).lookup(5)
    1.1
    """

    def __init__(self, steps: Iterable[Tuple[int, float]]):
        ordered = sorted(steps)
        if not ordered:
            raise ValueError("StepTable needs at least one step")
        values = [value for _, value in ordered]
        if any(later < earlier for earlier, later in zip(values, values[1:])):
            raise ValueError("StepTable values must not decrease")
        self._thresholds = [threshold for threshold, _ in ordered]
        self._values = values

    def lookup(self, key: int) -> float:
        index = bisect.bisect_right(self._thresholds, key) - 1
        return self._values[max(index, 0)]

    def __repr__(self) -> str:
        return f"StepTable({list(zip(self._thresholds, self._values))})"


DEFAULT_STREAK_MULTIPLIERS = StepTable([
    (0, 1.0),
    (3, 1.1),
    (7, 1.2),
    (14, 1.3),
    (30, 1.5),
])

DEFAULT_LEVEL_MULTIPLIERS = StepTable([
    (1, 1.0),
    (5, 1.05),
    (10, 1.1),
    (20, 1.2),
])


def points_for_level(level: int) -> int:
    """Total points needed to reach ``level``."""
    return (level - 1) ** 2 * POINTS_PER_LEVEL_UNIT


def level_for_points(total_points: int) -> int:
    """Largest level in 1..100 whose requirement is met by ``total_points``."""
    if total_points <= 0:
        return 1
    level = math.isqrt(total_points // POINTS_PER_LEVEL_UNIT) + 1
    return min(level, MAX_LEVEL)


def points_to_next_level(total_points: int) -> int:
    level = level_for_points(total_points)
    if level >= MAX_LEVEL:
        return 0
    return points_for_level(level + 1) - total_points


def award_amount(base_points: int, streak_multiplier: float, level_multiplier: float) -> int:
    """floor(base × streak × level), guarded against float error just below an integer."""
    return math.floor(round(base_points * streak_multiplier * level_multiplier, 9))
