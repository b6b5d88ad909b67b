"""
campushub.engine.points — Balance & Level Arithmetic
=====================================================

Pure calculation helpers for the points ledger.
No DB I/O inside the engine; :mod:`campushub.services.points_service`
persists the results.

A member's level is always derived from their balance::

    level = floor(points / 200) + 1

and a balance never drops below zero.  Both values are computed together
here so a caller can never store one without the other.
"""

from __future__ import annotations

from dataclasses import dataclass

from campushub.constants import POINTS_PER_LEVEL
from campushub.database.models import AwardReason

__all__ = [
    "AwardReason",
    "BalanceChange",
    "apply_delta",
    "level_for_points",
]


@dataclass(frozen=True, slots=True)
class BalanceChange:
    """Outcome of applying one delta to a balance."""

    previous_points: int
    previous_level: int
    points: int
    level: int

    @property
    def applied_delta(self) -> int:
        """Delta actually applied after clamping at zero."""
        return self.points - self.previous_points

    @property
    def leveled_up(self) -> bool:
        return self.level > self.previous_level


def level_for_points(points: int) -> int:
    """Return the level for a balance of *points* (minimum 1)."""
    return max(points, 0) // POINTS_PER_LEVEL + 1


def apply_delta(points: int, delta: int) -> BalanceChange:
    """Apply *delta* to *points*, clamping the result at zero.

    >>> apply_delta(190, 50).level
    2
    >>> apply_delta(30, -100).points
    0
    """
    new_points = max(points + delta, 0)
    return BalanceChange(
        previous_points=points,
        previous_level=level_for_points(points),
        points=new_points,
        level=level_for_points(new_points),
    )
