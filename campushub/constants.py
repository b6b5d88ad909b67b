"""
campushub.constants — Shared Constants & Helpers
=================================================

Single source of truth for the leveling step, role groupings and the
canonical status vocabularies.  Import from here instead of duplicating
string literals in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Leveling: one level per POINTS_PER_LEVEL points, starting at level 1
# ---------------------------------------------------------------------------
POINTS_PER_LEVEL = 200

# ---------------------------------------------------------------------------
# Setting keys (values live in the ``settings`` table)
# ---------------------------------------------------------------------------
ATTENDANCE_POINTS_KEY = "gamification.attendance_points"
DEFAULT_TASK_POINTS_KEY = "gamification.default_task_points"
DEFAULT_BADGE_POINTS_KEY = "gamification.default_badge_points"
LEADERBOARD_DEFAULT_LIMIT_KEY = "leaderboard.default_limit"
LEADERBOARD_MAX_LIMIT_KEY = "leaderboard.max_limit"

DEFAULT_ATTENDANCE_POINTS = 50
DEFAULT_TASK_POINTS = 10
DEFAULT_BADGE_POINTS = 50

# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------
MIN_RATING = 1
MAX_RATING = 5

# ---------------------------------------------------------------------------
# Ledger source keys: one award per (member, source_key)
# ---------------------------------------------------------------------------
def registration_source_key(registration_id: int) -> str:
    return f"registration:{registration_id}"


def task_source_key(task_id: int) -> str:
    return f"task:{task_id}"


def badge_source_key(badge_id: int) -> str:
    return f"badge:{badge_id}"
