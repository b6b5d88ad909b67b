"""
campushub.database.seed — Default Settings Seeder
===================================================

Baseline gamification and leaderboard settings seeded on first startup so
awards and rankings work before an admin has touched anything.

Idempotent: only inserts keys that don't already exist.  Values edited by
admins are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from campushub.constants import (
    ATTENDANCE_POINTS_KEY,
    DEFAULT_ATTENDANCE_POINTS,
    DEFAULT_BADGE_POINTS,
    DEFAULT_BADGE_POINTS_KEY,
    DEFAULT_TASK_POINTS,
    DEFAULT_TASK_POINTS_KEY,
    LEADERBOARD_DEFAULT_LIMIT_KEY,
    LEADERBOARD_MAX_LIMIT_KEY,
)
from campushub.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    ATTENDANCE_POINTS_KEY: (
        DEFAULT_ATTENDANCE_POINTS, "gamification", "Points awarded for attending an event",
    ),
    DEFAULT_TASK_POINTS_KEY: (
        DEFAULT_TASK_POINTS, "gamification", "Points for a task created without an explicit value",
    ),
    DEFAULT_BADGE_POINTS_KEY: (
        DEFAULT_BADGE_POINTS, "gamification", "Points for a badge created without an explicit value",
    ),
    LEADERBOARD_DEFAULT_LIMIT_KEY: (10, "leaderboard", "Rows returned when no limit is given"),
    LEADERBOARD_MAX_LIMIT_KEY: (100, "leaderboard", "Largest limit a caller may request"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
