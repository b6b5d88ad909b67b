"""
campushub.engine.cache — In-Memory Settings Cache
==================================================

Gamification tuning values (attendance points, default task points,
leaderboard limits) are read on every award and every leaderboard query.
They are cached in memory and reloaded after an admin edit through
:meth:`ConfigCache.invalidate`.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from campushub.database.models import Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory cache for the ``settings`` table.

    Usage:
        cache = ConfigCache(engine)
        cache.load_all()

        pts = cache.get_int("gamification.attendance_points", default=50)
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every setting from the DB.  Call on startup."""
        self._load_settings()
        logger.info("ConfigCache loaded: %d settings", len(self._settings))

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed

    def invalidate(self) -> None:
        """Reload after a write to the ``settings`` table."""
        logger.info("Config cache invalidation for table: settings")
        self._load_settings()

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default
