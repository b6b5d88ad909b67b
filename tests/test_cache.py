"""
tests/test_cache.py — ConfigCache & Settings Service
======================================================
Typed accessors, seeding, and cache reload after an admin edit.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from campushub.constants import ATTENDANCE_POINTS_KEY, LEADERBOARD_MAX_LIMIT_KEY
from campushub.database.models import AdminLog, Setting
from campushub.database.seed import DEFAULT_SETTINGS, seed_default_settings
from campushub.engine.cache import ConfigCache
from campushub.errors import Forbidden, ValidationError
from campushub.services import settings_service


class TestTypedAccessors:
    """Accessors work on the in-memory dict; no DB needed."""

    @pytest.fixture
    def cache(self):
        c = ConfigCache(MagicMock())
        c._settings = {"int": "42", "name": "GDG", "junk": "abc"}
        return c

    def test_get_int_coerces(self, cache):
        assert cache.get_int("int") == 42

    def test_get_int_falls_back_on_junk(self, cache):
        assert cache.get_int("junk", 7) == 7

    def test_missing_key_returns_default(self, cache):
        assert cache.get_int("nope", 3) == 3
        assert cache.get_setting("nope") is None

    def test_get_setting_returns_raw_value(self, cache):
        assert cache.get_setting("name") == "GDG"
        assert cache.get_setting("int") == "42"


class TestSeeding:
    def test_defaults_loaded(self, engine):
        cache = ConfigCache(engine)
        cache.load_all()
        assert cache.get_int(ATTENDANCE_POINTS_KEY) == 50
        assert cache.get_int(LEADERBOARD_MAX_LIMIT_KEY) == 100
        assert all(cache.get_setting(key) is not None for key in DEFAULT_SETTINGS)

    def test_seed_never_overwrites(self, engine):
        with Session(engine) as session:
            session.get(Setting, ATTENDANCE_POINTS_KEY).value_json = "75"
            session.commit()
        seed_default_settings(engine)
        with Session(engine) as session:
            assert session.get(Setting, ATTENDANCE_POINTS_KEY).value_json == "75"


class TestSettingsService:
    def test_upsert_invalidates_cache_and_audits(self, engine, admin):
        cache = ConfigCache(engine)
        cache.load_all()

        settings_service.upsert_setting(
            engine, admin, key=ATTENDANCE_POINTS_KEY, value=80,
            category="gamification", cache=cache,
        )

        assert cache.get_int(ATTENDANCE_POINTS_KEY) == 80
        with Session(engine) as session:
            log = session.scalars(select(AdminLog)).one()
        assert log.action_type == "UPDATE"
        assert log.before_snapshot["value"] == 50
        assert log.after_snapshot["value"] == 80

    def test_unchanged_value_is_not_audited(self, engine, admin):
        settings_service.bulk_upsert(
            engine, admin, [{"key": ATTENDANCE_POINTS_KEY, "value": 50}],
        )
        with Session(engine) as session:
            assert session.scalars(select(AdminLog)).all() == []

    def test_new_key_logged_as_create(self, engine, admin):
        count = settings_service.bulk_upsert(
            engine, admin, [{"key": "community.banner", "value": "Welcome!"}],
        )
        assert count == 1
        values = {s["key"]: s["value"] for s in settings_service.get_all_settings(engine)}
        assert values["community.banner"] == "Welcome!"
        with Session(engine) as session:
            assert session.scalars(select(AdminLog.action_type)).one() == "CREATE"

    def test_missing_value_rejected(self, engine, admin):
        with pytest.raises(ValidationError):
            settings_service.bulk_upsert(engine, admin, [{"key": "x"}])

    def test_non_admin_rejected(self, engine, leader):
        with pytest.raises(Forbidden):
            settings_service.bulk_upsert(engine, leader, [{"key": "x", "value": 1}])

    def test_invalidate_reloads(self, engine):
        cache = ConfigCache(engine)
        with patch.object(cache, "_load_settings") as mock_load:
            cache.invalidate()
        mock_load.assert_called_once()
