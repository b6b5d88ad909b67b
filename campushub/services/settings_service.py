"""
campushub.services.settings_service — Settings CRUD
=====================================================

Typed read/write access to the ``settings`` table.  Every write is
recorded in ``admin_log`` and the caller's
:class:`~campushub.engine.cache.ConfigCache` is reloaded afterwards so new
values reach the points ledger and leaderboard on the next request.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from campushub.database.models import AdminActionType, Setting
from campushub.engine.capabilities import Actor, Capability, require
from campushub.errors import ValidationError
from campushub.services.admin_service import log_admin_action

if TYPE_CHECKING:
    from campushub.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def _snapshot(row: Setting | None) -> dict | None:
    if row is None:
        return None
    try:
        value = json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        value = row.value_json
    return {
        "key": row.key,
        "value": value,
        "category": row.category,
        "description": row.description,
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_all_settings(engine: Engine) -> list[dict]:
    """Every setting as a plain dict, ordered by category then key."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        return [_snapshot(r) for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def bulk_upsert(
    engine: Engine,
    actor: Actor,
    settings: list[dict],
    *,
    cache: ConfigCache | None = None,
) -> int:
    """Upsert many settings at once.  Admin only.

    Each dict needs ``key`` and ``value``; ``category`` and ``description``
    are optional.  Each actual change is logged with before/after
    snapshots.  Returns the number of rows touched.
    """
    require(actor, Capability.ADMIN, action="edit settings")
    for item in settings:
        if not item.get("key") or "value" not in item:
            raise ValidationError("Each setting needs a 'key' and a 'value'")

    count = 0
    with Session(engine) as session:
        for item in settings:
            key = item["key"]
            existing = session.get(Setting, key)
            before = _snapshot(existing)

            if existing:
                existing.value_json = json.dumps(item["value"])
                if "category" in item:
                    existing.category = item["category"]
                if "description" in item:
                    existing.description = item["description"]
            else:
                existing = Setting(
                    key=key,
                    value_json=json.dumps(item["value"]),
                    category=item.get("category", "general"),
                    description=item.get("description"),
                )
                session.add(existing)

            after = _snapshot(existing)
            if before != after:
                log_admin_action(
                    session,
                    actor_id=actor.member_id,
                    action_type=AdminActionType.UPDATE if before else AdminActionType.CREATE,
                    target_table="settings",
                    target_id=key,
                    before=before,
                    after=after,
                )
            count += 1
        session.commit()

    logger.info("Admin %d updated %d settings", actor.member_id, count)
    if cache is not None:
        cache.invalidate()
    return count


def upsert_setting(
    engine: Engine,
    actor: Actor,
    *,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
    cache: ConfigCache | None = None,
) -> None:
    """Insert or update a single setting."""
    item: dict[str, Any] = {"key": key, "value": value, "category": category}
    if description is not None:
        item["description"] = description
    bulk_upsert(engine, actor, [item], cache=cache)
