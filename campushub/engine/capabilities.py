"""
campushub.engine.capabilities — Actor & Capability Checks
==========================================================

Every guarded operation states once which capability it requires::

    require(actor, Capability.OWNER, Capability.OPERATOR, owner_id=reg.member_id)

instead of repeating role comparisons at each call site.  Capabilities are
derived from the actor's role plus its relationship to the target row:

* ``ADMIN``     — role ``admin``
* ``OPERATOR``  — role ``admin`` or ``leader`` (attendance, confirmation)
* ``OWNER``     — the actor is the member the row belongs to
* ``ASSIGNEE``  — the actor is assigned to the task
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

from campushub.database.models import Role
from campushub.errors import Forbidden


class Capability(enum.StrEnum):
    ADMIN = "admin"
    OPERATOR = "operator"
    OWNER = "owner"
    ASSIGNEE = "assignee"


OPERATOR_ROLES: frozenset[str] = frozenset({Role.ADMIN, Role.LEADER})


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated caller of an operation."""

    member_id: int
    role: str = Role.MEMBER.value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_operator(self) -> bool:
        return self.role in OPERATOR_ROLES


def capabilities_of(
    actor: Actor,
    *,
    owner_id: int | None = None,
    assignee_ids: Iterable[int] = (),
) -> frozenset[Capability]:
    """Return every capability *actor* holds with respect to one target row."""
    caps: set[Capability] = set()
    if actor.is_admin:
        caps.add(Capability.ADMIN)
    if actor.is_operator:
        caps.add(Capability.OPERATOR)
    if owner_id is not None and owner_id == actor.member_id:
        caps.add(Capability.OWNER)
    if actor.member_id in set(assignee_ids):
        caps.add(Capability.ASSIGNEE)
    return frozenset(caps)


def require(
    actor: Actor,
    *allowed: Capability,
    owner_id: int | None = None,
    assignee_ids: Iterable[int] = (),
    action: str | None = None,
) -> Capability:
    """Return the first capability in *allowed* that *actor* holds.

    Raises
    ------
    Forbidden
        If the actor holds none of them.
    """
    held = capabilities_of(actor, owner_id=owner_id, assignee_ids=assignee_ids)
    for cap in allowed:
        if cap in held:
            return cap
    needed = " or ".join(c.value for c in allowed)
    what = f" to {action}" if action else ""
    raise Forbidden(f"Requires {needed} capability{what}")
