"""
campushub.engine.lifecycle — Registration & Task Transition Tables
===================================================================

Registrations::

    registered → confirmed → attended
    registered | confirmed → cancelled
    registered | confirmed → no-show

Tasks::

    todo → in-progress → review → completed
    in-progress → completed
    todo | in-progress | review → cancelled

Services perform transitions as conditional updates
(``UPDATE … WHERE status IN (sources)``); the tables here supply the
source sets for those updates.
"""

from __future__ import annotations

from campushub.database.models import RegistrationStatus as RS
from campushub.database.models import TaskStatus as TS

REGISTRATION_TRANSITIONS: dict[str, frozenset[str]] = {
    RS.REGISTERED: frozenset({RS.CONFIRMED, RS.CANCELLED, RS.ATTENDED, RS.NO_SHOW}),
    RS.CONFIRMED: frozenset({RS.CANCELLED, RS.ATTENDED, RS.NO_SHOW}),
    RS.CANCELLED: frozenset(),
    RS.ATTENDED: frozenset(),
    RS.NO_SHOW: frozenset(),
}

TASK_TRANSITIONS: dict[str, frozenset[str]] = {
    TS.TODO: frozenset({TS.IN_PROGRESS, TS.CANCELLED}),
    TS.IN_PROGRESS: frozenset({TS.REVIEW, TS.COMPLETED, TS.CANCELLED}),
    TS.REVIEW: frozenset({TS.COMPLETED, TS.CANCELLED}),
    TS.COMPLETED: frozenset(),
    TS.CANCELLED: frozenset(),
}

TERMINAL_TASK_STATES: frozenset[str] = frozenset({TS.COMPLETED, TS.CANCELLED})


def _sources(table: dict[str, frozenset[str]], target: str) -> frozenset[str]:
    return frozenset(src for src, targets in table.items() if target in targets)


def registration_sources(target: str) -> frozenset[str]:
    """Statuses a registration may move to *target* from."""
    return _sources(REGISTRATION_TRANSITIONS, target)


def task_sources(target: str) -> frozenset[str]:
    """Statuses a task may move to *target* from."""
    return _sources(TASK_TRANSITIONS, target)

