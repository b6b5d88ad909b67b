"""
campushub.services.notification_service — Notification Seam
=============================================================

Lifecycle changes (registration, cancellation, check-in, task completion)
produce a notification *after* their transaction commits.  Delivery is
somebody else's job: the API schedules :func:`dispatch` as a FastAPI
background task, and a failing notifier is logged, never propagated.  The
state change that triggered it always stands.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NotificationKind(enum.StrEnum):
    REGISTERED = "registered"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    TASK_COMPLETED = "task-completed"


class Notifier(Protocol):
    def send(self, kind: str, member_id: int, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier: writes one INFO line per notification."""

    def send(self, kind: str, member_id: int, payload: dict[str, Any]) -> None:
        logger.info("Notify member %d [%s]: %s", member_id, kind, payload)


def dispatch(
    notifier: Notifier,
    kind: NotificationKind | str,
    member_id: int,
    payload: dict[str, Any] | None = None,
) -> bool:
    """Deliver one notification.  Returns False if the notifier failed."""
    try:
        notifier.send(str(kind), member_id, payload or {})
    except Exception:
        logger.warning(
            "Notifier failed for member %d [%s]", member_id, kind, exc_info=True,
        )
        return False
    return True
