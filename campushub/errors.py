"""
campushub.errors — Error Taxonomy
==================================

Every rejection the core can produce is an explicit, typed outcome:

* :class:`BusinessRuleRejection` — the request is well-formed but a rule
  forbids it (seat limit, duplicate registration, missing capability,
  illegal transition).  Reported to the caller, never retried.
* :class:`NotFound` — a referenced row does not exist.  Client error.
* :class:`ValidationError` — the input itself is malformed.
* :class:`ConsistencyViolation` — stored state contradicts an invariant.
  A defect; logged and, where possible, repaired by recomputation.

Infrastructure failures (database unavailable) are *not* wrapped; the
SQLAlchemy exception propagates so the transport layer can decide whether
to retry.
"""

from __future__ import annotations


class CampusHubError(Exception):
    """Base class for all domain errors."""

    code = "error"
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Business-rule rejections
# ---------------------------------------------------------------------------
class BusinessRuleRejection(CampusHubError):
    code = "rejected"


class EventFull(BusinessRuleRejection):
    code = "event_full"
    default_message = "Event is full"


class AlreadyRegistered(BusinessRuleRejection):
    code = "already_registered"
    default_message = "Already registered for this event"


class EventClosed(BusinessRuleRejection):
    code = "event_closed"
    default_message = "Event is not open for registration"


class Forbidden(BusinessRuleRejection):
    code = "forbidden"
    default_message = "Not authorized to perform this action"


class InvalidTransition(BusinessRuleRejection):
    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class BadgeAlreadyGranted(BusinessRuleRejection):
    code = "badge_already_granted"
    default_message = "Member already has this badge"


class AlreadyInDepartment(BusinessRuleRejection):
    code = "already_in_department"
    default_message = "Member already belongs to this department"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class NotFound(CampusHubError):
    code = "not_found"
    entity = "Resource"

    def __init__(self, entity_id: int | str | None = None) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found")


class MemberNotFound(NotFound):
    entity = "Member"


class EventNotFound(NotFound):
    entity = "Event"


class RegistrationNotFound(NotFound):
    entity = "Registration"


class TaskNotFound(NotFound):
    entity = "Task"


class BadgeNotFound(NotFound):
    entity = "Badge"


class DepartmentNotFound(NotFound):
    entity = "Department"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
class ValidationError(CampusHubError):
    code = "validation_error"
    default_message = "Invalid input"


# ---------------------------------------------------------------------------
# Defects
# ---------------------------------------------------------------------------
class ConsistencyViolation(CampusHubError):
    code = "consistency_violation"
    default_message = "Stored state violates an invariant"
