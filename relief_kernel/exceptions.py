"""
Typed exception hierarchy for the relief engine.

Every error the engine surfaces to a client is a ``ReliefEngineError``
subclass carrying:

  1. a ``code`` class attribute (machine-readable, stable across releases),
  2. structured attributes (never parse the message),
  3. ``to_dict()`` for the remote-call boundary.

Hierarchy::

    ReliefEngineError (base)
    |
    +-- ValidationError
    |   +-- InvalidAllocationError
    |   +-- MissingEvidenceError
    |
    +-- BudgetMismatchError
    +-- InvalidStateTransitionError
    +-- OverconsumptionError
    +-- PhaseTerminatedError
    +-- NotFoundError
    +-- ConflictError
    +-- UnauthorizedActorError

Codes:

    Category     | Code                      | When raised
    -------------|---------------------------|-----------------------------------
    Validation   | VALIDATION_ERROR          | Malformed input
                 | INVALID_ALLOCATION        | Percentages not summing to 100
                 | MISSING_EVIDENCE          | Proof / batch without media
    Budget       | BUDGET_MISMATCH           | Declared total != bucket amount
    Lifecycle    | INVALID_STATE_TRANSITION  | Action illegal for current status
                 | PHASE_TERMINATED          | Mutation on CANCELLED/FAILED/COMPLETED
    Consumption  | OVERCONSUMPTION           | Usage exceeds requested quantity
    Lookup       | NOT_FOUND                 | Entity id does not exist
    Concurrency  | CONFLICT                  | Optimistic version check failed
    Access       | UNAUTHORIZED_ACTOR        | Caller role / ownership mismatch

Only ``ConflictError`` is retryable. The facade retries it once with fresh
state; everything else propagates unchanged.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class ReliefEngineError(Exception):
    """
    Base exception for all relief engine errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "RELIEF_ENGINE_ERROR"
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Structured, user-displayable representation."""
        details: dict[str, Any] = {}
        for key, val in vars(self).items():
            if key.startswith("_"):
                continue
            details[key] = str(val) if isinstance(val, Decimal) else val
        return {"code": self.code, "message": str(self), "details": details}


# Validation


class ValidationError(ReliefEngineError):
    """Malformed or inconsistent input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidAllocationError(ValidationError):
    """Budget percentages or total funds cannot be allocated."""

    code: str = "INVALID_ALLOCATION"

    def __init__(self, reason: str, percentages: tuple[Any, ...] = ()):
        self.percentages = list(percentages)
        super().__init__("allocation", reason)


class MissingEvidenceError(ValidationError):
    """A proof or cooked batch was submitted without media evidence."""

    code: str = "MISSING_EVIDENCE"

    def __init__(self, entity_type: str, entity_id: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__("media_keys", f"{entity_type} requires at least one media key")


# Budget


class BudgetMismatchError(ReliefEngineError):
    """Declared total diverges from the allocated bucket or the line items."""

    code: str = "BUDGET_MISMATCH"

    def __init__(self, bucket: str, expected: Decimal, actual: Decimal):
        self.bucket = bucket
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Budget mismatch on {bucket}: expected {expected}, got {actual}"
        )


# Lifecycle


class InvalidStateTransitionError(ReliefEngineError):
    """The requested action is not legal from the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        )


class PhaseTerminatedError(ReliefEngineError):
    """Mutation attempted on a CANCELLED, FAILED or COMPLETED phase."""

    code: str = "PHASE_TERMINATED"

    def __init__(self, phase_id: str, status: str):
        self.phase_id = phase_id
        self.status = status
        super().__init__(f"Phase {phase_id} is {status}; no further changes allowed")


# Consumption


class OverconsumptionError(ReliefEngineError):
    """Cumulative ingredient usage would exceed the requested quantity."""

    code: str = "OVERCONSUMPTION"

    def __init__(
        self,
        item_id: str,
        requested: Decimal,
        already_used: Decimal,
        attempted: Decimal,
    ):
        self.item_id = item_id
        self.requested = requested
        self.already_used = already_used
        self.attempted = attempted
        super().__init__(
            f"Ingredient item {item_id}: using {attempted} on top of "
            f"{already_used} exceeds requested quantity {requested}"
        )


# Lookup


class NotFoundError(ReliefEngineError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Concurrency


class ConflictError(ReliefEngineError):
    """Optimistic concurrency check failed; retry with fresh state."""

    code: str = "CONFLICT"
    retryable: bool = True

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}; retry"
        )


# Access


class UnauthorizedActorError(ReliefEngineError):
    """The caller's role or identity does not permit this action."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, role: str, action: str, reason: str = ""):
        self.actor_id = actor_id
        self.role = role
        self.action = action
        self.reason = reason
        msg = f"Actor {actor_id} ({role}) may not {action}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
