"""
Module: relief_engines.phase_status
Responsibility:
    Derive a phase's lifecycle status as a pure function of the statuses
    of its child entities (ingredient requests, expense proofs, operation
    requests, meal batches, delivery tasks).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The phase orchestrator
    builds a ``PhaseSnapshot`` from the database, calls
    ``derive_phase_status`` and persists the result as the cached status.

Invariants enforced:
    - Milestones are evaluated in order; the derived status is the last
      milestone reached before the first unmet one.
    - Rejected or failed children never lower the status; they raise the
      ``needs_resubmission`` flag and name the blocking entity kind.
    - A terminal lock (CANCELLED / FAILED) overrides every milestone.
    - ``PHASE_ORDER`` defines the rank used by the monotonic guard.

Milestones::

    PLANNING
      -> AWAITING_INGREDIENT_DISBURSEMENT  an ingredient request exists
      -> INGREDIENT_PURCHASE               an ingredient request is DISBURSED
      -> AWAITING_AUDIT                    a proof exists against it
      -> AWAITING_COOKING_DISBURSEMENT     that proof is APPROVED
      -> COOKING                           a COOKING operation request is APPROVED
      -> AWAITING_DELIVERY_DISBURSEMENT    a meal batch is READY or COMPLETED
      -> DELIVERY                          a DELIVERY operation request is APPROVED
      -> COMPLETED                         all active delivery tasks COMPLETED,
                                           at least one, every batch delivered
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from relief_engines.tracer import traced_engine


class PhaseStatus(str, Enum):
    """Phase lifecycle states."""

    PLANNING = "PLANNING"
    AWAITING_INGREDIENT_DISBURSEMENT = "AWAITING_INGREDIENT_DISBURSEMENT"
    INGREDIENT_PURCHASE = "INGREDIENT_PURCHASE"
    AWAITING_AUDIT = "AWAITING_AUDIT"
    AWAITING_COOKING_DISBURSEMENT = "AWAITING_COOKING_DISBURSEMENT"
    COOKING = "COOKING"
    AWAITING_DELIVERY_DISBURSEMENT = "AWAITING_DELIVERY_DISBURSEMENT"
    DELIVERY = "DELIVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the forward sequence; side states rank above everything."""
        try:
            return PHASE_ORDER.index(self)
        except ValueError:
            return len(PHASE_ORDER)


PHASE_ORDER: tuple[PhaseStatus, ...] = (
    PhaseStatus.PLANNING,
    PhaseStatus.AWAITING_INGREDIENT_DISBURSEMENT,
    PhaseStatus.INGREDIENT_PURCHASE,
    PhaseStatus.AWAITING_AUDIT,
    PhaseStatus.AWAITING_COOKING_DISBURSEMENT,
    PhaseStatus.COOKING,
    PhaseStatus.AWAITING_DELIVERY_DISBURSEMENT,
    PhaseStatus.DELIVERY,
    PhaseStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({
    PhaseStatus.COMPLETED,
    PhaseStatus.CANCELLED,
    PhaseStatus.FAILED,
})

LOCK_STATUSES = frozenset({PhaseStatus.CANCELLED, PhaseStatus.FAILED})


# ---------------------------------------------------------------------------
# Snapshot facts (statuses as plain strings, decoupled from ORM models)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestFact:
    id: UUID
    status: str


@dataclass(frozen=True)
class OperationFact:
    id: UUID
    expense_type: str
    status: str


@dataclass(frozen=True)
class ProofFact:
    id: UUID
    request_id: UUID
    request_kind: str
    status: str


@dataclass(frozen=True)
class BatchFact:
    id: UUID
    status: str


@dataclass(frozen=True)
class TaskFact:
    id: UUID
    batch_id: UUID
    status: str
    superseded: bool = False


@dataclass(frozen=True)
class PhaseSnapshot:
    """Everything the derivation needs to know about one phase."""

    ingredient_requests: Sequence[RequestFact] = ()
    proofs: Sequence[ProofFact] = ()
    operation_requests: Sequence[OperationFact] = ()
    batches: Sequence[BatchFact] = ()
    tasks: Sequence[TaskFact] = ()
    terminal_status: str | None = None


@dataclass(frozen=True)
class DerivedPhaseStatus:
    status: PhaseStatus
    needs_resubmission: bool = False
    blocking_entity: str | None = None
    milestones: tuple[str, ...] = field(default=())


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def _all_rejected(statuses: Sequence[str]) -> bool:
    return bool(statuses) and all(s == "REJECTED" for s in statuses)


def is_phase_complete(batches: Sequence[BatchFact], tasks: Sequence[TaskFact]) -> bool:
    """True iff at least one active task exists, all are COMPLETED and every
    batch has a completed active task."""
    active = [t for t in tasks if not t.superseded]
    if not active or any(t.status != "COMPLETED" for t in active):
        return False
    delivered = {t.batch_id for t in active}
    return all(b.id in delivered for b in batches)


def _resubmission(status: PhaseStatus, snap: PhaseSnapshot) -> str | None:
    """Blocking entity kind when the awaiting state needs a new submission."""
    if status is PhaseStatus.AWAITING_INGREDIENT_DISBURSEMENT:
        if _all_rejected([r.status for r in snap.ingredient_requests]):
            return "ingredient_request"
    elif status is PhaseStatus.AWAITING_AUDIT:
        ingredient_proofs = [p.status for p in snap.proofs if p.request_kind == "INGREDIENT"]
        if _all_rejected(ingredient_proofs):
            return "expense_proof"
    elif status is PhaseStatus.AWAITING_COOKING_DISBURSEMENT:
        if _all_rejected([o.status for o in snap.operation_requests if o.expense_type == "COOKING"]):
            return "operation_request"
    elif status is PhaseStatus.AWAITING_DELIVERY_DISBURSEMENT:
        if _all_rejected([o.status for o in snap.operation_requests if o.expense_type == "DELIVERY"]):
            return "operation_request"
    elif status is PhaseStatus.DELIVERY:
        if any(t.status in ("FAILED", "REJECTED") for t in snap.tasks if not t.superseded):
            return "delivery_task"
    return None


@traced_engine("phase_status", "1.0")
def derive_phase_status(snap: PhaseSnapshot) -> DerivedPhaseStatus:
    """
    Compute the phase status from its children.

    Postconditions:
        The result depends only on ``snap``; equal snapshots give equal
        results.
    """
    if snap.terminal_status is not None:
        return DerivedPhaseStatus(status=PhaseStatus(snap.terminal_status))

    disbursed_ids = {r.id for r in snap.ingredient_requests if r.status == "DISBURSED"}
    ingredient_proofs = [
        p for p in snap.proofs
        if p.request_kind == "INGREDIENT" and p.request_id in disbursed_ids
    ]

    milestones = (
        (PhaseStatus.AWAITING_INGREDIENT_DISBURSEMENT, "ingredient_request_submitted",
         bool(snap.ingredient_requests)),
        (PhaseStatus.INGREDIENT_PURCHASE, "ingredient_request_disbursed",
         bool(disbursed_ids)),
        (PhaseStatus.AWAITING_AUDIT, "ingredient_proof_submitted",
         bool(ingredient_proofs)),
        (PhaseStatus.AWAITING_COOKING_DISBURSEMENT, "ingredient_proof_approved",
         any(p.status == "APPROVED" for p in ingredient_proofs)),
        (PhaseStatus.COOKING, "cooking_disbursement_approved",
         any(o.expense_type == "COOKING" and o.status == "APPROVED" for o in snap.operation_requests)),
        (PhaseStatus.AWAITING_DELIVERY_DISBURSEMENT, "meal_batch_ready",
         any(b.status in ("READY", "COMPLETED") for b in snap.batches)),
        (PhaseStatus.DELIVERY, "delivery_disbursement_approved",
         any(o.expense_type == "DELIVERY" and o.status == "APPROVED" for o in snap.operation_requests)),
        (PhaseStatus.COMPLETED, "all_deliveries_completed",
         is_phase_complete(snap.batches, snap.tasks)),
    )

    status = PhaseStatus.PLANNING
    reached: list[str] = []
    for target, name, met in milestones:
        if not met:
            break
        status = target
        reached.append(name)

    blocking = _resubmission(status, snap)
    return DerivedPhaseStatus(
        status=status,
        needs_resubmission=blocking is not None,
        blocking_entity=blocking,
        milestones=tuple(reached),
    )


def is_regression(cached: PhaseStatus, derived: PhaseStatus) -> bool:
    """True if moving from ``cached`` to ``derived`` would go backwards."""
    if derived in LOCK_STATUSES:
        return False
    return derived.rank < cached.rank
