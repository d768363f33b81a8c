"""
relief_services.phase_orchestrator -- Phase state gating and recompute.

Responsibility:
    Wrap every state-changing call against a phase: lock the phase row,
    refuse mutations on terminated phases, check the action against the
    phase-state gate table, run the module-level mutation, then re-derive
    the phase status from its children, enforce the monotonic guard and
    cache the result.  Also owns CANCELLED / FAILED termination.

Architecture position:
    Services -- stateful orchestration over engines + modules.
    Derivation is ``relief_engines.phase_status.derive_phase_status``;
    every child write is done by the module services.  The orchestrator
    flushes but never commits; the facade owns the transaction.

Invariants enforced:
    - Any mutation of a CANCELLED / FAILED / COMPLETED phase raises
      ``PhaseTerminatedError`` before anything is written.
    - The cached status never moves backwards except to CANCELLED / FAILED.
    - Every mutation bumps ``PhaseModel.version`` so concurrent writers on
      the same phase collide on the optimistic version check.

Failure modes:
    - PhaseTerminatedError, InvalidStateTransitionError (gate or regression).
    - ConflictError when the version check fails or the database reports a
      lock conflict.
    - Whatever the module mutation raises, unchanged.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from relief_engines.phase_status import (
    LOCK_STATUSES,
    PHASE_ORDER,
    BatchFact,
    DerivedPhaseStatus,
    OperationFact,
    PhaseSnapshot,
    PhaseStatus,
    ProofFact,
    RequestFact,
    TaskFact,
    derive_phase_status,
    is_regression,
)
from relief_kernel.domain.clock import Clock, SystemClock
from relief_kernel.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    PhaseTerminatedError,
    ValidationError,
)
from relief_kernel.logging_config import get_logger
from relief_modules.campaign.service import CampaignService
from relief_modules.delivery.service import DeliveryTaskService
from relief_modules.expense.service import ExpenseProofService
from relief_modules.ingredient.service import IngredientRequestService
from relief_modules.meal_batch.service import MealBatchService
from relief_modules.operation.service import OperationRequestService
from relief_modules.phase.orm import PhaseModel
from relief_modules.phase.service import PhaseService
from relief_services.collaborators import PhaseStatusChanged

logger = get_logger("services.phase_orchestrator")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Gate table
# ---------------------------------------------------------------------------

S = PhaseStatus


def _up_to(status: PhaseStatus) -> frozenset[PhaseStatus]:
    return frozenset(PHASE_ORDER[: PHASE_ORDER.index(status) + 1])


NON_TERMINAL = frozenset(PHASE_ORDER[:-1])
_BUDGET_OPEN = frozenset({S.PLANNING, S.AWAITING_INGREDIENT_DISBURSEMENT})
_KITCHEN = frozenset({S.COOKING, S.AWAITING_DELIVERY_DISBURSEMENT, S.DELIVERY})
_DISPATCH = frozenset({S.AWAITING_DELIVERY_DISBURSEMENT, S.DELIVERY})

ACTION_GATES: dict[str, frozenset[PhaseStatus]] = {
    "set_phase_funds": _BUDGET_OPEN,
    "update_budget_split": _BUDGET_OPEN,
    "submit_ingredient_request": _BUDGET_OPEN,
    "approve_ingredient_request": frozenset({S.AWAITING_INGREDIENT_DISBURSEMENT}),
    "reject_ingredient_request": frozenset({S.AWAITING_INGREDIENT_DISBURSEMENT}),
    "disburse_ingredient_request": frozenset({S.AWAITING_INGREDIENT_DISBURSEMENT}),
    "submit_ingredient_proof": frozenset({S.INGREDIENT_PURCHASE, S.AWAITING_AUDIT}),
    "review_ingredient_proof": frozenset({S.AWAITING_AUDIT}),
    "submit_cooking_operation_request": _up_to(S.AWAITING_COOKING_DISBURSEMENT),
    "submit_delivery_operation_request": _up_to(S.AWAITING_DELIVERY_DISBURSEMENT),
    "approve_cooking_operation_request": frozenset({S.AWAITING_COOKING_DISBURSEMENT}),
    "approve_delivery_operation_request": frozenset({S.AWAITING_DELIVERY_DISBURSEMENT}),
    "reject_operation_request": NON_TERMINAL,
    "submit_operation_proof": NON_TERMINAL,
    "review_operation_proof": NON_TERMINAL,
    "create_meal_batch": _KITCHEN,
    "add_ingredient_usage": _KITCHEN,
    "mark_meal_batch_ready": _KITCHEN,
    "create_delivery_task": _DISPATCH,
    "accept_delivery_task": _DISPATCH,
    "reject_delivery_task": _DISPATCH,
    "start_delivery_task": frozenset({S.DELIVERY}),
    "complete_delivery_task": frozenset({S.DELIVERY}),
    "fail_delivery_task": frozenset({S.DELIVERY}),
    "cancel_phase": NON_TERMINAL,
    "fail_phase": NON_TERMINAL,
}


def check_gate(phase: PhaseModel, action: str) -> PhaseStatus:
    """
    Raise unless ``action`` is permitted in the phase's cached status.

    Raises:
        PhaseTerminatedError: the phase is CANCELLED, FAILED or COMPLETED.
        InvalidStateTransitionError: the phase is in a non-permitted state.
    """
    status = PhaseStatus(phase.status)
    if status.is_terminal:
        raise PhaseTerminatedError(str(phase.id), status.value)
    if status not in ACTION_GATES[action]:
        raise InvalidStateTransitionError("phase", str(phase.id), status.value, action)
    return status


def is_lock_conflict(exc: OperationalError) -> bool:
    """True for the database reporting a competing writer (SQLite "database is locked")."""
    return "locked" in str(exc.orig).lower()


@dataclass(frozen=True)
class PhaseMutationResult(Generic[T]):
    """Value returned by the mutation plus the status change, if any."""

    value: T
    phase_id: UUID
    status: PhaseStatus
    event: PhaseStatusChanged | None = None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class PhaseOrchestrator:
    """
    Gate, mutate, recompute.

    Contract:
        ``run`` and ``terminate`` are the only write paths onto a phase's
        status.  Both leave the session flushed, never committed.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._phases = PhaseService(session, self._clock)

    def run(
        self,
        phase_id: UUID,
        action: str,
        actor_id: UUID,
        mutation: Callable[[PhaseModel], T],
    ) -> PhaseMutationResult[T]:
        """Apply ``mutation`` to a gated, locked phase and recompute its status."""
        phase = self._phases.lock(phase_id)
        check_gate(phase, action)
        try:
            value = mutation(phase)
            event = self._settle(phase, action, actor_id)
        except StaleDataError as exc:
            raise self._conflict(phase_id, action, exc) from exc
        except OperationalError as exc:
            if not is_lock_conflict(exc):
                raise
            raise self._conflict(phase_id, action, exc) from exc
        return PhaseMutationResult(
            value=value,
            phase_id=phase.id,
            status=PhaseStatus(phase.status),
            event=event,
        )

    def terminate(
        self,
        phase_id: UUID,
        target: PhaseStatus,
        reason: str,
        actor_id: UUID,
    ) -> PhaseMutationResult[None]:
        """Move a non-terminal phase to CANCELLED or FAILED."""
        if target not in LOCK_STATUSES:
            raise ValidationError("status", f"{target.value} is not a termination status")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "a reason is required")

        action = "cancel_phase" if target is PhaseStatus.CANCELLED else "fail_phase"
        phase = self._phases.lock(phase_id)
        previous = check_gate(phase, action)
        now = self._clock.now()
        try:
            phase.status = target.value
            phase.terminal_reason = reason
            phase.terminated_at = now
            phase.terminated_by_id = actor_id
            phase.needs_resubmission = False
            phase.blocking_entity = None
            self._touch(phase, actor_id)
            self._session.flush()
            CampaignService(self._session, self._clock).refresh_status(phase.campaign)
            self._session.flush()
        except StaleDataError as exc:
            raise self._conflict(phase_id, action, exc) from exc
        except OperationalError as exc:
            if not is_lock_conflict(exc):
                raise
            raise self._conflict(phase_id, action, exc) from exc

        logger.warning(
            "phase_terminated",
            extra={
                "phase_id": str(phase.id),
                "from_status": previous.value,
                "to_status": target.value,
                "reason": reason,
            },
        )
        event = PhaseStatusChanged(
            phase_id=phase.id,
            campaign_id=phase.campaign_id,
            from_status=previous.value,
            to_status=target.value,
            needs_resubmission=False,
            actor_id=actor_id,
            occurred_at=now,
        )
        return PhaseMutationResult(value=None, phase_id=phase.id, status=target, event=event)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, phase: PhaseModel) -> PhaseSnapshot:
        session, clock = self._session, self._clock
        requests = IngredientRequestService(session, clock).for_phase(phase.id)
        proofs = ExpenseProofService(session, clock).for_phase(phase.id)
        operations = OperationRequestService(session, clock).for_phase(phase.id)
        batches = MealBatchService(session, clock).for_phase(phase.id)
        tasks = DeliveryTaskService(session, clock).for_phase(phase.id)
        cached = PhaseStatus(phase.status)
        return PhaseSnapshot(
            ingredient_requests=tuple(RequestFact(r.id, r.status) for r in requests),
            proofs=tuple(ProofFact(p.id, p.request_id, p.request_kind, p.status) for p in proofs),
            operation_requests=tuple(
                OperationFact(o.id, o.expense_type, o.status) for o in operations
            ),
            batches=tuple(BatchFact(b.id, b.status) for b in batches),
            tasks=tuple(TaskFact(t.id, t.batch_id, t.status, t.superseded) for t in tasks),
            terminal_status=cached.value if cached in LOCK_STATUSES else None,
        )

    def derive(self, phase: PhaseModel) -> DerivedPhaseStatus:
        """Recompute the status without writing anything."""
        derived = derive_phase_status(self.snapshot(phase))
        cached = PhaseStatus(phase.status)
        if derived.status is not cached:
            logger.warning(
                "phase_status_drift",
                extra={
                    "phase_id": str(phase.id),
                    "cached_status": cached.value,
                    "derived_status": derived.status.value,
                },
            )
            if is_regression(cached, derived.status):
                return DerivedPhaseStatus(
                    status=cached,
                    needs_resubmission=derived.needs_resubmission,
                    blocking_entity=derived.blocking_entity,
                    milestones=derived.milestones,
                )
        return derived

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _touch(self, phase: PhaseModel, actor_id: UUID) -> None:
        phase.version = phase.version + 1
        phase.last_activity_at = self._clock.now()
        phase.updated_by_id = actor_id

    def _settle(
        self,
        phase: PhaseModel,
        action: str,
        actor_id: UUID,
    ) -> PhaseStatusChanged | None:
        self._touch(phase, actor_id)
        self._session.flush()

        cached = PhaseStatus(phase.status)
        derived = derive_phase_status(self.snapshot(phase))
        if is_regression(cached, derived.status):
            logger.error(
                "phase_status_regression_refused",
                extra={
                    "phase_id": str(phase.id),
                    "action": action,
                    "cached_status": cached.value,
                    "derived_status": derived.status.value,
                },
            )
            raise InvalidStateTransitionError("phase", str(phase.id), cached.value, action)

        phase.status = derived.status.value
        phase.needs_resubmission = derived.needs_resubmission
        phase.blocking_entity = derived.blocking_entity
        self._session.flush()

        if derived.status is cached:
            return None

        CampaignService(self._session, self._clock).refresh_status(phase.campaign)
        self._session.flush()
        logger.info(
            "phase_status_advanced",
            extra={
                "phase_id": str(phase.id),
                "action": action,
                "from_status": cached.value,
                "to_status": derived.status.value,
                "milestones": list(derived.milestones),
                "needs_resubmission": derived.needs_resubmission,
            },
        )
        return PhaseStatusChanged(
            phase_id=phase.id,
            campaign_id=phase.campaign_id,
            from_status=cached.value,
            to_status=derived.status.value,
            needs_resubmission=derived.needs_resubmission,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
        )

    @staticmethod
    def _conflict(phase_id: UUID, action: str, exc: Exception) -> ConflictError:
        logger.warning(
            "phase_conflict",
            extra={
                "phase_id": str(phase_id),
                "action": action,
                "cause": type(exc).__name__,
            },
        )
        return ConflictError("phase", str(phase_id))
