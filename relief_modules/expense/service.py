"""
Expense Proof Module Service (``relief_modules.expense.service``).

Responsibility
--------------
Accept spending evidence against a disbursed ingredient request or an
approved operation request, measure its variance from plan, and record the
auditor's decision.

Architecture position
---------------------
**Modules layer** -- flush-only.  Variance arithmetic lives in
``relief_engines.reconciliation.compute_proof_variance``.

Invariants enforced
-------------------
* Missing media is a hard failure (``MissingEvidenceError``); amount
  variance never is.
* Ingredient proofs only against DISBURSED requests; operation proofs
  only against APPROVED requests.
* At most one PENDING or APPROVED proof per request.
* A rejection carries a note.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from relief_engines.reconciliation import compute_proof_variance
from relief_kernel.db.types import to_decimal
from relief_kernel.domain.clock import Clock
from relief_kernel.exceptions import (
    InvalidStateTransitionError,
    MissingEvidenceError,
    NotFoundError,
    ValidationError,
)
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.expense.models import ExpenseProofStatus, ProofRequestKind
from relief_modules.expense.orm import ExpenseProofModel
from relief_modules.expense.workflows import EXPENSE_PROOF_WORKFLOW
from relief_modules.ingredient.models import IngredientRequestStatus
from relief_modules.ingredient.orm import IngredientRequestModel
from relief_modules.operation.models import OperationRequestStatus
from relief_modules.operation.orm import OperationRequestModel

logger = get_logger("modules.expense.service")

ProvedRequest = IngredientRequestModel | OperationRequestModel


def clean_media_keys(media_keys: Sequence[str] | None) -> tuple[str, ...]:
    """Strip blanks and duplicates, keeping order."""
    seen: dict[str, None] = {}
    for key in media_keys or ():
        if isinstance(key, str) and key.strip():
            seen.setdefault(key.strip(), None)
    return tuple(seen)


class ExpenseProofService(BaseService):

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        variance_tolerance_percent: Decimal = Decimal("0"),
    ):
        super().__init__(session, clock)
        self.variance_tolerance_percent = variance_tolerance_percent

    def resolve_request(
        self,
        request_id: UUID,
        fresh: bool = False,
    ) -> tuple[ProofRequestKind, ProvedRequest]:
        """Find the ingredient or operation request a proof targets."""
        ingredient = self.session.get(IngredientRequestModel, request_id, populate_existing=fresh)
        if ingredient is not None:
            return ProofRequestKind.INGREDIENT, ingredient
        operation = self.session.get(OperationRequestModel, request_id, populate_existing=fresh)
        if operation is not None:
            return ProofRequestKind.OPERATION, operation
        raise NotFoundError("request", str(request_id))

    @staticmethod
    def request_owner(request: ProvedRequest) -> UUID:
        if isinstance(request, IngredientRequestModel):
            return request.kitchen_staff_id
        return request.requester_id

    def submit(
        self,
        kind: ProofRequestKind,
        request: ProvedRequest,
        submitter_id: UUID,
        media_keys: Sequence[str],
        amount: Decimal,
    ) -> ExpenseProofModel:
        """
        Record a PENDING proof.

        Raises:
            MissingEvidenceError: no usable media key.
            ValidationError: negative amount.
            InvalidStateTransitionError: request not DISBURSED / APPROVED,
                or a live proof already exists for it.
        """
        keys = clean_media_keys(media_keys)
        if not keys:
            raise MissingEvidenceError("expense_proof")
        claimed = to_decimal(amount, "amount")
        if claimed < 0:
            raise ValidationError("amount", "cannot be negative")

        required = (
            IngredientRequestStatus.DISBURSED.value
            if kind is ProofRequestKind.INGREDIENT
            else OperationRequestStatus.APPROVED.value
        )
        if request.status != required:
            raise InvalidStateTransitionError(
                f"{kind.value.lower()}_request", str(request.id), request.status, "submit_expense_proof",
            )
        live = [
            p for p in self.for_request(request.id)
            if p.status in (ExpenseProofStatus.PENDING.value, ExpenseProofStatus.APPROVED.value)
        ]
        if live:
            raise InvalidStateTransitionError(
                f"{kind.value.lower()}_request", str(request.id), request.status, "submit_expense_proof",
            )

        variance = compute_proof_variance(
            planned_amount=request.total_cost,
            claimed_amount=claimed,
            tolerance_percent=self.variance_tolerance_percent,
        )
        proof = ExpenseProofModel(
            phase_id=request.phase_id,
            request_id=request.id,
            request_kind=kind.value,
            submitter_id=submitter_id,
            media_keys=list(keys),
            amount=claimed,
            planned_amount=variance.planned_amount,
            variance_amount=variance.variance_amount,
            variance_percent=variance.variance_percent,
            variance_warning=variance.variance_warning,
            status=ExpenseProofStatus.PENDING.value,
            created_by_id=submitter_id,
        )
        self.session.add(proof)
        self.session.flush()

        logger.info(
            "expense_proof_submitted",
            extra={
                "proof_id": str(proof.id),
                "request_id": str(request.id),
                "request_kind": kind.value,
                "amount": str(claimed),
                "variance_percent": str(variance.variance_percent),
                "variance_warning": variance.variance_warning,
                "media_count": len(keys),
            },
        )
        return proof

    def approve(self, proof_id: UUID, reviewer_id: UUID, note: str | None = None) -> ExpenseProofModel:
        proof = self.get(proof_id, fresh=True)
        self._transition(proof, "approve", reviewer_id)
        if note and note.strip():
            proof.admin_note = note.strip()
        self.session.flush()
        return proof

    def reject(self, proof_id: UUID, reviewer_id: UUID, note: str) -> ExpenseProofModel:
        if not note or not note.strip():
            raise ValidationError("note", "a rejection note is required")
        proof = self.get(proof_id, fresh=True)
        self._transition(proof, "reject", reviewer_id)
        proof.admin_note = note.strip()
        self.session.flush()
        return proof

    def get(self, proof_id: UUID, fresh: bool = False) -> ExpenseProofModel:
        return self._get_or_raise(ExpenseProofModel, proof_id, "expense_proof", populate_existing=fresh)

    def locate(self, proof_id: UUID) -> tuple[UUID, ProofRequestKind]:
        """Owning phase and request kind, read without loading the proof."""
        row = self._columns_or_raise(
            ExpenseProofModel, proof_id, "expense_proof",
            ExpenseProofModel.phase_id, ExpenseProofModel.request_kind,
        )
        return row.phase_id, ProofRequestKind(row.request_kind)

    def for_request(self, request_id: UUID) -> Sequence[ExpenseProofModel]:
        return self.session.execute(
            select(ExpenseProofModel).where(ExpenseProofModel.request_id == request_id)
        ).scalars().all()

    def for_phase(self, phase_id: UUID) -> Sequence[ExpenseProofModel]:
        return self.session.execute(
            select(ExpenseProofModel)
            .where(ExpenseProofModel.phase_id == phase_id)
            .order_by(ExpenseProofModel.created_at, ExpenseProofModel.id)
        ).scalars().all()

    def for_submitter(
        self,
        submitter_id: UUID,
        status: ExpenseProofStatus | None = None,
    ) -> Sequence[ExpenseProofModel]:
        stmt = select(ExpenseProofModel).where(ExpenseProofModel.submitter_id == submitter_id)
        if status is not None:
            stmt = stmt.where(ExpenseProofModel.status == ExpenseProofStatus(status).value)
        return self.session.execute(
            stmt.order_by(ExpenseProofModel.created_at, ExpenseProofModel.id)
        ).scalars().all()

    def _transition(self, proof: ExpenseProofModel, action: str, actor_id: UUID) -> None:
        previous = proof.status
        proof.status = EXPENSE_PROOF_WORKFLOW.apply(proof.id, proof.status, action)
        proof.reviewed_by_id = actor_id
        proof.reviewed_at = self.clock.now()
        proof.updated_by_id = actor_id
        logger.info(
            "expense_proof_transitioned",
            extra={
                "proof_id": str(proof.id),
                "action": action,
                "from_status": previous,
                "to_status": proof.status,
            },
        )
