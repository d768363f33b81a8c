"""
Operation Request Module Service (``relief_modules.operation.service``).

Responsibility
--------------
Create cooking / delivery disbursement requests, reconcile their declared
total against the matching bucket, and review them.

Invariants enforced
-------------------
* At most one PENDING or APPROVED request per (phase, expense type).
* ``total_cost`` reconciles with the bucket under the configured match
  policy (exact by default).
* approve / reject follow ``OPERATION_REQUEST_WORKFLOW``; approve re-checks the
  total against the bucket as it stands at review time.

Failure modes
-------------
* ``ValidationError`` -- bad expense type, empty title, non-positive cost.
* ``BudgetMismatchError`` -- total does not reconcile.
* ``InvalidStateTransitionError`` -- duplicate live request or illegal
  action.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from relief_engines.reconciliation import MATCH_EXACT, check_bucket_match
from relief_kernel.db.types import round_money, to_decimal
from relief_kernel.domain.clock import Clock
from relief_kernel.domain.currency import CurrencyRegistry
from relief_kernel.exceptions import InvalidStateTransitionError, ValidationError
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.budget.service import BudgetService
from relief_modules.operation.models import OperationExpenseType, OperationRequestStatus
from relief_modules.operation.orm import OperationRequestModel
from relief_modules.operation.workflows import MATCHES_OPERATION_BUCKET, OPERATION_REQUEST_WORKFLOW
from relief_modules.phase.orm import PhaseModel
from relief_modules.phase.service import PhaseService

logger = get_logger("modules.operation.service")


def parse_expense_type(value: str | OperationExpenseType) -> OperationExpenseType:
    try:
        return OperationExpenseType(str(getattr(value, "value", value)).upper())
    except ValueError:
        raise ValidationError("expense_type", f"expected COOKING or DELIVERY, got {value!r}") from None


class OperationRequestService(BaseService):

    def __init__(self, session, clock: Clock | None = None, match_policy: str = MATCH_EXACT):
        super().__init__(session, clock)
        self.match_policy = match_policy

    def submit(
        self,
        phase: PhaseModel,
        requester_id: UUID,
        expense_type: OperationExpenseType,
        title: str,
        total_cost: Decimal,
    ) -> OperationRequestModel:
        if not title or not title.strip():
            raise ValidationError("title", "cannot be empty")
        total = to_decimal(total_cost, "total_cost")
        if total <= 0:
            raise ValidationError("total_cost", "must be positive")
        places = CurrencyRegistry.decimal_places(phase.currency)
        if round_money(total, places) != total:
            raise ValidationError("total_cost", f"too many decimal places for {phase.currency}")

        live = [
            r for r in self.for_phase(phase.id, expense_type)
            if r.status in (OperationRequestStatus.PENDING.value, OperationRequestStatus.APPROVED.value)
        ]
        if live:
            raise InvalidStateTransitionError(
                "phase", str(phase.id), phase.status,
                f"submit_{expense_type.value.lower()}_operation_request",
            )

        self._check_bucket(phase, expense_type, total)

        request = OperationRequestModel(
            phase_id=phase.id,
            requester_id=requester_id,
            expense_type=expense_type.value,
            title=title.strip(),
            total_cost=total,
            status=OperationRequestStatus.PENDING.value,
            created_by_id=requester_id,
        )
        self.session.add(request)
        self.session.flush()

        logger.info(
            "operation_request_submitted",
            extra={
                "request_id": str(request.id),
                "phase_id": str(phase.id),
                "expense_type": expense_type.value,
                "total_cost": str(total),
            },
        )
        return request

    def approve(self, request_id: UUID, reviewer_id: UUID) -> OperationRequestModel:
        request = self.get(request_id, fresh=True)
        self._transition(request, "approve", reviewer_id)
        self.session.flush()
        return request

    def reject(self, request_id: UUID, reviewer_id: UUID, reason: str) -> OperationRequestModel:
        if not reason or not reason.strip():
            raise ValidationError("reason", "a rejection reason is required")
        request = self.get(request_id, fresh=True)
        self._transition(request, "reject", reviewer_id)
        request.rejection_reason = reason.strip()
        self.session.flush()
        return request

    def get(self, request_id: UUID, fresh: bool = False) -> OperationRequestModel:
        return self._get_or_raise(
            OperationRequestModel, request_id, "operation_request", populate_existing=fresh,
        )

    def locate(self, request_id: UUID) -> tuple[UUID, OperationExpenseType]:
        """Owning phase and expense type, read without loading the request."""
        row = self._columns_or_raise(
            OperationRequestModel, request_id, "operation_request",
            OperationRequestModel.phase_id, OperationRequestModel.expense_type,
        )
        return row.phase_id, OperationExpenseType(row.expense_type)

    def for_phase(
        self,
        phase_id: UUID,
        expense_type: OperationExpenseType | None = None,
    ) -> Sequence[OperationRequestModel]:
        stmt = select(OperationRequestModel).where(OperationRequestModel.phase_id == phase_id)
        if expense_type is not None:
            stmt = stmt.where(OperationRequestModel.expense_type == expense_type.value)
        return self.session.execute(
            stmt.order_by(OperationRequestModel.created_at, OperationRequestModel.id)
        ).scalars().all()

    def for_requester(
        self,
        requester_id: UUID,
        status: OperationRequestStatus | None = None,
    ) -> Sequence[OperationRequestModel]:
        stmt = select(OperationRequestModel).where(OperationRequestModel.requester_id == requester_id)
        if status is not None:
            stmt = stmt.where(OperationRequestModel.status == OperationRequestStatus(status).value)
        return self.session.execute(
            stmt.order_by(OperationRequestModel.created_at, OperationRequestModel.id)
        ).scalars().all()

    def _check_bucket(
        self,
        phase: PhaseModel,
        expense_type: OperationExpenseType,
        total: Decimal,
    ) -> None:
        check_bucket_match(
            expense_type.bucket.value,
            BudgetService.bucket_amount(phase, expense_type.bucket),
            total,
            self.match_policy,
        )

    def _transition(self, request: OperationRequestModel, action: str, actor_id: UUID) -> None:
        previous = request.status
        target = OPERATION_REQUEST_WORKFLOW.apply(request.id, previous, action)
        if OPERATION_REQUEST_WORKFLOW.find(previous, action).guard is MATCHES_OPERATION_BUCKET:
            phase = PhaseService(self.session, self.clock).get(request.phase_id)
            self._check_bucket(phase, OperationExpenseType(request.expense_type), request.total_cost)
        request.status = target
        request.reviewed_by_id = actor_id
        request.reviewed_at = self.clock.now()
        request.updated_by_id = actor_id
        logger.info(
            "operation_request_transitioned",
            extra={
                "request_id": str(request.id),
                "action": action,
                "from_status": previous,
                "to_status": request.status,
            },
        )
