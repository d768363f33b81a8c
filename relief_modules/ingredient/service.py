"""
Ingredient Request Module Service (``relief_modules.ingredient.service``).

Responsibility
--------------
Submit ingredient requests, reconcile them against the phase ingredient
bucket, and move them through review and disbursement.

Architecture position
---------------------
**Modules layer** -- flush-only.  Line and bucket arithmetic is delegated
to ``relief_engines.reconciliation``; the transition table is
``INGREDIENT_REQUEST_WORKFLOW``.  The phase orchestrator locks the phase
and checks that the phase state permits the action before calling in.

Invariants enforced
-------------------
* At most one live (PENDING / ACCEPTED / DISBURSED) request per phase.
* ``total_cost`` == sum of line totals == declared total (if given) ==
  ingredient fund amount (if defined and non-zero).
* approve / reject / disburse only along the workflow; a second approval
  or a rejection after approval raises ``InvalidStateTransitionError``.
* approve and disburse re-check the total against the ingredient bucket as
  it stands at review time.

Failure modes
-------------
* ``ValidationError`` -- malformed items, missing rejection reason.
* ``BudgetMismatchError`` -- totals do not reconcile.
* ``InvalidStateTransitionError`` -- illegal action or a live request
  already exists.
* ``NotFoundError`` -- unknown request id.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from relief_engines.reconciliation import LineAmount, check_bucket_match, check_line_items
from relief_kernel.db.types import round_money, to_decimal
from relief_kernel.domain.currency import CurrencyRegistry
from relief_kernel.exceptions import (
    BudgetMismatchError,
    InvalidStateTransitionError,
    ValidationError,
)
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.budget.models import BudgetBucket
from relief_modules.budget.service import BudgetService
from relief_modules.ingredient.models import (
    LIVE_STATUSES,
    IngredientItemInput,
    IngredientRequestFilter,
    IngredientRequestStatus,
)
from relief_modules.ingredient.orm import IngredientRequestItemModel, IngredientRequestModel
from relief_modules.ingredient.workflows import INGREDIENT_REQUEST_WORKFLOW, MATCHES_INGREDIENT_BUCKET
from relief_modules.phase.orm import PhaseModel
from relief_modules.phase.service import PhaseService

logger = get_logger("modules.ingredient.service")


class IngredientRequestService(BaseService):
    """Ingredient request ledger."""

    def submit(
        self,
        phase: PhaseModel,
        kitchen_staff_id: UUID,
        items: Sequence[IngredientItemInput],
        declared_total: Decimal | None = None,
    ) -> IngredientRequestModel:
        """
        Create a PENDING request for ``phase``.

        Raises:
            InvalidStateTransitionError: the phase already has a live request.
            ValidationError: malformed items.
            BudgetMismatchError: totals do not reconcile.
        """
        live = self._live_requests(phase.id)
        if live:
            raise InvalidStateTransitionError(
                "phase", str(phase.id), phase.status, "submit_ingredient_request",
            )

        places = CurrencyRegistry.decimal_places(phase.currency)
        normalized = [self._normalize_item(idx, item, places) for idx, item in enumerate(items)]
        total = check_line_items(
            [LineAmount(n["quantity"], n["unit_price"], n["line_total"]) for n in normalized],
            places,
        )

        if declared_total is not None:
            declared = to_decimal(declared_total, "total_cost")
            if declared != total:
                raise BudgetMismatchError("declared_total", declared, total)

        self._check_bucket(phase, total)

        phases = PhaseService(self.session, self.clock)
        request = IngredientRequestModel(
            phase_id=phase.id,
            kitchen_staff_id=kitchen_staff_id,
            total_cost=total,
            status=IngredientRequestStatus.PENDING.value,
            created_by_id=kitchen_staff_id,
        )
        for line_number, n in enumerate(normalized, start=1):
            if n["planned_ingredient_id"] is not None:
                phases.planned_ingredient(phase.id, n["planned_ingredient_id"])
            request.items.append(IngredientRequestItemModel(
                line_number=line_number,
                created_by_id=kitchen_staff_id,
                **n,
            ))
        self.session.add(request)
        self.session.flush()

        logger.info(
            "ingredient_request_submitted",
            extra={
                "request_id": str(request.id),
                "phase_id": str(phase.id),
                "total_cost": str(total),
                "item_count": len(normalized),
            },
        )
        return request

    def approve(self, request_id: UUID, reviewer_id: UUID) -> IngredientRequestModel:
        """
        Accept a PENDING request.

        The ingredient bucket is re-read: a budget change since submission
        raises ``BudgetMismatchError`` and leaves the request PENDING.
        """
        request = self.get(request_id, fresh=True)
        self._transition(request, "approve", reviewer_id)
        request.reviewed_by_id = reviewer_id
        request.reviewed_at = self.clock.now()
        self.session.flush()
        return request

    def reject(self, request_id: UUID, reviewer_id: UUID, reason: str) -> IngredientRequestModel:
        if not reason or not reason.strip():
            raise ValidationError("reason", "a rejection reason is required")
        request = self.get(request_id, fresh=True)
        self._transition(request, "reject", reviewer_id)
        request.reviewed_by_id = reviewer_id
        request.reviewed_at = self.clock.now()
        request.rejection_reason = reason.strip()
        self.session.flush()
        return request

    def disburse(self, request_id: UUID, actor_id: UUID) -> IngredientRequestModel:
        request = self.get(request_id, fresh=True)
        self._transition(request, "disburse", actor_id)
        request.disbursed_by_id = actor_id
        request.disbursed_at = self.clock.now()
        self.session.flush()
        return request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: UUID, fresh: bool = False) -> IngredientRequestModel:
        return self._get_or_raise(
            IngredientRequestModel, request_id, "ingredient_request", populate_existing=fresh,
        )

    def phase_id_of(self, request_id: UUID) -> UUID:
        return self._columns_or_raise(
            IngredientRequestModel, request_id, "ingredient_request",
            IngredientRequestModel.phase_id,
        ).phase_id

    def for_phase(self, phase_id: UUID) -> Sequence[IngredientRequestModel]:
        return self.session.execute(
            select(IngredientRequestModel)
            .where(IngredientRequestModel.phase_id == phase_id)
            .order_by(IngredientRequestModel.created_at, IngredientRequestModel.id)
        ).scalars().all()

    def disbursed_request(self, phase_id: UUID) -> IngredientRequestModel | None:
        return self.session.execute(
            select(IngredientRequestModel).where(
                IngredientRequestModel.phase_id == phase_id,
                IngredientRequestModel.status == IngredientRequestStatus.DISBURSED.value,
            )
        ).scalars().first()

    def list_requests(self, flt: IngredientRequestFilter) -> Sequence[IngredientRequestModel]:
        stmt = select(IngredientRequestModel)
        if flt.phase_id is not None:
            stmt = stmt.where(IngredientRequestModel.phase_id == flt.phase_id)
        if flt.campaign_id is not None:
            stmt = stmt.join(PhaseModel, PhaseModel.id == IngredientRequestModel.phase_id).where(
                PhaseModel.campaign_id == flt.campaign_id
            )
        if flt.status is not None:
            stmt = stmt.where(IngredientRequestModel.status == IngredientRequestStatus(flt.status).value)
        if flt.kitchen_staff_id is not None:
            stmt = stmt.where(IngredientRequestModel.kitchen_staff_id == flt.kitchen_staff_id)
        stmt = stmt.order_by(IngredientRequestModel.created_at, IngredientRequestModel.id)
        return self.session.execute(stmt).scalars().all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _live_requests(self, phase_id: UUID) -> list[IngredientRequestModel]:
        return [
            r for r in self.for_phase(phase_id)
            if IngredientRequestStatus(r.status) in LIVE_STATUSES
        ]

    def _phase(self, request: IngredientRequestModel) -> PhaseModel:
        return PhaseService(self.session, self.clock).get(request.phase_id)

    @staticmethod
    def _check_bucket(phase: PhaseModel, total: Decimal) -> None:
        """Evaluate ``MATCHES_INGREDIENT_BUCKET`` against the current split."""
        check_bucket_match(
            BudgetBucket.INGREDIENT.value,
            BudgetService.bucket_amount(phase, BudgetBucket.INGREDIENT),
            total,
        )

    def _transition(self, request: IngredientRequestModel, action: str, actor_id: UUID) -> None:
        previous = request.status
        target = INGREDIENT_REQUEST_WORKFLOW.apply(request.id, previous, action)
        if INGREDIENT_REQUEST_WORKFLOW.find(previous, action).guard is MATCHES_INGREDIENT_BUCKET:
            self._check_bucket(self._phase(request), request.total_cost)
        request.status = target
        request.updated_by_id = actor_id
        logger.info(
            "ingredient_request_transitioned",
            extra={
                "request_id": str(request.id),
                "action": action,
                "from_status": previous,
                "to_status": request.status,
            },
        )

    @staticmethod
    def _normalize_item(idx: int, item: IngredientItemInput, places: int) -> dict:
        name = (item.ingredient_name or "").strip()
        if not name:
            raise ValidationError(f"items[{idx}].ingredient_name", "cannot be empty")
        unit = (item.unit or "").strip()
        if not unit:
            raise ValidationError(f"items[{idx}].unit", "cannot be empty")
        quantity = to_decimal(item.quantity, f"items[{idx}].quantity")
        unit_price = to_decimal(item.unit_price, f"items[{idx}].unit_price")
        if item.line_total is None:
            line_total = round_money(quantity * unit_price, places)
        else:
            line_total = to_decimal(item.line_total, f"items[{idx}].line_total")
        return {
            "ingredient_name": name,
            "quantity": quantity,
            "unit": unit,
            "unit_price": unit_price,
            "line_total": line_total,
            "supplier": item.supplier,
            "planned_ingredient_id": item.planned_ingredient_id,
        }
