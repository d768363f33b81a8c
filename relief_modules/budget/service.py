"""
Budget Module Service (``relief_modules.budget.service``).

Responsibility
--------------
Keep a phase's three fund amounts consistent with its total funds and
budget split.  Every change to either goes through ``apply_allocation``,
which delegates the arithmetic to ``relief_engines.allocation.allocate``.

Architecture position
---------------------
**Modules layer** -- ``BudgetService`` mutates ``PhaseModel`` budget
columns and flushes.  It never commits; phase-state gating is the
orchestrator's job.

Invariants enforced
-------------------
* ingredient + cooking + delivery fund amounts == total funds after every
  write.
* Percentages are validated before anything is written.

Failure modes
-------------
* ``InvalidAllocationError`` -- bad percentages or negative funds.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from relief_engines.allocation import FundsAllocation, allocate, validate_split
from relief_kernel.db.types import to_decimal
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.budget.models import BudgetBucket
from relief_modules.phase.orm import PhaseModel

logger = get_logger("modules.budget.service")


class BudgetService(BaseService):
    """Budget bucket maintenance for phases."""

    def apply_allocation(self, phase: PhaseModel) -> FundsAllocation:
        """Recompute the three fund amounts from the phase's split and total."""
        result = allocate(
            phase.total_funds,
            phase.ingredient_budget_percentage,
            phase.cooking_budget_percentage,
            phase.delivery_budget_percentage,
            phase.currency,
        )
        phase.ingredient_fund_amount = result.ingredient
        phase.cooking_fund_amount = result.cooking
        phase.delivery_fund_amount = result.delivery
        return result

    def set_phase_funds(
        self,
        phase: PhaseModel,
        total_funds: Decimal,
        actor_id: UUID,
    ) -> FundsAllocation:
        total_funds = to_decimal(total_funds, "total_funds")
        previous = phase.total_funds
        phase.total_funds = total_funds
        result = self.apply_allocation(phase)
        phase.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "phase_funds_set",
            extra={
                "phase_id": str(phase.id),
                "previous_total": str(previous),
                "total_funds": str(total_funds),
                "allocation": result.to_dict(),
            },
        )
        return result

    def update_budget_split(
        self,
        phase: PhaseModel,
        pct_ingredient: int,
        pct_cooking: int,
        pct_delivery: int,
        actor_id: UUID,
    ) -> FundsAllocation:
        split = validate_split(pct_ingredient, pct_cooking, pct_delivery)
        phase.ingredient_budget_percentage = split.ingredient
        phase.cooking_budget_percentage = split.cooking
        phase.delivery_budget_percentage = split.delivery
        result = self.apply_allocation(phase)
        phase.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "phase_budget_split_updated",
            extra={
                "phase_id": str(phase.id),
                "split": list(split.as_tuple()),
                "allocation": result.to_dict(),
            },
        )
        return result

    @staticmethod
    def funds_allocation(phase: PhaseModel) -> FundsAllocation:
        return FundsAllocation(
            total_funds=phase.total_funds,
            ingredient=phase.ingredient_fund_amount,
            cooking=phase.cooking_fund_amount,
            delivery=phase.delivery_fund_amount,
            currency=phase.currency,
        )

    @staticmethod
    def bucket_amount(phase: PhaseModel, bucket: BudgetBucket) -> Decimal | None:
        """Amount of one bucket; None when the phase has no funds yet."""
        if not phase.total_funds:
            return None
        return {
            BudgetBucket.INGREDIENT: phase.ingredient_fund_amount,
            BudgetBucket.COOKING: phase.cooking_fund_amount,
            BudgetBucket.DELIVERY: phase.delivery_fund_amount,
        }[bucket]
