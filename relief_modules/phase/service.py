"""
Phase Module Service (``relief_modules.phase.service``).

Responsibility
--------------
Create phases (with their plan and initial budget allocation), load them
with or without a row lock, and answer plan lookups used by other modules.

Architecture position
---------------------
**Modules layer** -- flush-only service.  Status derivation and action
gating belong to ``relief_services.phase_orchestrator``.

Failure modes
-------------
* ``NotFoundError`` -- unknown phase or planned meal / ingredient.
* ``ValidationError`` -- a planned meal or ingredient from another phase.
* ``InvalidAllocationError`` -- invalid budget split at creation.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from relief_kernel.db.types import to_decimal
from relief_kernel.exceptions import NotFoundError, ValidationError
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.budget.service import BudgetService
from relief_modules.phase.models import PhaseDraft
from relief_modules.phase.orm import PhaseModel, PlannedIngredientModel, PlannedMealModel

logger = get_logger("modules.phase.service")


class PhaseService(BaseService):
    """Phase creation and lookup."""

    def create_phase(
        self,
        campaign_id: UUID,
        ordinal: int,
        draft: PhaseDraft,
        currency: str,
        actor_id: UUID,
    ) -> PhaseModel:
        if not draft.phase_name or not draft.phase_name.strip():
            raise ValidationError("phase_name", "cannot be empty")

        phase = PhaseModel(
            campaign_id=campaign_id,
            ordinal=ordinal,
            phase_name=draft.phase_name.strip(),
            location=draft.location or "",
            currency=currency,
            ingredient_budget_percentage=draft.ingredient_budget_percentage,
            cooking_budget_percentage=draft.cooking_budget_percentage,
            delivery_budget_percentage=draft.delivery_budget_percentage,
            total_funds=to_decimal(draft.total_funds, "total_funds"),
            status="PLANNING",
            needs_resubmission=False,
            ingredient_purchase_date=draft.ingredient_purchase_date,
            cooking_date=draft.cooking_date,
            delivery_date=draft.delivery_date,
            version=1,
            created_by_id=actor_id,
        )
        BudgetService(self.session, self.clock).apply_allocation(phase)

        for idx, item in enumerate(draft.planned_ingredients):
            quantity = to_decimal(item.quantity, f"planned_ingredients[{idx}].quantity")
            if quantity <= 0:
                raise ValidationError(f"planned_ingredients[{idx}].quantity", "must be positive")
            phase.planned_ingredients.append(PlannedIngredientModel(
                name=item.name, quantity=quantity, unit=item.unit, created_by_id=actor_id,
            ))
        for idx, meal in enumerate(draft.planned_meals):
            if meal.quantity <= 0:
                raise ValidationError(f"planned_meals[{idx}].quantity", "must be positive")
            phase.planned_meals.append(PlannedMealModel(
                name=meal.name, quantity=meal.quantity, created_by_id=actor_id,
            ))

        self.session.add(phase)
        self.session.flush()

        logger.info(
            "phase_created",
            extra={
                "phase_id": str(phase.id),
                "campaign_id": str(campaign_id),
                "ordinal": ordinal,
                "total_funds": str(phase.total_funds),
            },
        )
        return phase

    def get(self, phase_id: UUID) -> PhaseModel:
        return self._get_or_raise(PhaseModel, phase_id, "phase")

    def lock(self, phase_id: UUID) -> PhaseModel:
        """Load a phase holding a row lock (``SELECT ... FOR UPDATE``)."""
        phase = self.session.execute(
            select(PhaseModel).where(PhaseModel.id == phase_id).with_for_update()
        ).scalar_one_or_none()
        if phase is None:
            raise NotFoundError("phase", str(phase_id))
        return phase

    def list_for_campaign(self, campaign_id: UUID) -> Sequence[PhaseModel]:
        return self.session.execute(
            select(PhaseModel)
            .where(PhaseModel.campaign_id == campaign_id)
            .order_by(PhaseModel.ordinal)
        ).scalars().all()

    def planned_meal(self, phase_id: UUID, planned_meal_id: UUID) -> PlannedMealModel:
        meal = self._get_or_raise(PlannedMealModel, planned_meal_id, "planned_meal")
        if meal.phase_id != phase_id:
            raise ValidationError("planned_meal_id", "belongs to another phase")
        return meal

    def planned_ingredient(self, phase_id: UUID, planned_ingredient_id: UUID) -> PlannedIngredientModel:
        item = self._get_or_raise(PlannedIngredientModel, planned_ingredient_id, "planned_ingredient")
        if item.phase_id != phase_id:
            raise ValidationError("planned_ingredient_id", "belongs to another phase")
        return item
