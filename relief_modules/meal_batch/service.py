"""
Meal Batch Module Service (``relief_modules.meal_batch.service``).

Responsibility
--------------
Create cooking batches, record the ingredients they consume, mark them
READY with cooked date and media, and complete them once delivered.

Architecture position
---------------------
**Modules layer** -- flush-only.  Consumption arithmetic lives in
``relief_engines.consumption``.

Invariants enforced
-------------------
* Cumulative usage of each ingredient line across all batches of the phase
  never exceeds the requested quantity.
* Usages are only added while a batch is PENDING.
* A READY batch has a cooked date and at least one media key.
* A planned meal link must belong to the batch's phase.

Failure modes
-------------
* ``OverconsumptionError`` -- usage over the requested quantity.
* ``InvalidStateTransitionError`` -- usage on a READY batch; no disbursed
  ingredient request; illegal status change.
* ``MissingEvidenceError`` -- READY without media.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from relief_engines.consumption import UsageLine, check_consumption
from relief_kernel.db.types import to_decimal
from relief_kernel.exceptions import (
    InvalidStateTransitionError,
    MissingEvidenceError,
    ValidationError,
)
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.expense.service import clean_media_keys
from relief_modules.ingredient.service import IngredientRequestService
from relief_modules.meal_batch.models import (
    IngredientUsageInput,
    MealBatchFilter,
    MealBatchStatus,
)
from relief_modules.meal_batch.orm import MealBatchIngredientUsageModel, MealBatchModel
from relief_modules.meal_batch.workflows import MEAL_BATCH_WORKFLOW
from relief_modules.phase.orm import PhaseModel
from relief_modules.phase.service import PhaseService

logger = get_logger("modules.meal_batch.service")


class MealBatchService(BaseService):

    def create(
        self,
        phase: PhaseModel,
        kitchen_staff_id: UUID,
        food_name: str,
        quantity: int,
        usages: Sequence[IngredientUsageInput] = (),
        media_keys: Sequence[str] = (),
        planned_meal_id: UUID | None = None,
    ) -> MealBatchModel:
        if not food_name or not food_name.strip():
            raise ValidationError("food_name", "cannot be empty")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity", "must be a positive integer")
        if planned_meal_id is not None:
            PhaseService(self.session, self.clock).planned_meal(phase.id, planned_meal_id)

        lines = self._usage_lines(usages)
        self._check_consumption(phase.id, lines)

        batch = MealBatchModel(
            phase_id=phase.id,
            kitchen_staff_id=kitchen_staff_id,
            food_name=food_name.strip(),
            quantity=quantity,
            status=MealBatchStatus.PENDING.value,
            planned_meal_id=planned_meal_id,
            media_keys=list(clean_media_keys(media_keys)),
            created_by_id=kitchen_staff_id,
        )
        for line in lines:
            batch.ingredient_usages.append(MealBatchIngredientUsageModel(
                item_id=line.item_id, quantity=line.quantity, created_by_id=kitchen_staff_id,
            ))
        self.session.add(batch)
        self.session.flush()

        logger.info(
            "meal_batch_created",
            extra={
                "batch_id": str(batch.id),
                "phase_id": str(phase.id),
                "food_name": batch.food_name,
                "quantity": quantity,
                "usage_count": len(lines),
            },
        )
        return batch

    def add_usage(
        self,
        batch_id: UUID,
        usages: Sequence[IngredientUsageInput],
        actor_id: UUID,
    ) -> MealBatchModel:
        batch = self.get(batch_id, fresh=True)
        if batch.status != MealBatchStatus.PENDING.value:
            raise InvalidStateTransitionError(
                "meal_batch", str(batch.id), batch.status, "add_ingredient_usage",
            )
        lines = self._usage_lines(usages)
        if not lines:
            raise ValidationError("ingredient_usages", "at least one usage is required")
        self._check_consumption(batch.phase_id, lines)

        for line in lines:
            batch.ingredient_usages.append(MealBatchIngredientUsageModel(
                item_id=line.item_id, quantity=line.quantity, created_by_id=actor_id,
            ))
        batch.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "meal_batch_usage_added",
            extra={"batch_id": str(batch.id), "usage_count": len(lines)},
        )
        return batch

    def mark_ready(
        self,
        batch_id: UUID,
        actor_id: UUID,
        cooked_date: datetime | None = None,
        media_keys: Sequence[str] = (),
    ) -> MealBatchModel:
        batch = self.get(batch_id, fresh=True)
        merged = clean_media_keys(list(batch.media_keys or ()) + list(media_keys or ()))
        target = MEAL_BATCH_WORKFLOW.apply(batch.id, batch.status, "mark_ready")
        if not merged:
            raise MissingEvidenceError("meal_batch", str(batch.id))

        batch.status = target
        batch.media_keys = list(merged)
        batch.cooked_date = cooked_date or self.clock.now()
        batch.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "meal_batch_ready",
            extra={
                "batch_id": str(batch.id),
                "cooked_date": batch.cooked_date,
                "media_count": len(merged),
            },
        )
        return batch

    def complete(self, batch: MealBatchModel, actor_id: UUID) -> MealBatchModel:
        batch.status = MEAL_BATCH_WORKFLOW.apply(batch.id, batch.status, "complete")
        batch.updated_by_id = actor_id
        self.session.flush()
        logger.info("meal_batch_completed", extra={"batch_id": str(batch.id)})
        return batch

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, batch_id: UUID, fresh: bool = False) -> MealBatchModel:
        return self._get_or_raise(MealBatchModel, batch_id, "meal_batch", populate_existing=fresh)

    def phase_id_of(self, batch_id: UUID) -> UUID:
        return self._columns_or_raise(
            MealBatchModel, batch_id, "meal_batch", MealBatchModel.phase_id,
        ).phase_id

    def for_phase(self, phase_id: UUID) -> Sequence[MealBatchModel]:
        return self.session.execute(
            select(MealBatchModel)
            .where(MealBatchModel.phase_id == phase_id)
            .order_by(MealBatchModel.created_at, MealBatchModel.id)
        ).scalars().all()

    def list_batches(self, flt: MealBatchFilter) -> Sequence[MealBatchModel]:
        stmt = select(MealBatchModel)
        if flt.phase_id is not None:
            stmt = stmt.where(MealBatchModel.phase_id == flt.phase_id)
        if flt.campaign_id is not None:
            stmt = stmt.join(PhaseModel, PhaseModel.id == MealBatchModel.phase_id).where(
                PhaseModel.campaign_id == flt.campaign_id
            )
        if flt.status is not None:
            stmt = stmt.where(MealBatchModel.status == MealBatchStatus(flt.status).value)
        if flt.kitchen_staff_id is not None:
            stmt = stmt.where(MealBatchModel.kitchen_staff_id == flt.kitchen_staff_id)
        return self.session.execute(
            stmt.order_by(MealBatchModel.created_at, MealBatchModel.id)
        ).scalars().all()

    def usages_for_phase(self, phase_id: UUID) -> list[UsageLine]:
        rows = self.session.execute(
            select(MealBatchIngredientUsageModel)
            .join(MealBatchModel, MealBatchModel.id == MealBatchIngredientUsageModel.batch_id)
            .where(MealBatchModel.phase_id == phase_id)
        ).scalars().all()
        return [UsageLine(item_id=r.item_id, quantity=r.quantity) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _usage_lines(usages: Sequence[IngredientUsageInput]) -> list[UsageLine]:
        return [
            UsageLine(
                item_id=u.item_id,
                quantity=to_decimal(u.quantity, f"ingredient_usages[{idx}].quantity"),
            )
            for idx, u in enumerate(usages or ())
        ]

    def _check_consumption(self, phase_id: UUID, lines: list[UsageLine]) -> None:
        request = IngredientRequestService(self.session, self.clock).disbursed_request(phase_id)
        if request is None:
            raise InvalidStateTransitionError(
                "phase", str(phase_id), "no_disbursed_ingredient_request", "record_ingredient_usage",
            )
        if not lines:
            return
        requested = {item.id: item.quantity for item in request.items}
        check_consumption(requested, self.usages_for_phase(phase_id), lines)
