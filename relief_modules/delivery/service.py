"""
Delivery Task Module Service (``relief_modules.delivery.service``).

Responsibility
--------------
Assign READY meal batches to delivery staff, move tasks through their
lifecycle on behalf of the assigned staff member, keep the status log, and
complete the batch once all of its active tasks are delivered.

Architecture position
---------------------
**Modules layer** -- flush-only.  The phase orchestrator gates which task
actions the current phase state permits.

Invariants enforced
-------------------
* Only the assigned delivery staff member moves a task.
* A FAILED transition carries a note.
* A replacement task supersedes exactly one FAILED / REJECTED task of the
  same batch.
* Every status change appends a ``DeliveryStatusLogModel`` row.
* A batch becomes COMPLETED when every active task of it is COMPLETED.

Failure modes
-------------
* ``UnauthorizedActorError`` -- someone other than the assignee.
* ``InvalidStateTransitionError`` -- illegal status change, batch not
  READY, or an unresolvable replacement target.
* ``ValidationError`` -- FAILED without a note; unknown status.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from relief_kernel.exceptions import (
    InvalidStateTransitionError,
    UnauthorizedActorError,
    ValidationError,
)
from relief_kernel.logging_config import get_logger
from relief_kernel.services.base import BaseService
from relief_modules.delivery.models import (
    RESOLVABLE_STATUSES,
    DeliveryTaskFilter,
    DeliveryTaskStatus,
)
from relief_modules.delivery.orm import DeliveryStatusLogModel, DeliveryTaskModel
from relief_modules.delivery.workflows import DELIVERY_TASK_WORKFLOW
from relief_modules.meal_batch.models import MealBatchStatus
from relief_modules.meal_batch.orm import MealBatchModel
from relief_modules.meal_batch.service import MealBatchService
from relief_modules.phase.orm import PhaseModel

logger = get_logger("modules.delivery.service")


def parse_task_status(value: str | DeliveryTaskStatus) -> DeliveryTaskStatus:
    try:
        return DeliveryTaskStatus(str(getattr(value, "value", value)).upper())
    except ValueError:
        raise ValidationError("status", f"unknown delivery task status {value!r}") from None


class DeliveryTaskService(BaseService):

    def create_task(
        self,
        batch: MealBatchModel,
        delivery_staff_id: UUID,
        assigned_by_id: UUID,
        replaces_task_id: UUID | None = None,
    ) -> DeliveryTaskModel:
        if batch.status != MealBatchStatus.READY.value:
            raise InvalidStateTransitionError(
                "meal_batch", str(batch.id), batch.status, "create_delivery_task",
            )

        if replaces_task_id is not None:
            old = self.get(replaces_task_id, fresh=True)
            if (
                old.batch_id != batch.id
                or old.superseded
                or DeliveryTaskStatus(old.status) not in RESOLVABLE_STATUSES
            ):
                raise InvalidStateTransitionError(
                    "delivery_task", str(old.id), old.status, "replace",
                )
            old.superseded = True
            old.updated_by_id = assigned_by_id
        else:
            unresolved = [
                t for t in self.for_batch(batch.id)
                if not t.superseded and DeliveryTaskStatus(t.status) in RESOLVABLE_STATUSES
            ]
            if unresolved:
                logger.warning(
                    "delivery_task_created_without_resolving",
                    extra={
                        "batch_id": str(batch.id),
                        "unresolved_task_ids": [str(t.id) for t in unresolved],
                    },
                )

        task = DeliveryTaskModel(
            batch_id=batch.id,
            phase_id=batch.phase_id,
            delivery_staff_id=delivery_staff_id,
            status=DeliveryTaskStatus.PENDING.value,
            replaces_task_id=replaces_task_id,
            superseded=False,
            assigned_by_id=assigned_by_id,
            created_by_id=assigned_by_id,
        )
        self.session.add(task)
        self._log(task, DeliveryTaskStatus.PENDING, None, assigned_by_id)
        self.session.flush()

        logger.info(
            "delivery_task_created",
            extra={
                "task_id": str(task.id),
                "batch_id": str(batch.id),
                "delivery_staff_id": str(delivery_staff_id),
                "replaces_task_id": str(replaces_task_id) if replaces_task_id else None,
            },
        )
        return task

    def update_status(
        self,
        task_id: UUID,
        target: DeliveryTaskStatus,
        actor_id: UUID,
        actor_role: str,
        note: str | None = None,
    ) -> DeliveryTaskModel:
        task = self.get(task_id, fresh=True)
        if task.delivery_staff_id != actor_id:
            raise UnauthorizedActorError(
                str(actor_id), actor_role, f"move delivery task to {target.value}",
                "task is assigned to another staff member",
            )
        transition = DELIVERY_TASK_WORKFLOW.find_to(task.status, target.value)
        if transition is None:
            raise InvalidStateTransitionError(
                "delivery_task", str(task.id), task.status, target.value.lower(),
            )
        note = note.strip() if note else None
        if target is DeliveryTaskStatus.FAILED and not note:
            raise ValidationError("note", "a failed delivery requires a note")

        previous = task.status
        task.status = DELIVERY_TASK_WORKFLOW.apply(task.id, task.status, transition.action)
        if note:
            task.note = note
        task.updated_by_id = actor_id
        self._log(task, target, note, actor_id)
        self.session.flush()

        logger.info(
            "delivery_task_transitioned",
            extra={
                "task_id": str(task.id),
                "from_status": previous,
                "to_status": task.status,
            },
        )

        if target is DeliveryTaskStatus.COMPLETED:
            self._complete_batch_if_delivered(task.batch_id, actor_id)
        return task

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, task_id: UUID, fresh: bool = False) -> DeliveryTaskModel:
        return self._get_or_raise(DeliveryTaskModel, task_id, "delivery_task", populate_existing=fresh)

    def phase_id_of(self, task_id: UUID) -> UUID:
        return self._columns_or_raise(
            DeliveryTaskModel, task_id, "delivery_task", DeliveryTaskModel.phase_id,
        ).phase_id

    def for_batch(self, batch_id: UUID) -> Sequence[DeliveryTaskModel]:
        return self.session.execute(
            select(DeliveryTaskModel).where(DeliveryTaskModel.batch_id == batch_id)
        ).scalars().all()

    def for_phase(self, phase_id: UUID) -> Sequence[DeliveryTaskModel]:
        return self.session.execute(
            select(DeliveryTaskModel)
            .where(DeliveryTaskModel.phase_id == phase_id)
            .order_by(DeliveryTaskModel.created_at, DeliveryTaskModel.id)
        ).scalars().all()

    def list_tasks(self, flt: DeliveryTaskFilter) -> Sequence[DeliveryTaskModel]:
        stmt = select(DeliveryTaskModel)
        if flt.phase_id is not None:
            stmt = stmt.where(DeliveryTaskModel.phase_id == flt.phase_id)
        if flt.campaign_id is not None:
            stmt = stmt.join(PhaseModel, PhaseModel.id == DeliveryTaskModel.phase_id).where(
                PhaseModel.campaign_id == flt.campaign_id
            )
        if flt.batch_id is not None:
            stmt = stmt.where(DeliveryTaskModel.batch_id == flt.batch_id)
        if flt.status is not None:
            stmt = stmt.where(DeliveryTaskModel.status == parse_task_status(flt.status).value)
        if flt.delivery_staff_id is not None:
            stmt = stmt.where(DeliveryTaskModel.delivery_staff_id == flt.delivery_staff_id)
        return self.session.execute(
            stmt.order_by(DeliveryTaskModel.created_at, DeliveryTaskModel.id)
        ).scalars().all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _log(
        self,
        task: DeliveryTaskModel,
        status: DeliveryTaskStatus,
        note: str | None,
        actor_id: UUID,
    ) -> None:
        sequence = len(task.status_logs) + 1
        task.status_logs.append(DeliveryStatusLogModel(
            sequence=sequence,
            status=status.value,
            note=note,
            changed_by_id=actor_id,
            changed_at=self.clock.now(),
            created_by_id=actor_id,
        ))

    def _complete_batch_if_delivered(self, batch_id: UUID, actor_id: UUID) -> None:
        active = [t for t in self.for_batch(batch_id) if not t.superseded]
        if active and all(t.status == DeliveryTaskStatus.COMPLETED.value for t in active):
            batches = MealBatchService(self.session, self.clock)
            batch = batches.get(batch_id)
            if batch.status == MealBatchStatus.READY.value:
                batches.complete(batch, actor_id)
