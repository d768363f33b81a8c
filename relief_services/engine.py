"""
relief_services.engine -- ReliefEngine, the single entry point for clients.

Responsibility:
    Expose every campaign, phase, request, proof, meal batch and delivery
    operation as one method taking the caller's ``ActorContext`` first.
    Each call authorizes the actor, binds the log context, runs in its own
    transaction (``session_scope``), routes phase mutations through the
    ``PhaseOrchestrator`` and dispatches status-change notifications after
    commit.

Architecture position:
    Services -- outermost layer.  Owns the transaction boundary; module
    services and the orchestrator only flush.

Invariants enforced:
    - Role checks (``rbac.authorize``) run before any database access.
    - ``ConflictError`` is retried ``config.conflict_retries`` times with a
      fresh session before surfacing.
    - Notifications are sent only for committed changes; a dispatcher
      failure is logged and never undoes the committed work.
    - Results are plain JSON-compatible dicts (``views.to_jsonable``).

Failure modes:
    - Any ``ReliefEngineError`` subclass, unchanged.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from relief_config import EngineConfig, get_active_config
from relief_engines.campaign_status import funding_progress
from relief_engines.phase_status import PhaseStatus
from relief_kernel.db.engine import session_scope
from relief_kernel.domain.clock import Clock, SystemClock
from relief_kernel.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    PhaseTerminatedError,
    UnauthorizedActorError,
    ValidationError,
)
from relief_kernel.logging_config import LogContext, get_logger
from relief_modules.budget.service import BudgetService
from relief_modules.campaign.models import CampaignDraft
from relief_modules.campaign.orm import CampaignModel
from relief_modules.campaign.service import CampaignService
from relief_modules.delivery.models import DeliveryTaskFilter, DeliveryTaskStatus
from relief_modules.delivery.service import DeliveryTaskService, parse_task_status
from relief_modules.expense.models import ExpenseProofStatus, ProofRequestKind
from relief_modules.expense.service import ExpenseProofService
from relief_modules.ingredient.models import (
    IngredientItemInput,
    IngredientRequestFilter,
)
from relief_modules.ingredient.service import IngredientRequestService
from relief_modules.meal_batch.models import (
    IngredientUsageInput,
    MealBatchFilter,
    MealBatchStatus,
)
from relief_modules.meal_batch.orm import MealBatchModel
from relief_modules.meal_batch.service import MealBatchService
from relief_modules.operation.models import OperationRequestStatus
from relief_modules.operation.service import OperationRequestService, parse_expense_type
from relief_modules.phase.models import PhaseDraft
from relief_modules.phase.orm import PhaseModel
from relief_modules.phase.service import PhaseService
from relief_services.collaborators import (
    ActorContext,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    PhaseStatusChanged,
    UnconfiguredUploadUrlIssuer,
    UploadUrlIssuer,
)
from relief_services.phase_orchestrator import PhaseOrchestrator
from relief_services.rbac import authorize
from relief_services.views import to_jsonable

logger = get_logger("services.engine")

T = TypeVar("T")

_TASK_ACTIONS: dict[DeliveryTaskStatus, str] = {
    DeliveryTaskStatus.ACCEPTED: "accept_delivery_task",
    DeliveryTaskStatus.REJECTED: "reject_delivery_task",
    DeliveryTaskStatus.OUT_FOR_DELIVERY: "start_delivery_task",
    DeliveryTaskStatus.COMPLETED: "complete_delivery_task",
    DeliveryTaskStatus.FAILED: "fail_delivery_task",
}


def _role_name(actor: ActorContext) -> str:
    return str(getattr(actor.role, "value", actor.role))


def _require_open(phase: PhaseModel) -> None:
    if PhaseStatus(phase.status).is_terminal:
        raise PhaseTerminatedError(str(phase.id), phase.status)


class _UnitOfWork:
    """One transaction attempt: session, services, and collected events."""

    def __init__(self, session: Session, clock: Clock, config: EngineConfig):
        self.session = session
        self.clock = clock
        self.orchestrator = PhaseOrchestrator(session, clock)
        self.phases = PhaseService(session, clock)
        self.campaigns = CampaignService(session, clock)
        self.budget = BudgetService(session, clock)
        self.ingredients = IngredientRequestService(session, clock)
        self.operations = OperationRequestService(
            session, clock, match_policy=config.operation_request_match.value,
        )
        self.proofs = ExpenseProofService(
            session, clock, variance_tolerance_percent=config.proof_variance_tolerance_percent,
        )
        self.batches = MealBatchService(session, clock)
        self.deliveries = DeliveryTaskService(session, clock)
        self.events: list[PhaseStatusChanged] = []

    def mutate(
        self,
        phase_id: UUID,
        action: str,
        actor_id: UUID,
        mutation: Callable[[PhaseModel], T],
    ) -> T:
        result = self.orchestrator.run(phase_id, action, actor_id, mutation)
        if result.event is not None:
            self.events.append(result.event)
        return result.value


class ReliefEngine:
    """
    Campaign phase workflow and budget disbursement engine.

    Contract:
        Thread-safe: every call opens its own session from
        ``session_factory`` (or the kernel's default factory).
    Guarantees:
        - A call either commits all of its writes or none of them.
        - Returned statuses are canonical enum values; localized labels
          live in ``relief_services.presentation``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        upload_issuer: UploadUrlIssuer | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotificationDispatcher()
        self._upload_issuer = upload_issuer or UnconfiguredUploadUrlIssuer()

    # ------------------------------------------------------------------
    # Campaigns and budget
    # ------------------------------------------------------------------

    def create_campaign(
        self,
        actor: ActorContext,
        title: str,
        target_amount: Decimal | str | int,
        currency: str | None = None,
        phases: Sequence[PhaseDraft] = (),
        description: str | None = None,
    ) -> dict[str, Any]:
        draft = CampaignDraft(
            title=title,
            target_amount=target_amount,
            currency=currency or self._config.default_currency,
            phases=tuple(phases),
            description=description,
        )

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            campaign = uow.campaigns.create_campaign(draft, actor.actor_id)
            return self._campaign_view(uow, campaign)

        return self._execute(actor, "create_campaign", work)

    def get_campaign(self, actor: ActorContext, campaign_id: UUID) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            return self._campaign_view(uow, uow.campaigns.get(campaign_id))

        return self._execute(actor, "get_campaign", work, campaign_id=campaign_id)

    def record_received_amount(
        self,
        actor: ActorContext,
        campaign_id: UUID,
        amount: Decimal | str | int,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            campaign = uow.campaigns.record_received_amount(campaign_id, amount, actor.actor_id)
            return to_jsonable({
                "campaign_id": campaign.id,
                "received_amount": campaign.received_amount,
                "funding_progress": funding_progress(campaign.received_amount, campaign.target_amount),
            })

        return self._execute(actor, "record_received_amount", work, campaign_id=campaign_id)

    def current_phase(self, actor: ActorContext, campaign_id: UUID) -> dict[str, Any] | None:
        """The lowest-ordinal non-terminal phase, or None when all are done."""

        def work(uow: _UnitOfWork) -> dict[str, Any] | None:
            phase = uow.campaigns.current_phase(campaign_id)
            if phase is None:
                return None
            return self._phase_summary(phase)

        return self._execute(actor, "current_phase", work, campaign_id=campaign_id)

    def set_phase_funds(
        self,
        actor: ActorContext,
        phase_id: UUID,
        total_funds: Decimal | str | int,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            allocation = uow.mutate(
                phase_id, "set_phase_funds", actor.actor_id,
                lambda phase: uow.budget.set_phase_funds(phase, total_funds, actor.actor_id),
            )
            return to_jsonable({"phase_id": phase_id, "funds_allocation": allocation})

        return self._execute(actor, "set_phase_funds", work, phase_id=phase_id)

    def update_budget_split(
        self,
        actor: ActorContext,
        phase_id: UUID,
        ingredient_budget_percentage: int,
        cooking_budget_percentage: int,
        delivery_budget_percentage: int,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            allocation = uow.mutate(
                phase_id, "update_budget_split", actor.actor_id,
                lambda phase: uow.budget.update_budget_split(
                    phase,
                    ingredient_budget_percentage,
                    cooking_budget_percentage,
                    delivery_budget_percentage,
                    actor.actor_id,
                ),
            )
            return to_jsonable({"phase_id": phase_id, "funds_allocation": allocation})

        return self._execute(actor, "update_budget_split", work, phase_id=phase_id)

    # ------------------------------------------------------------------
    # Phase lifecycle
    # ------------------------------------------------------------------

    def get_phase(self, actor: ActorContext, phase_id: UUID) -> dict[str, Any]:
        """Full phase view with the status recomputed from its children."""

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase = uow.phases.get(phase_id)
            derived = uow.orchestrator.derive(phase)
            view = to_jsonable(phase.to_dto())
            view.update(to_jsonable({
                "status": derived.status,
                "needs_resubmission": derived.needs_resubmission,
                "blocking_entity": derived.blocking_entity,
                "milestones": list(derived.milestones),
                "last_activity_at": phase.last_activity_at,
                "funds_allocation": BudgetService.funds_allocation(phase),
                "ingredient_requests": [r.to_dto() for r in uow.ingredients.for_phase(phase.id)],
                "operation_requests": [o.to_dto() for o in uow.operations.for_phase(phase.id)],
                "expense_proofs": [p.to_dto() for p in uow.proofs.for_phase(phase.id)],
                "meal_batches": [b.to_dto() for b in uow.batches.for_phase(phase.id)],
                "delivery_tasks": [t.to_dto() for t in uow.deliveries.for_phase(phase.id)],
            }))
            return view

        return self._execute(actor, "get_phase", work, phase_id=phase_id)

    def cancel_phase(self, actor: ActorContext, phase_id: UUID, reason: str) -> dict[str, Any]:
        return self._terminate(actor, "cancel_phase", phase_id, PhaseStatus.CANCELLED, reason)

    def fail_phase(self, actor: ActorContext, phase_id: UUID, reason: str) -> dict[str, Any]:
        return self._terminate(actor, "fail_phase", phase_id, PhaseStatus.FAILED, reason)

    def _terminate(
        self,
        actor: ActorContext,
        action: str,
        phase_id: UUID,
        target: PhaseStatus,
        reason: str,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            result = uow.orchestrator.terminate(phase_id, target, reason, actor.actor_id)
            if result.event is not None:
                uow.events.append(result.event)
            return to_jsonable({"phase_id": phase_id, "status": result.status})

        return self._execute(actor, action, work, phase_id=phase_id)

    # ------------------------------------------------------------------
    # Ingredient requests
    # ------------------------------------------------------------------

    def submit_ingredient_request(
        self,
        actor: ActorContext,
        phase_id: UUID,
        items: Sequence[IngredientItemInput | Mapping[str, Any]],
        total_cost: Decimal | str | int | None = None,
    ) -> dict[str, Any]:
        lines = [i if isinstance(i, IngredientItemInput) else IngredientItemInput(**i) for i in items]

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            request = uow.mutate(
                phase_id, "submit_ingredient_request", actor.actor_id,
                lambda phase: uow.ingredients.submit(phase, actor.actor_id, lines, total_cost),
            )
            return to_jsonable({
                "request_id": request.id,
                "status": request.status,
                "total_cost": request.total_cost,
            })

        return self._execute(actor, "submit_ingredient_request", work, phase_id=phase_id)

    def approve_ingredient_request(self, actor: ActorContext, request_id: UUID) -> dict[str, Any]:
        return self._review_ingredient_request(
            actor, "approve_ingredient_request", request_id,
            lambda uow: uow.ingredients.approve(request_id, actor.actor_id),
        )

    def reject_ingredient_request(
        self,
        actor: ActorContext,
        request_id: UUID,
        reason: str,
    ) -> dict[str, Any]:
        return self._review_ingredient_request(
            actor, "reject_ingredient_request", request_id,
            lambda uow: uow.ingredients.reject(request_id, actor.actor_id, reason),
        )

    def disburse_ingredient_request(self, actor: ActorContext, request_id: UUID) -> dict[str, Any]:
        return self._review_ingredient_request(
            actor, "disburse_ingredient_request", request_id,
            lambda uow: uow.ingredients.disburse(request_id, actor.actor_id),
        )

    def _review_ingredient_request(
        self,
        actor: ActorContext,
        action: str,
        request_id: UUID,
        step: Callable[[_UnitOfWork], Any],
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase_id = uow.ingredients.phase_id_of(request_id)
            request = uow.mutate(phase_id, action, actor.actor_id, lambda phase: step(uow))
            return to_jsonable({"request_id": request.id, "status": request.status})

        return self._execute(actor, action, work)

    def list_ingredient_requests(
        self,
        actor: ActorContext,
        flt: IngredientRequestFilter | None = None,
    ) -> list[dict[str, Any]]:
        def work(uow: _UnitOfWork) -> list[dict[str, Any]]:
            rows = uow.ingredients.list_requests(flt or IngredientRequestFilter())
            return to_jsonable([r.to_dto() for r in rows])

        return self._execute(actor, "list_ingredient_requests", work)

    # ------------------------------------------------------------------
    # Operation requests
    # ------------------------------------------------------------------

    def submit_operation_request(
        self,
        actor: ActorContext,
        phase_id: UUID,
        expense_type: str,
        title: str,
        total_cost: Decimal | str | int,
    ) -> dict[str, Any]:
        kind = parse_expense_type(expense_type)
        action = f"submit_{kind.value.lower()}_operation_request"

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            request = uow.mutate(
                phase_id, action, actor.actor_id,
                lambda phase: uow.operations.submit(phase, actor.actor_id, kind, title, total_cost),
            )
            return to_jsonable({
                "request_id": request.id,
                "status": request.status,
                "expense_type": request.expense_type,
                "total_cost": request.total_cost,
            })

        return self._execute(actor, "submit_operation_request", work, phase_id=phase_id)

    def approve_operation_request(self, actor: ActorContext, request_id: UUID) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase_id, kind = uow.operations.locate(request_id)
            action = f"approve_{kind.value.lower()}_operation_request"
            request = uow.mutate(
                phase_id, action, actor.actor_id,
                lambda phase: uow.operations.approve(request_id, actor.actor_id),
            )
            return to_jsonable({"request_id": request.id, "status": request.status})

        return self._execute(actor, "approve_operation_request", work)

    def reject_operation_request(
        self,
        actor: ActorContext,
        request_id: UUID,
        reason: str,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase_id, _ = uow.operations.locate(request_id)
            request = uow.mutate(
                phase_id, "reject_operation_request", actor.actor_id,
                lambda phase: uow.operations.reject(request_id, actor.actor_id, reason),
            )
            return to_jsonable({"request_id": request.id, "status": request.status})

        return self._execute(actor, "reject_operation_request", work)

    def my_operation_requests(
        self,
        actor: ActorContext,
        status: OperationRequestStatus | str | None = None,
    ) -> list[dict[str, Any]]:
        def work(uow: _UnitOfWork) -> list[dict[str, Any]]:
            rows = uow.operations.for_requester(actor.actor_id, status)
            return to_jsonable([r.to_dto() for r in rows])

        return self._execute(actor, "my_operation_requests", work)

    # ------------------------------------------------------------------
    # Expense proofs
    # ------------------------------------------------------------------

    def submit_expense_proof(
        self,
        actor: ActorContext,
        request_id: UUID,
        media_keys: Sequence[str],
        amount: Decimal | str | int,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            kind, request = uow.proofs.resolve_request(request_id)
            self._require_owner(actor, ExpenseProofService.request_owner(request), "submit_expense_proof")
            action = (
                "submit_ingredient_proof"
                if kind is ProofRequestKind.INGREDIENT
                else "submit_operation_proof"
            )
            proof = uow.mutate(
                request.phase_id, action, actor.actor_id,
                lambda phase: uow.proofs.submit(
                    kind, uow.proofs.resolve_request(request_id, fresh=True)[1],
                    actor.actor_id, media_keys, amount,
                ),
            )
            return to_jsonable({
                "proof_id": proof.id,
                "request_id": proof.request_id,
                "status": proof.status,
                "amount": proof.amount,
                "planned_amount": proof.planned_amount,
                "variance_amount": proof.variance_amount,
                "variance_percent": proof.variance_percent,
                "variance_warning": proof.variance_warning,
            })

        return self._execute(actor, "submit_expense_proof", work)

    def approve_expense_proof(
        self,
        actor: ActorContext,
        proof_id: UUID,
        note: str | None = None,
    ) -> dict[str, Any]:
        return self._review_proof(
            actor, "approve_expense_proof", proof_id,
            lambda uow: uow.proofs.approve(proof_id, actor.actor_id, note),
        )

    def reject_expense_proof(self, actor: ActorContext, proof_id: UUID, note: str) -> dict[str, Any]:
        return self._review_proof(
            actor, "reject_expense_proof", proof_id,
            lambda uow: uow.proofs.reject(proof_id, actor.actor_id, note),
        )

    def _review_proof(
        self,
        actor: ActorContext,
        action: str,
        proof_id: UUID,
        step: Callable[[_UnitOfWork], Any],
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase_id, kind = uow.proofs.locate(proof_id)
            gate = (
                "review_ingredient_proof"
                if kind is ProofRequestKind.INGREDIENT
                else "review_operation_proof"
            )
            proof = uow.mutate(phase_id, gate, actor.actor_id, lambda phase: step(uow))
            return to_jsonable({
                "proof_id": proof.id,
                "status": proof.status,
                "admin_note": proof.admin_note,
            })

        return self._execute(actor, action, work)

    def my_expense_proofs(
        self,
        actor: ActorContext,
        status: ExpenseProofStatus | str | None = None,
    ) -> list[dict[str, Any]]:
        def work(uow: _UnitOfWork) -> list[dict[str, Any]]:
            rows = uow.proofs.for_submitter(actor.actor_id, status)
            return to_jsonable([p.to_dto() for p in rows])

        return self._execute(actor, "my_expense_proofs", work)

    def generate_expense_proof_upload_urls(
        self,
        actor: ActorContext,
        request_id: UUID,
        file_count: int,
        file_types: Sequence[str],
    ) -> list[dict[str, Any]]:
        allowed = self._config.uploads.expense_proof_file_types
        types = self._check_upload(file_count, file_types, allowed)

        def work(uow: _UnitOfWork) -> UUID:
            _, request = uow.proofs.resolve_request(request_id)
            self._require_owner(
                actor, ExpenseProofService.request_owner(request), "generate_expense_proof_upload_urls",
            )
            _require_open(uow.phases.get(request.phase_id))
            return request.id

        owner_id = self._execute(actor, "generate_expense_proof_upload_urls", work)
        return to_jsonable(list(self._upload_issuer.generate_upload_urls(owner_id, file_count, types)))

    # ------------------------------------------------------------------
    # Meal batches
    # ------------------------------------------------------------------

    def create_meal_batch(
        self,
        actor: ActorContext,
        phase_id: UUID,
        food_name: str,
        quantity: int,
        ingredient_usages: Sequence[IngredientUsageInput | Mapping[str, Any]] = (),
        media_keys: Sequence[str] = (),
        planned_meal_id: UUID | None = None,
    ) -> dict[str, Any]:
        usages = self._usages(ingredient_usages)

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            batch = uow.mutate(
                phase_id, "create_meal_batch", actor.actor_id,
                lambda phase: uow.batches.create(
                    phase, actor.actor_id, food_name, quantity, usages, media_keys, planned_meal_id,
                ),
            )
            return to_jsonable({"batch_id": batch.id, "status": batch.status})

        return self._execute(actor, "create_meal_batch", work, phase_id=phase_id)

    def add_ingredient_usage(
        self,
        actor: ActorContext,
        batch_id: UUID,
        ingredient_usages: Sequence[IngredientUsageInput | Mapping[str, Any]],
    ) -> dict[str, Any]:
        usages = self._usages(ingredient_usages)

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase_id = uow.batches.phase_id_of(batch_id)
            batch = uow.mutate(
                phase_id, "add_ingredient_usage", actor.actor_id,
                lambda phase: uow.batches.add_usage(batch_id, usages, actor.actor_id),
            )
            return to_jsonable(batch.to_dto())

        return self._execute(actor, "add_ingredient_usage", work)

    def update_meal_batch_status(
        self,
        actor: ActorContext,
        batch_id: UUID,
        status: MealBatchStatus | str,
        cooked_date: datetime | None = None,
        media_keys: Sequence[str] = (),
    ) -> dict[str, Any]:
        """Kitchen staff mark a batch READY; COMPLETED follows from delivery."""
        target = str(getattr(status, "value", status)).upper()

        def step(uow: _UnitOfWork) -> MealBatchModel:
            if target != MealBatchStatus.READY.value:
                existing = uow.batches.get(batch_id)
                raise InvalidStateTransitionError(
                    "meal_batch", str(existing.id), existing.status, target.lower(),
                )
            return uow.batches.mark_ready(batch_id, actor.actor_id, cooked_date, media_keys)

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            batch = uow.mutate(
                uow.batches.phase_id_of(batch_id), "mark_meal_batch_ready", actor.actor_id,
                lambda phase: step(uow),
            )
            return to_jsonable({
                "batch_id": batch.id,
                "status": batch.status,
                "cooked_date": batch.cooked_date,
            })

        return self._execute(actor, "update_meal_batch_status", work)

    def list_meal_batches(
        self,
        actor: ActorContext,
        flt: MealBatchFilter | None = None,
    ) -> list[dict[str, Any]]:
        def work(uow: _UnitOfWork) -> list[dict[str, Any]]:
            return to_jsonable([b.to_dto() for b in uow.batches.list_batches(flt or MealBatchFilter())])

        return self._execute(actor, "list_meal_batches", work)

    def generate_meal_batch_upload_urls(
        self,
        actor: ActorContext,
        phase_id: UUID,
        file_count: int,
        file_types: Sequence[str],
    ) -> list[dict[str, Any]]:
        allowed = self._config.uploads.meal_batch_file_types
        types = self._check_upload(file_count, file_types, allowed)

        def work(uow: _UnitOfWork) -> UUID:
            phase = uow.phases.get(phase_id)
            _require_open(phase)
            return phase.id

        owner_id = self._execute(actor, "generate_meal_batch_upload_urls", work, phase_id=phase_id)
        return to_jsonable(list(self._upload_issuer.generate_upload_urls(owner_id, file_count, types)))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def create_delivery_task(
        self,
        actor: ActorContext,
        batch_id: UUID,
        delivery_staff_id: UUID,
        replaces_task_id: UUID | None = None,
    ) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            task = uow.mutate(
                uow.batches.phase_id_of(batch_id), "create_delivery_task", actor.actor_id,
                lambda phase: uow.deliveries.create_task(
                    uow.batches.get(batch_id, fresh=True),
                    delivery_staff_id, actor.actor_id, replaces_task_id,
                ),
            )
            return to_jsonable({
                "task_id": task.id,
                "status": task.status,
                "replaces_task_id": task.replaces_task_id,
            })

        return self._execute(actor, "create_delivery_task", work)

    def update_delivery_task_status(
        self,
        actor: ActorContext,
        task_id: UUID,
        status: DeliveryTaskStatus | str,
        note: str | None = None,
    ) -> dict[str, Any]:
        target = parse_task_status(status)

        def work(uow: _UnitOfWork) -> dict[str, Any]:
            phase_id = uow.deliveries.phase_id_of(task_id)
            action = _TASK_ACTIONS.get(target)
            if action is None:
                existing = uow.deliveries.get(task_id)
                raise InvalidStateTransitionError(
                    "delivery_task", str(existing.id), existing.status, target.value.lower(),
                )
            task = uow.mutate(
                phase_id, action, actor.actor_id,
                lambda phase: uow.deliveries.update_status(
                    task_id, target, actor.actor_id, _role_name(actor), note,
                ),
            )
            return to_jsonable({"task_id": task.id, "status": task.status})

        return self._execute(actor, "update_delivery_task_status", work)

    def get_delivery_task(self, actor: ActorContext, task_id: UUID) -> dict[str, Any]:
        def work(uow: _UnitOfWork) -> dict[str, Any]:
            return to_jsonable(uow.deliveries.get(task_id).to_dto(include_logs=True))

        return self._execute(actor, "get_delivery_task", work)

    def list_delivery_tasks(
        self,
        actor: ActorContext,
        flt: DeliveryTaskFilter | None = None,
    ) -> list[dict[str, Any]]:
        def work(uow: _UnitOfWork) -> list[dict[str, Any]]:
            return to_jsonable([t.to_dto() for t in uow.deliveries.list_tasks(flt or DeliveryTaskFilter())])

        return self._execute(actor, "list_delivery_tasks", work)

    def my_delivery_tasks(
        self,
        actor: ActorContext,
        status: DeliveryTaskStatus | str | None = None,
    ) -> list[dict[str, Any]]:
        flt = DeliveryTaskFilter(
            delivery_staff_id=actor.actor_id,
            status=parse_task_status(status) if status is not None else None,
        )

        def work(uow: _UnitOfWork) -> list[dict[str, Any]]:
            return to_jsonable([t.to_dto() for t in uow.deliveries.list_tasks(flt)])

        return self._execute(actor, "my_delivery_tasks", work)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(
        self,
        actor: ActorContext,
        action: str,
        work: Callable[[_UnitOfWork], T],
        campaign_id: UUID | None = None,
        phase_id: UUID | None = None,
    ) -> T:
        authorize(actor, action)
        attempts = self._config.conflict_retries + 1
        with LogContext.bind(
            correlation_id=uuid4(),
            actor_id=actor.actor_id,
            campaign_id=campaign_id,
            phase_id=phase_id,
        ):
            start = time.monotonic()
            for attempt in range(1, attempts + 1):
                try:
                    with session_scope(self._session_factory) as session:
                        uow = _UnitOfWork(session, self._clock, self._config)
                        result = work(uow)
                    break
                except ConflictError:
                    if attempt >= attempts:
                        logger.warning(
                            "engine_conflict_exhausted",
                            extra={"action": action, "attempts": attempt},
                        )
                        raise
                    logger.info(
                        "engine_conflict_retry",
                        extra={"action": action, "attempt": attempt},
                    )

            logger.debug(
                "engine_call_completed",
                extra={
                    "action": action,
                    "duration_ms": round((time.monotonic() - start) * 1000, 2),
                    "status_changes": len(uow.events),
                },
            )
            self._notify(uow.events)
        return result

    def _notify(self, events: Sequence[PhaseStatusChanged]) -> None:
        for event in events:
            try:
                self._notifier.phase_status_changed(event)
            except Exception:
                logger.exception(
                    "notification_dispatch_failed",
                    extra={"phase_id": str(event.phase_id), "to_status": event.to_status},
                )

    @staticmethod
    def _require_owner(actor: ActorContext, owner_id: UUID, action: str) -> None:
        if owner_id != actor.actor_id:
            raise UnauthorizedActorError(
                str(actor.actor_id), _role_name(actor), action, "not the owner of the request",
            )

    def _check_upload(
        self,
        file_count: int,
        file_types: Sequence[str],
        allowed: Sequence[str],
    ) -> list[str]:
        max_files = self._config.uploads.max_files
        if isinstance(file_count, bool) or not isinstance(file_count, int):
            raise ValidationError("file_count", "must be an integer")
        if not 1 <= file_count <= max_files:
            raise ValidationError("file_count", f"must be between 1 and {max_files}")
        types = [str(t).strip().lower().lstrip(".") for t in file_types or ()]
        if len(types) != file_count:
            raise ValidationError("file_types", "one file type per file is required")
        rejected = sorted({t for t in types if t not in allowed})
        if rejected:
            raise ValidationError("file_types", f"not allowed: {', '.join(rejected)}")
        return types

    @staticmethod
    def _usages(
        usages: Sequence[IngredientUsageInput | Mapping[str, Any]],
    ) -> list[IngredientUsageInput]:
        return [u if isinstance(u, IngredientUsageInput) else IngredientUsageInput(**u) for u in usages or ()]

    @staticmethod
    def _phase_summary(phase: PhaseModel) -> dict[str, Any]:
        view = to_jsonable(phase.to_dto())
        view["funds_allocation"] = to_jsonable(BudgetService.funds_allocation(phase))
        return view

    def _campaign_view(self, uow: _UnitOfWork, campaign: CampaignModel) -> dict[str, Any]:
        current = uow.campaigns.current_phase(campaign.id)
        dto = campaign.to_dto()
        view = to_jsonable(dto)
        view.update(to_jsonable({
            "total_phases": dto.total_phases,
            "funding_progress": funding_progress(campaign.received_amount, campaign.target_amount),
            "current_phase_id": current.id if current is not None else None,
        }))
        return view

