"""
Role-based access table for the facade.

Each facade operation names the roles allowed to call it.  Ownership checks
(the assigned delivery staff member, the request owner) are done by the
operation itself on top of this table.
"""

from __future__ import annotations

from relief_kernel.exceptions import UnauthorizedActorError
from relief_services.collaborators import ActorContext, ActorRole

ADMIN = ActorRole.ADMIN
KITCHEN = ActorRole.KITCHEN_STAFF
DELIVERY = ActorRole.DELIVERY_STAFF
AUDITOR = ActorRole.AUDITOR
FUNDRAISER = ActorRole.FUNDRAISER

ALL_ROLES = frozenset(ActorRole)

PERMISSIONS: dict[str, frozenset[ActorRole]] = {
    # campaign and budget
    "create_campaign": frozenset({ADMIN, FUNDRAISER}),
    "record_received_amount": frozenset({ADMIN, FUNDRAISER}),
    "set_phase_funds": frozenset({ADMIN}),
    "update_budget_split": frozenset({ADMIN}),
    "cancel_phase": frozenset({ADMIN}),
    "fail_phase": frozenset({ADMIN}),
    # ingredient requests
    "submit_ingredient_request": frozenset({KITCHEN}),
    "approve_ingredient_request": frozenset({ADMIN}),
    "reject_ingredient_request": frozenset({ADMIN}),
    "disburse_ingredient_request": frozenset({ADMIN}),
    # operation requests
    "submit_operation_request": frozenset({KITCHEN, DELIVERY}),
    "approve_operation_request": frozenset({ADMIN}),
    "reject_operation_request": frozenset({ADMIN}),
    # expense proofs
    "submit_expense_proof": frozenset({KITCHEN, DELIVERY}),
    "approve_expense_proof": frozenset({ADMIN, AUDITOR}),
    "reject_expense_proof": frozenset({ADMIN, AUDITOR}),
    "generate_expense_proof_upload_urls": frozenset({KITCHEN, DELIVERY}),
    # meal batches
    "create_meal_batch": frozenset({KITCHEN}),
    "add_ingredient_usage": frozenset({KITCHEN}),
    "update_meal_batch_status": frozenset({KITCHEN}),
    "generate_meal_batch_upload_urls": frozenset({KITCHEN}),
    # delivery
    "create_delivery_task": frozenset({ADMIN, KITCHEN}),
    "update_delivery_task_status": frozenset({DELIVERY}),
    # reads
    "get_phase": ALL_ROLES,
    "get_campaign": ALL_ROLES,
    "current_phase": ALL_ROLES,
    "list_ingredient_requests": ALL_ROLES,
    "list_meal_batches": ALL_ROLES,
    "list_delivery_tasks": frozenset({ADMIN, KITCHEN, AUDITOR, FUNDRAISER}),
    "get_delivery_task": ALL_ROLES,
    "my_operation_requests": frozenset({KITCHEN, DELIVERY}),
    "my_expense_proofs": frozenset({KITCHEN, DELIVERY}),
    "my_delivery_tasks": frozenset({DELIVERY}),
}


def authorize(actor: ActorContext, action: str) -> None:
    """
    Raises:
        UnauthorizedActorError: unknown role, or the role may not call ``action``.
        KeyError: ``action`` is not in the table (a programming error).
    """
    allowed = PERMISSIONS[action]
    role = actor.role
    if not isinstance(role, ActorRole):
        try:
            role = ActorRole(role)
        except ValueError:
            raise UnauthorizedActorError(str(actor.actor_id), str(role), action, "unknown role") from None
    if role not in allowed:
        raise UnauthorizedActorError(str(actor.actor_id), role.value, action)
