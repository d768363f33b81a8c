"""Ingredient Request Workflows.

State machine for ingredient purchase requests.
"""

from relief_kernel.domain.workflow import Guard, Transition, Workflow
from relief_kernel.logging_config import get_logger

logger = get_logger("modules.ingredient.workflows")


MATCHES_INGREDIENT_BUCKET = Guard(
    name="matches_ingredient_bucket",
    description="Total cost equals the phase ingredient fund amount",
)

INGREDIENT_REQUEST_WORKFLOW = Workflow(
    name="ingredient_request",
    description="Kitchen staff ingredient purchase request",
    initial_state="PENDING",
    states=("PENDING", "ACCEPTED", "REJECTED", "DISBURSED"),
    transitions=(
        Transition("PENDING", "ACCEPTED", action="approve", guard=MATCHES_INGREDIENT_BUCKET),
        Transition("PENDING", "REJECTED", action="reject"),
        Transition("ACCEPTED", "DISBURSED", action="disburse", guard=MATCHES_INGREDIENT_BUCKET),
    ),
    terminal_states=("REJECTED", "DISBURSED"),
)

logger.debug(
    "ingredient_workflow_defined",
    extra={"workflow": INGREDIENT_REQUEST_WORKFLOW.name},
)
