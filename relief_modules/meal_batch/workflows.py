"""Meal Batch Workflows.

PENDING -> READY is the kitchen's explicit "cooked" action.  READY ->
COMPLETED happens when every active delivery task of the batch completes.
"""

from relief_kernel.domain.workflow import Guard, Transition, Workflow

MEDIA_ATTACHED = Guard(
    name="media_attached",
    description="The batch carries at least one photo or video of the cooked meals",
)

ALL_DELIVERIES_COMPLETED = Guard(
    name="all_deliveries_completed",
    description="Every active delivery task of the batch is COMPLETED",
)

MEAL_BATCH_WORKFLOW = Workflow(
    name="meal_batch",
    description="Cooking batch lifecycle",
    initial_state="PENDING",
    states=("PENDING", "READY", "COMPLETED"),
    transitions=(
        Transition("PENDING", "READY", action="mark_ready", guard=MEDIA_ATTACHED),
        Transition("READY", "COMPLETED", action="complete", guard=ALL_DELIVERIES_COMPLETED),
    ),
    terminal_states=("COMPLETED",),
)
