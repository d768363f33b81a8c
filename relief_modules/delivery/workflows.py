"""Delivery Task Workflows.

Transitions are driven by the assigned delivery staff member.  The action
names double as the client's target statuses.
"""

from relief_kernel.domain.workflow import Guard, Transition, Workflow
from relief_kernel.logging_config import get_logger

logger = get_logger("modules.delivery.workflows")


ASSIGNED_STAFF_ONLY = Guard(
    name="assigned_staff_only",
    description="Only the assigned delivery staff member may move the task",
)

FAILURE_NOTE_REQUIRED = Guard(
    name="failure_note_required",
    description="A failed delivery carries a note explaining why",
)

DELIVERY_TASK_WORKFLOW = Workflow(
    name="delivery_task",
    description="Delivery of a meal batch by one staff member",
    initial_state="PENDING",
    states=("PENDING", "ACCEPTED", "REJECTED", "OUT_FOR_DELIVERY", "COMPLETED", "FAILED"),
    transitions=(
        Transition("PENDING", "ACCEPTED", action="accept", guard=ASSIGNED_STAFF_ONLY),
        Transition("PENDING", "REJECTED", action="reject", guard=ASSIGNED_STAFF_ONLY),
        Transition("ACCEPTED", "OUT_FOR_DELIVERY", action="start", guard=ASSIGNED_STAFF_ONLY),
        Transition("OUT_FOR_DELIVERY", "COMPLETED", action="complete", guard=ASSIGNED_STAFF_ONLY),
        Transition("OUT_FOR_DELIVERY", "FAILED", action="fail", guard=FAILURE_NOTE_REQUIRED),
    ),
    terminal_states=("REJECTED", "COMPLETED", "FAILED"),
)

logger.debug(
    "delivery_workflow_defined",
    extra={
        "workflow": DELIVERY_TASK_WORKFLOW.name,
        "guards": [ASSIGNED_STAFF_ONLY.name, FAILURE_NOTE_REQUIRED.name],
    },
)
