"""Operation Request Workflows."""

from relief_kernel.domain.workflow import Guard, Transition, Workflow

MATCHES_OPERATION_BUCKET = Guard(
    name="matches_operation_bucket",
    description="Total cost reconciles with the cooking or delivery fund amount",
)

OPERATION_REQUEST_WORKFLOW = Workflow(
    name="operation_request",
    description="Cooking / delivery disbursement request",
    initial_state="PENDING",
    states=("PENDING", "APPROVED", "REJECTED"),
    transitions=(
        Transition("PENDING", "APPROVED", action="approve", guard=MATCHES_OPERATION_BUCKET),
        Transition("PENDING", "REJECTED", action="reject"),
    ),
    terminal_states=("APPROVED", "REJECTED"),
)
