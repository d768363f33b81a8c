"""Expense Proof Workflows.

Auditor review of submitted spending evidence.
"""

from relief_kernel.domain.workflow import Guard, Transition, Workflow

EVIDENCE_ATTACHED = Guard(
    name="evidence_attached",
    description="At least one media key is attached",
)

NOTE_PROVIDED = Guard(
    name="note_provided",
    description="Rejection carries an auditor note",
)

EXPENSE_PROOF_WORKFLOW = Workflow(
    name="expense_proof",
    description="Expense proof audit",
    initial_state="PENDING",
    states=("PENDING", "APPROVED", "REJECTED"),
    transitions=(
        Transition("PENDING", "APPROVED", action="approve", guard=EVIDENCE_ATTACHED),
        Transition("PENDING", "REJECTED", action="reject", guard=NOTE_PROVIDED),
    ),
    terminal_states=("APPROVED", "REJECTED"),
)
