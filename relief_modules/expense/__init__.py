"""
Expense Proof Module (``relief_modules.expense``).

Receipts and photos proving how disbursed money was spent, audited by an
auditor or admin.
"""

from relief_modules.expense.models import ExpenseProof, ExpenseProofStatus, ProofRequestKind
from relief_modules.expense.service import ExpenseProofService, clean_media_keys
from relief_modules.expense.workflows import EXPENSE_PROOF_WORKFLOW

__all__ = [
    "EXPENSE_PROOF_WORKFLOW",
    "ExpenseProof",
    "ExpenseProofService",
    "ExpenseProofStatus",
    "ProofRequestKind",
    "clean_media_keys",
]
