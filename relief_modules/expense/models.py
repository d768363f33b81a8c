"""
Expense Proof Domain Models (``relief_modules.expense.models``).

Responsibility
--------------
Frozen value objects for expense proofs: evidence (media keys plus the
claimed amount) submitted against a disbursed ingredient request or an
approved operation request.

Invariants enforced
-------------------
* ``media_keys`` is never empty.
* Amount variance is recorded, never rejected: ``variance_amount`` =
  ``amount - planned_amount``; ``variance_warning`` is set when the
  percentage exceeds the configured tolerance.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ExpenseProofStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ProofRequestKind(str, Enum):
    """Which ledger the proved request lives in."""
    INGREDIENT = "INGREDIENT"
    OPERATION = "OPERATION"


@dataclass(frozen=True)
class ExpenseProof:
    id: UUID
    phase_id: UUID
    request_id: UUID
    request_kind: ProofRequestKind
    submitter_id: UUID
    media_keys: tuple[str, ...]
    amount: Decimal
    planned_amount: Decimal
    variance_amount: Decimal
    variance_percent: Decimal
    variance_warning: bool
    status: ExpenseProofStatus = ExpenseProofStatus.PENDING
    admin_note: str | None = None
    reviewed_by_id: UUID | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None
