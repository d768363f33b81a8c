"""
Operation Request Domain Models (``relief_modules.operation.models``).

Operation requests ask for the cooking or delivery disbursement of a
phase.  The total is declared up front and never changes afterwards.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from relief_modules.budget.models import BudgetBucket


class OperationExpenseType(str, Enum):
    COOKING = "COOKING"
    DELIVERY = "DELIVERY"

    @property
    def bucket(self) -> BudgetBucket:
        return BudgetBucket.COOKING if self is OperationExpenseType.COOKING else BudgetBucket.DELIVERY


class OperationRequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class OperationRequest:
    id: UUID
    phase_id: UUID
    requester_id: UUID
    expense_type: OperationExpenseType
    title: str
    total_cost: Decimal
    status: OperationRequestStatus = OperationRequestStatus.PENDING
    reviewed_by_id: UUID | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
