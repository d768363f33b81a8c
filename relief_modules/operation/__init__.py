"""
Operation Module (``relief_modules.operation``).

Cooking and delivery disbursement requests.
"""

from relief_modules.operation.models import (
    OperationExpenseType,
    OperationRequest,
    OperationRequestStatus,
)
from relief_modules.operation.service import OperationRequestService, parse_expense_type
from relief_modules.operation.workflows import OPERATION_REQUEST_WORKFLOW

__all__ = [
    "OPERATION_REQUEST_WORKFLOW",
    "OperationExpenseType",
    "OperationRequest",
    "OperationRequestService",
    "OperationRequestStatus",
    "parse_expense_type",
]
