"""
Budget Module (``relief_modules.budget``).

Three fixed buckets per phase (ingredient, cooking, delivery) derived from
integer percentages of the phase's total funds.
"""

from relief_modules.budget.models import BudgetBucket, BudgetSplit, FundsAllocation
from relief_modules.budget.service import BudgetService

__all__ = ["BudgetBucket", "BudgetService", "BudgetSplit", "FundsAllocation"]
