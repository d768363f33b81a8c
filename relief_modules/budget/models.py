"""
Budget Domain Models (``relief_modules.budget.models``).

The three fixed budget buckets of a phase.  Amounts themselves live on the
phase row; the allocation arithmetic is ``relief_engines.allocation``.
"""

from enum import Enum

from relief_engines.allocation import BudgetSplit, FundsAllocation


class BudgetBucket(str, Enum):
    """Budget buckets, in allocation order (the last absorbs rounding)."""
    INGREDIENT = "ingredient"
    COOKING = "cooking"
    DELIVERY = "delivery"


__all__ = ["BudgetBucket", "BudgetSplit", "FundsAllocation"]
