"""
Meal Batch Module (``relief_modules.meal_batch``).

Cooking runs of a phase and the ingredients they consume.
"""

from relief_modules.meal_batch.models import (
    IngredientUsage,
    IngredientUsageInput,
    MealBatch,
    MealBatchFilter,
    MealBatchStatus,
)
from relief_modules.meal_batch.service import MealBatchService
from relief_modules.meal_batch.workflows import MEAL_BATCH_WORKFLOW

__all__ = [
    "MEAL_BATCH_WORKFLOW",
    "IngredientUsage",
    "IngredientUsageInput",
    "MealBatch",
    "MealBatchFilter",
    "MealBatchService",
    "MealBatchStatus",
]
