"""
Ingredient Module (``relief_modules.ingredient``).

Kitchen staff request ingredient purchases against the phase ingredient
bucket; an admin reviews and disburses the request.
"""

from relief_modules.ingredient.models import (
    IngredientItemInput,
    IngredientRequest,
    IngredientRequestFilter,
    IngredientRequestItem,
    IngredientRequestStatus,
)
from relief_modules.ingredient.service import IngredientRequestService
from relief_modules.ingredient.workflows import INGREDIENT_REQUEST_WORKFLOW

__all__ = [
    "INGREDIENT_REQUEST_WORKFLOW",
    "IngredientItemInput",
    "IngredientRequest",
    "IngredientRequestFilter",
    "IngredientRequestItem",
    "IngredientRequestService",
    "IngredientRequestStatus",
]
