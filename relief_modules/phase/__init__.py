"""
Phase Module (``relief_modules.phase``).

A phase is one budgeted run of ingredient purchase, cooking and delivery
inside a campaign.
"""

from relief_modules.phase.models import (
    Phase,
    PhaseDraft,
    PhaseStatus,
    PlannedIngredient,
    PlannedIngredientDraft,
    PlannedMeal,
    PlannedMealDraft,
)
from relief_modules.phase.service import PhaseService

__all__ = [
    "Phase",
    "PhaseDraft",
    "PhaseService",
    "PhaseStatus",
    "PlannedIngredient",
    "PlannedIngredientDraft",
    "PlannedMeal",
    "PlannedMealDraft",
]
