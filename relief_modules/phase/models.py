"""
Phase Domain Models (``relief_modules.phase.models``).

Responsibility
--------------
Frozen dataclass value objects for a campaign phase: its budget split,
derived fund amounts, cached lifecycle status, terminal lock, and planned
ingredients and meals.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* ``ingredient_fund_amount + cooking_fund_amount + delivery_fund_amount ==
  total_funds`` (maintained by ``BudgetService``).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from relief_engines.phase_status import PhaseStatus


@dataclass(frozen=True)
class PlannedIngredient:
    """An ingredient the phase plans to buy."""
    id: UUID
    phase_id: UUID
    name: str
    quantity: Decimal
    unit: str


@dataclass(frozen=True)
class PlannedMeal:
    """A meal the phase plans to cook."""
    id: UUID
    phase_id: UUID
    name: str
    quantity: int


@dataclass(frozen=True)
class PlannedIngredientDraft:
    name: str
    quantity: Decimal
    unit: str


@dataclass(frozen=True)
class PlannedMealDraft:
    name: str
    quantity: int


@dataclass(frozen=True)
class PhaseDraft:
    """Input for creating a phase inside a campaign."""
    phase_name: str
    location: str
    ingredient_budget_percentage: int
    cooking_budget_percentage: int
    delivery_budget_percentage: int
    total_funds: Decimal = Decimal("0")
    ingredient_purchase_date: datetime | None = None
    cooking_date: datetime | None = None
    delivery_date: datetime | None = None
    planned_ingredients: tuple[PlannedIngredientDraft, ...] = ()
    planned_meals: tuple[PlannedMealDraft, ...] = ()


@dataclass(frozen=True)
class Phase:
    """A campaign phase with its derived budget buckets."""
    id: UUID
    campaign_id: UUID
    ordinal: int
    phase_name: str
    location: str
    currency: str
    ingredient_budget_percentage: int
    cooking_budget_percentage: int
    delivery_budget_percentage: int
    total_funds: Decimal
    ingredient_fund_amount: Decimal
    cooking_fund_amount: Decimal
    delivery_fund_amount: Decimal
    status: PhaseStatus = PhaseStatus.PLANNING
    needs_resubmission: bool = False
    blocking_entity: str | None = None
    terminal_reason: str | None = None
    terminated_at: datetime | None = None
    terminated_by_id: UUID | None = None
    ingredient_purchase_date: datetime | None = None
    cooking_date: datetime | None = None
    delivery_date: datetime | None = None
    version: int = 1
    planned_ingredients: tuple[PlannedIngredient, ...] = field(default=())
    planned_meals: tuple[PlannedMeal, ...] = field(default=())
