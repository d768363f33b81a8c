"""
Ingredient Request Domain Models (``relief_modules.ingredient.models``).

Responsibility
--------------
Frozen value objects for ingredient purchase requests raised by kitchen
staff against a phase's ingredient bucket.

Invariants enforced
-------------------
* ``total_cost`` equals the sum of ``line_total`` over the items.
* ``line_total`` equals ``quantity * unit_price`` at minor-unit precision.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class IngredientRequestStatus(str, Enum):
    """Ingredient request lifecycle states."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"


LIVE_STATUSES = frozenset({
    IngredientRequestStatus.PENDING,
    IngredientRequestStatus.ACCEPTED,
    IngredientRequestStatus.DISBURSED,
})


@dataclass(frozen=True)
class IngredientItemInput:
    """One line of a request as submitted by the client."""
    ingredient_name: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    line_total: Decimal | None = None
    supplier: str | None = None
    planned_ingredient_id: UUID | None = None


@dataclass(frozen=True)
class IngredientRequestItem:
    id: UUID
    request_id: UUID
    line_number: int
    ingredient_name: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    line_total: Decimal
    supplier: str | None = None
    planned_ingredient_id: UUID | None = None


@dataclass(frozen=True)
class IngredientRequest:
    """An ingredient purchase request."""
    id: UUID
    phase_id: UUID
    kitchen_staff_id: UUID
    total_cost: Decimal
    status: IngredientRequestStatus = IngredientRequestStatus.PENDING
    reviewed_by_id: UUID | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    disbursed_by_id: UUID | None = None
    disbursed_at: datetime | None = None
    created_at: datetime | None = None
    items: tuple[IngredientRequestItem, ...] = field(default=())


@dataclass(frozen=True)
class IngredientRequestFilter:
    """Query filter for ``list_ingredient_requests``."""
    phase_id: UUID | None = None
    campaign_id: UUID | None = None
    status: IngredientRequestStatus | None = None
    kitchen_staff_id: UUID | None = None
