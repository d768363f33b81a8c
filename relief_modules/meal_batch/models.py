"""
Meal Batch Domain Models (``relief_modules.meal_batch.models``).

A meal batch is one cooking run.  It consumes line items of the phase's
disbursed ingredient request and becomes the unit of delivery.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class MealBatchStatus(str, Enum):
    PENDING = "PENDING"
    READY = "READY"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class IngredientUsageInput:
    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class IngredientUsage:
    id: UUID
    batch_id: UUID
    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class MealBatch:
    id: UUID
    phase_id: UUID
    kitchen_staff_id: UUID
    food_name: str
    quantity: int
    status: MealBatchStatus = MealBatchStatus.PENDING
    cooked_date: datetime | None = None
    planned_meal_id: UUID | None = None
    media_keys: tuple[str, ...] = ()
    ingredient_usages: tuple[IngredientUsage, ...] = field(default=())
    created_at: datetime | None = None


@dataclass(frozen=True)
class MealBatchFilter:
    phase_id: UUID | None = None
    campaign_id: UUID | None = None
    status: MealBatchStatus | None = None
    kitchen_staff_id: UUID | None = None
