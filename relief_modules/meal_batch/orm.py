"""
SQLAlchemy ORM persistence models for the Meal Batch module.

Invariants enforced
-------------------
* Usage quantities are ``Decimal`` (Numeric(38,9)).
* Each usage row references an ``ingredient_request_items`` row.
* Usage rows are only added while the batch is PENDING.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_kernel.db.base import TrackedBase


class MealBatchModel(TrackedBase):
    """
    One cooking run of a phase.

    Guarantees:
        - ``status`` follows PENDING -> READY -> COMPLETED.
        - ``media_keys`` is non-empty once READY.
    """

    __tablename__ = "meal_batches"

    __table_args__ = (
        Index("idx_meal_batch_phase", "phase_id"),
        Index("idx_meal_batch_status", "status"),
        Index("idx_meal_batch_staff", "kitchen_staff_id"),
    )

    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    kitchen_staff_id: Mapped[UUID]
    food_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    cooked_date: Mapped[datetime | None]
    planned_meal_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("phase_planned_meals.id"), nullable=True,
    )
    media_keys: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    ingredient_usages: Mapped[list["MealBatchIngredientUsageModel"]] = relationship(
        "MealBatchIngredientUsageModel",
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from relief_modules.meal_batch.models import MealBatch, MealBatchStatus

        return MealBatch(
            id=self.id,
            phase_id=self.phase_id,
            kitchen_staff_id=self.kitchen_staff_id,
            food_name=self.food_name,
            quantity=self.quantity,
            status=MealBatchStatus(self.status),
            cooked_date=self.cooked_date,
            planned_meal_id=self.planned_meal_id,
            media_keys=tuple(self.media_keys or ()),
            ingredient_usages=tuple(u.to_dto() for u in self.ingredient_usages),
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<MealBatchModel {self.food_name} x{self.quantity} [{self.status}]>"


class MealBatchIngredientUsageModel(TrackedBase):
    """Quantity of one ingredient request line consumed by a batch."""

    __tablename__ = "meal_batch_ingredient_usages"

    __table_args__ = (
        Index("idx_usage_batch", "batch_id"),
        Index("idx_usage_item", "item_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("meal_batches.id"), nullable=False)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("ingredient_request_items.id"), nullable=False)
    quantity: Mapped[Decimal]

    batch: Mapped["MealBatchModel"] = relationship("MealBatchModel", back_populates="ingredient_usages")

    def to_dto(self):
        from relief_modules.meal_batch.models import IngredientUsage

        return IngredientUsage(
            id=self.id,
            batch_id=self.batch_id,
            item_id=self.item_id,
            quantity=self.quantity,
        )
