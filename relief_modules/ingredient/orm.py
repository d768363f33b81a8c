"""
SQLAlchemy ORM persistence models for the Ingredient module.

Invariants enforced
-------------------
* All monetary and quantity fields use ``Decimal`` (Numeric(38,9)).
* ``IngredientRequestItemModel`` belongs to exactly one request;
  ``(request_id, line_number)`` is unique.
* ``total_cost`` is written once at submission and never changed.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_kernel.db.base import TrackedBase


class IngredientRequestModel(TrackedBase):
    """
    An ingredient purchase request.

    Guarantees:
        - ``status`` follows PENDING -> ACCEPTED -> DISBURSED or
          PENDING -> REJECTED.
    """

    __tablename__ = "ingredient_requests"

    __table_args__ = (
        Index("idx_ingredient_request_phase", "phase_id"),
        Index("idx_ingredient_request_status", "status"),
        Index("idx_ingredient_request_staff", "kitchen_staff_id"),
    )

    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    kitchen_staff_id: Mapped[UUID]
    total_cost: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    reviewed_by_id: Mapped[UUID | None]
    reviewed_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    disbursed_by_id: Mapped[UUID | None]
    disbursed_at: Mapped[datetime | None]

    items: Mapped[list["IngredientRequestItemModel"]] = relationship(
        "IngredientRequestItemModel",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="IngredientRequestItemModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from relief_modules.ingredient.models import IngredientRequest, IngredientRequestStatus

        return IngredientRequest(
            id=self.id,
            phase_id=self.phase_id,
            kitchen_staff_id=self.kitchen_staff_id,
            total_cost=self.total_cost,
            status=IngredientRequestStatus(self.status),
            reviewed_by_id=self.reviewed_by_id,
            reviewed_at=self.reviewed_at,
            rejection_reason=self.rejection_reason,
            disbursed_by_id=self.disbursed_by_id,
            disbursed_at=self.disbursed_at,
            created_at=self.created_at,
            items=tuple(i.to_dto() for i in self.items),
        )

    def __repr__(self) -> str:
        return f"<IngredientRequestModel {self.id} [{self.status}] {self.total_cost}>"


class IngredientRequestItemModel(TrackedBase):
    """One line item of an ingredient request."""

    __tablename__ = "ingredient_request_items"

    __table_args__ = (
        UniqueConstraint("request_id", "line_number", name="uq_ingredient_item_line"),
        Index("idx_ingredient_item_request", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(ForeignKey("ingredient_requests.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    ingredient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_price: Mapped[Decimal]
    line_total: Mapped[Decimal]
    supplier: Mapped[str | None] = mapped_column(String(300), nullable=True)
    planned_ingredient_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("phase_planned_ingredients.id"), nullable=True,
    )

    request: Mapped["IngredientRequestModel"] = relationship(
        "IngredientRequestModel",
        back_populates="items",
    )

    def to_dto(self):
        from relief_modules.ingredient.models import IngredientRequestItem

        return IngredientRequestItem(
            id=self.id,
            request_id=self.request_id,
            line_number=self.line_number,
            ingredient_name=self.ingredient_name,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            line_total=self.line_total,
            supplier=self.supplier,
            planned_ingredient_id=self.planned_ingredient_id,
        )
