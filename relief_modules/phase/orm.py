"""
SQLAlchemy ORM persistence models for the Phase module.

Responsibility
--------------
Persist campaign phases, their planned ingredients and planned meals.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``PhaseService``,
``BudgetService`` and the phase orchestrator.  Inherits from
``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* ``version`` is the optimistic concurrency counter.  It is bumped
  explicitly by the orchestrator on every mutation of the phase or any of
  its children, so two writers on the same phase always collide.
* ``(campaign_id, ordinal)`` is unique.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_kernel.db.base import TrackedBase


class PhaseModel(TrackedBase):
    """
    One sequential, budgeted phase of a campaign.

    Maps to the ``Phase`` DTO in ``relief_modules.phase.models``.

    Guarantees:
        - ``status`` is the cached result of the last recompute.
        - ``terminal_reason`` / ``terminated_at`` / ``terminated_by_id``
          are set iff ``status`` is CANCELLED or FAILED.
    """

    __tablename__ = "campaign_phases"

    __table_args__ = (
        UniqueConstraint("campaign_id", "ordinal", name="uq_phase_campaign_ordinal"),
        Index("idx_phase_campaign", "campaign_id"),
        Index("idx_phase_status", "status"),
    )

    campaign_id: Mapped[UUID] = mapped_column(ForeignKey("campaigns.id"), nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    phase_name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    ingredient_budget_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    cooking_budget_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_budget_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    total_funds: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    ingredient_fund_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cooking_fund_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    delivery_fund_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PLANNING")
    needs_resubmission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blocking_entity: Mapped[str | None] = mapped_column(String(50), nullable=True)
    terminal_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    terminated_at: Mapped[datetime | None]
    terminated_by_id: Mapped[UUID | None]
    last_activity_at: Mapped[datetime | None]

    ingredient_purchase_date: Mapped[datetime | None]
    cooking_date: Mapped[datetime | None]
    delivery_date: Mapped[datetime | None]

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    campaign: Mapped["CampaignModel"] = relationship(  # noqa: F821
        "CampaignModel",
        back_populates="phases",
    )
    planned_ingredients: Mapped[list["PlannedIngredientModel"]] = relationship(
        "PlannedIngredientModel",
        back_populates="phase",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    planned_meals: Mapped[list["PlannedMealModel"]] = relationship(
        "PlannedMealModel",
        back_populates="phase",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from relief_modules.phase.models import Phase, PhaseStatus

        return Phase(
            id=self.id,
            campaign_id=self.campaign_id,
            ordinal=self.ordinal,
            phase_name=self.phase_name,
            location=self.location,
            currency=self.currency,
            ingredient_budget_percentage=self.ingredient_budget_percentage,
            cooking_budget_percentage=self.cooking_budget_percentage,
            delivery_budget_percentage=self.delivery_budget_percentage,
            total_funds=self.total_funds,
            ingredient_fund_amount=self.ingredient_fund_amount,
            cooking_fund_amount=self.cooking_fund_amount,
            delivery_fund_amount=self.delivery_fund_amount,
            status=PhaseStatus(self.status),
            needs_resubmission=self.needs_resubmission,
            blocking_entity=self.blocking_entity,
            terminal_reason=self.terminal_reason,
            terminated_at=self.terminated_at,
            terminated_by_id=self.terminated_by_id,
            ingredient_purchase_date=self.ingredient_purchase_date,
            cooking_date=self.cooking_date,
            delivery_date=self.delivery_date,
            version=self.version,
            planned_ingredients=tuple(p.to_dto() for p in self.planned_ingredients),
            planned_meals=tuple(m.to_dto() for m in self.planned_meals),
        )

    def __repr__(self) -> str:
        return f"<PhaseModel {self.phase_name} #{self.ordinal} [{self.status}] v{self.version}>"


class PlannedIngredientModel(TrackedBase):
    """An ingredient line of the phase plan."""

    __tablename__ = "phase_planned_ingredients"

    __table_args__ = (
        Index("idx_planned_ingredient_phase", "phase_id"),
    )

    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(50), nullable=False)

    phase: Mapped["PhaseModel"] = relationship("PhaseModel", back_populates="planned_ingredients")

    def to_dto(self):
        from relief_modules.phase.models import PlannedIngredient

        return PlannedIngredient(
            id=self.id,
            phase_id=self.phase_id,
            name=self.name,
            quantity=self.quantity,
            unit=self.unit,
        )


class PlannedMealModel(TrackedBase):
    """A meal line of the phase plan."""

    __tablename__ = "phase_planned_meals"

    __table_args__ = (
        Index("idx_planned_meal_phase", "phase_id"),
    )

    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    phase: Mapped["PhaseModel"] = relationship("PhaseModel", back_populates="planned_meals")

    def to_dto(self):
        from relief_modules.phase.models import PlannedMeal

        return PlannedMeal(
            id=self.id,
            phase_id=self.phase_id,
            name=self.name,
            quantity=self.quantity,
        )
