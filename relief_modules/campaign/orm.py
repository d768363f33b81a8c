"""
SQLAlchemy ORM persistence models for the Campaign module.

Invariants enforced
-------------------
* ``target_amount`` and ``received_amount`` use ``Decimal`` -- NEVER float.
* ``phases`` are ordered by ``ordinal`` and deleted with the campaign.
"""

from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_kernel.db.base import TrackedBase
from relief_modules.phase.orm import PhaseModel


class CampaignModel(TrackedBase):
    """
    A food-relief campaign.

    Maps to the ``Campaign`` DTO in ``relief_modules.campaign.models``.
    """

    __tablename__ = "campaigns"

    __table_args__ = (
        Index("idx_campaign_status", "status"),
    )

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    target_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    received_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="ACTIVE")

    phases: Mapped[list[PhaseModel]] = relationship(
        PhaseModel,
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by=PhaseModel.ordinal,
        lazy="selectin",
    )

    def to_dto(self):
        from relief_modules.campaign.models import Campaign, CampaignStatus

        return Campaign(
            id=self.id,
            title=self.title,
            target_amount=self.target_amount,
            received_amount=self.received_amount,
            currency=self.currency,
            status=CampaignStatus(self.status),
            description=self.description,
            phases=tuple(p.to_dto() for p in self.phases),
        )

    def __repr__(self) -> str:
        return f"<CampaignModel {self.title!r} [{self.status}]>"
