"""
SQLAlchemy ORM persistence models for the Operation module.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from relief_kernel.db.base import TrackedBase


class OperationRequestModel(TrackedBase):
    """
    A cooking or delivery disbursement request.

    Maps to the ``OperationRequest`` DTO in ``relief_modules.operation.models``.

    Guarantees:
        - ``total_cost`` is immutable after creation.
        - ``status`` follows PENDING -> APPROVED | REJECTED.
    """

    __tablename__ = "operation_requests"

    __table_args__ = (
        Index("idx_operation_request_phase", "phase_id"),
        Index("idx_operation_request_requester", "requester_id"),
        Index("idx_operation_request_status", "status"),
    )

    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    requester_id: Mapped[UUID]
    expense_type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    total_cost: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    reviewed_by_id: Mapped[UUID | None]
    reviewed_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def to_dto(self):
        from relief_modules.operation.models import (
            OperationExpenseType,
            OperationRequest,
            OperationRequestStatus,
        )

        return OperationRequest(
            id=self.id,
            phase_id=self.phase_id,
            requester_id=self.requester_id,
            expense_type=OperationExpenseType(self.expense_type),
            title=self.title,
            total_cost=self.total_cost,
            status=OperationRequestStatus(self.status),
            reviewed_by_id=self.reviewed_by_id,
            reviewed_at=self.reviewed_at,
            rejection_reason=self.rejection_reason,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<OperationRequestModel {self.expense_type} [{self.status}] {self.total_cost}>"
