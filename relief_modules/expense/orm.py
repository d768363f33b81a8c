"""
SQLAlchemy ORM persistence models for the Expense Proof module.

Invariants enforced
-------------------
* ``media_keys`` is stored as a JSON list of object-storage keys; the
  engine never stores the media itself.
* ``planned_amount`` snapshots the request total at submission so the
  recorded variance stays reproducible.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from relief_kernel.db.base import TrackedBase


class ExpenseProofModel(TrackedBase):
    """
    Evidence of spending against a request.

    Guarantees:
        - ``request_kind`` names the table ``request_id`` points into.
        - ``status`` follows PENDING -> APPROVED | REJECTED.
    """

    __tablename__ = "expense_proofs"

    __table_args__ = (
        Index("idx_expense_proof_phase", "phase_id"),
        Index("idx_expense_proof_request", "request_id"),
        Index("idx_expense_proof_submitter", "submitter_id"),
    )

    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    request_id: Mapped[UUID]
    request_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    submitter_id: Mapped[UUID]
    media_keys: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    amount: Mapped[Decimal]
    planned_amount: Mapped[Decimal]
    variance_amount: Mapped[Decimal]
    variance_percent: Mapped[Decimal]
    variance_warning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    admin_note: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    reviewed_by_id: Mapped[UUID | None]
    reviewed_at: Mapped[datetime | None]

    def to_dto(self):
        from relief_modules.expense.models import (
            ExpenseProof,
            ExpenseProofStatus,
            ProofRequestKind,
        )

        return ExpenseProof(
            id=self.id,
            phase_id=self.phase_id,
            request_id=self.request_id,
            request_kind=ProofRequestKind(self.request_kind),
            submitter_id=self.submitter_id,
            media_keys=tuple(self.media_keys or ()),
            amount=self.amount,
            planned_amount=self.planned_amount,
            variance_amount=self.variance_amount,
            variance_percent=self.variance_percent,
            variance_warning=self.variance_warning,
            status=ExpenseProofStatus(self.status),
            admin_note=self.admin_note,
            reviewed_by_id=self.reviewed_by_id,
            reviewed_at=self.reviewed_at,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<ExpenseProofModel {self.request_kind}:{self.request_id} [{self.status}]>"
