"""
SQLAlchemy ORM persistence models for the Delivery module.

Invariants enforced
-------------------
* Every task belongs to one meal batch and, through it, one phase
  (``phase_id`` is denormalized for phase-level queries).
* ``DeliveryStatusLogModel`` rows are append-only: one per status change,
  including the initial PENDING.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_kernel.db.base import TrackedBase


class DeliveryTaskModel(TrackedBase):
    """
    A delivery assignment for a meal batch.

    Guarantees:
        - ``status`` follows PENDING -> ACCEPTED -> OUT_FOR_DELIVERY ->
          COMPLETED | FAILED, or PENDING -> REJECTED.
        - ``superseded`` is only set on FAILED / REJECTED tasks.
    """

    __tablename__ = "delivery_tasks"

    __table_args__ = (
        Index("idx_delivery_task_batch", "batch_id"),
        Index("idx_delivery_task_phase", "phase_id"),
        Index("idx_delivery_task_staff", "delivery_staff_id"),
        Index("idx_delivery_task_status", "status"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("meal_batches.id"), nullable=False)
    phase_id: Mapped[UUID] = mapped_column(ForeignKey("campaign_phases.id"), nullable=False)
    delivery_staff_id: Mapped[UUID]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    note: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    replaces_task_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("delivery_tasks.id"), nullable=True,
    )
    superseded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_by_id: Mapped[UUID | None]

    status_logs: Mapped[list["DeliveryStatusLogModel"]] = relationship(
        "DeliveryStatusLogModel",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="DeliveryStatusLogModel.sequence",
        lazy="selectin",
    )

    def to_dto(self, include_logs: bool = False):
        from relief_modules.delivery.models import DeliveryTask, DeliveryTaskStatus

        return DeliveryTask(
            id=self.id,
            batch_id=self.batch_id,
            phase_id=self.phase_id,
            delivery_staff_id=self.delivery_staff_id,
            status=DeliveryTaskStatus(self.status),
            note=self.note,
            replaces_task_id=self.replaces_task_id,
            superseded=self.superseded,
            assigned_by_id=self.assigned_by_id,
            created_at=self.created_at,
            status_logs=tuple(log.to_dto() for log in self.status_logs) if include_logs else (),
        )

    def __repr__(self) -> str:
        return f"<DeliveryTaskModel {self.id} [{self.status}]{' superseded' if self.superseded else ''}>"


class DeliveryStatusLogModel(TrackedBase):
    """One status change of a delivery task."""

    __tablename__ = "delivery_status_logs"

    __table_args__ = (
        UniqueConstraint("task_id", "sequence", name="uq_delivery_log_sequence"),
        Index("idx_delivery_log_task", "task_id"),
    )

    task_id: Mapped[UUID] = mapped_column(ForeignKey("delivery_tasks.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    note: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    changed_by_id: Mapped[UUID]
    changed_at: Mapped[datetime]

    task: Mapped["DeliveryTaskModel"] = relationship("DeliveryTaskModel", back_populates="status_logs")

    def to_dto(self):
        from relief_modules.delivery.models import DeliveryStatusLog, DeliveryTaskStatus

        return DeliveryStatusLog(
            id=self.id,
            task_id=self.task_id,
            sequence=self.sequence,
            status=DeliveryTaskStatus(self.status),
            note=self.note,
            changed_by_id=self.changed_by_id,
            changed_at=self.changed_at,
        )
