"""
Delivery Task Domain Models (``relief_modules.delivery.models``).

Responsibility
--------------
Frozen value objects for delivery tasks (one delivery staff member
carrying part or all of a READY meal batch) and their status history.

Invariants enforced
-------------------
* A FAILED task carries a note.
* A superseded task is excluded from phase-completion checks; its
  replacement points back to it through ``replaces_task_id``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class DeliveryTaskStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


RESOLVABLE_STATUSES = frozenset({DeliveryTaskStatus.FAILED, DeliveryTaskStatus.REJECTED})


@dataclass(frozen=True)
class DeliveryStatusLog:
    id: UUID
    task_id: UUID
    sequence: int
    status: DeliveryTaskStatus
    note: str | None
    changed_by_id: UUID
    changed_at: datetime


@dataclass(frozen=True)
class DeliveryTask:
    id: UUID
    batch_id: UUID
    phase_id: UUID
    delivery_staff_id: UUID
    status: DeliveryTaskStatus = DeliveryTaskStatus.PENDING
    note: str | None = None
    replaces_task_id: UUID | None = None
    superseded: bool = False
    assigned_by_id: UUID | None = None
    created_at: datetime | None = None
    status_logs: tuple[DeliveryStatusLog, ...] = field(default=())


@dataclass(frozen=True)
class DeliveryTaskFilter:
    phase_id: UUID | None = None
    campaign_id: UUID | None = None
    batch_id: UUID | None = None
    status: DeliveryTaskStatus | None = None
    delivery_staff_id: UUID | None = None
