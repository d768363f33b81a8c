"""
Delivery Module (``relief_modules.delivery``).

Delivery tasks carry READY meal batches to recipients; each task keeps its
own status history.
"""

from relief_modules.delivery.models import (
    DeliveryStatusLog,
    DeliveryTask,
    DeliveryTaskFilter,
    DeliveryTaskStatus,
)
from relief_modules.delivery.service import DeliveryTaskService, parse_task_status
from relief_modules.delivery.workflows import DELIVERY_TASK_WORKFLOW

__all__ = [
    "DELIVERY_TASK_WORKFLOW",
    "DeliveryStatusLog",
    "DeliveryTask",
    "DeliveryTaskFilter",
    "DeliveryTaskService",
    "DeliveryTaskStatus",
    "parse_task_status",
]
