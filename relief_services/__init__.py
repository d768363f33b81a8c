"""
Relief services: the phase orchestrator, access control, collaborator
protocols and the ``ReliefEngine`` facade.
"""

from relief_services.collaborators import (
    ActorContext,
    ActorRole,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    PhaseStatusChanged,
    UploadSlot,
    UploadUrlIssuer,
)
from relief_services.engine import ReliefEngine
from relief_services.presentation import status_label

__all__ = [
    "ActorContext",
    "ActorRole",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "PhaseStatusChanged",
    "ReliefEngine",
    "UploadSlot",
    "UploadUrlIssuer",
    "status_label",
]
