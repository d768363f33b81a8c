"""
External collaborators consumed by the relief engine.

Responsibility:
    Typed seams for the systems the engine talks to but does not own:
    the identity provider (``ActorContext``), media storage
    (``UploadUrlIssuer``) and push notifications
    (``NotificationDispatcher``).

Architecture position:
    Services layer.  Implementations are injected into ``ReliefEngine``;
    the defaults here only log.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID

from relief_kernel.logging_config import get_logger

logger = get_logger("services.collaborators")


class ActorRole(str, Enum):
    ADMIN = "ADMIN"
    KITCHEN_STAFF = "KITCHEN_STAFF"
    DELIVERY_STAFF = "DELIVERY_STAFF"
    AUDITOR = "AUDITOR"
    FUNDRAISER = "FUNDRAISER"


@dataclass(frozen=True)
class ActorContext:
    """The authenticated caller, as issued by the identity provider."""

    actor_id: UUID
    role: ActorRole


@dataclass(frozen=True)
class UploadSlot:
    """A presigned upload target returned by the storage collaborator."""

    upload_url: str
    file_key: str
    expires_at: datetime | None = None


@dataclass(frozen=True)
class PhaseStatusChanged:
    """Emitted after commit whenever a phase's cached status changes."""

    phase_id: UUID
    campaign_id: UUID
    from_status: str
    to_status: str
    needs_resubmission: bool
    actor_id: UUID
    occurred_at: datetime


@runtime_checkable
class UploadUrlIssuer(Protocol):
    def generate_upload_urls(
        self,
        owner_id: UUID,
        file_count: int,
        file_types: Sequence[str],
    ) -> Sequence[UploadSlot]:
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    def phase_status_changed(self, event: PhaseStatusChanged) -> None:
        ...


class LoggingNotificationDispatcher:
    """Default dispatcher: writes each event to the structured log."""

    def phase_status_changed(self, event: PhaseStatusChanged) -> None:
        logger.info(
            "phase_status_changed",
            extra={
                "phase_id": str(event.phase_id),
                "campaign_id": str(event.campaign_id),
                "from_status": event.from_status,
                "to_status": event.to_status,
                "needs_resubmission": event.needs_resubmission,
            },
        )


class UnconfiguredUploadUrlIssuer:
    """Placeholder used when no storage collaborator is wired in."""

    def generate_upload_urls(
        self,
        owner_id: UUID,
        file_count: int,
        file_types: Sequence[str],
    ) -> Sequence[UploadSlot]:
        raise RuntimeError("No UploadUrlIssuer configured for this ReliefEngine")
